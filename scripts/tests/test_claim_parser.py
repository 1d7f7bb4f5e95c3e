from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterator

import pytest

from payment_tally.application.claim_parser import (
    BracketedMatch,
    InlineMatch,
    parse_comment,
    recognize,
    recognize_bracketed,
    recognize_inline,
)
from payment_tally.domain.entities import ClaimDialect, ClaimType, Currency
from payment_tally.domain.errors import MalformedClaimError

from fakes import BOT

ASSIGNEE_BODY = "### [ **[ CLAIM 25 WXDAI ]](https://pay.ubq.fi/?claim=abc)**"
CONVERSATION_BODY = (
    "#### Conversation Rewards\n"
    "### [ **gitcoindev: [ CLAIM 18.6 WXDAI ]](https://pay.ubq.fi/?claim=def)**"
)
BRACKETED_BODY = (
    "#### Task Assignee Reward\n"
    "###### @alice\n"
    "| Issue | [ [ **12.5 WXDAI** ]](https://pay.ubq.fi/?claim=x) |\n"
    "###### @bob-dev\n"
    "[ [ 3 XDAI ]](https://pay.ubq.fi/?claim=y)\n"
)


def test_parse_comment_is_lazy() -> None:
    assert isinstance(parse_comment(ASSIGNEE_BODY, BOT), Iterator)


def test_plain_comment_yields_nothing() -> None:
    assert list(parse_comment("Looks good to me, merging.", BOT)) == []
    assert list(parse_comment("", BOT)) == []


def test_inline_claim_without_payee_prefix() -> None:
    [claim] = parse_comment(ASSIGNEE_BODY, BOT)
    assert claim.dialect is ClaimDialect.INLINE
    assert claim.amount == Decimal("25")
    assert claim.currency is Currency.WXDAI
    assert claim.payee is None
    assert claim.reward_hint is None


@pytest.mark.parametrize(
    "body",
    [
        "**gitcoindev: [ CLAIM 18.6 WXDAI ]",
        "### gitcoindev: [ CLAIM 18.6 WXDAI ]",
        "### [ **gitcoindev: [ CLAIM 18.6 WXDAI ]](https://pay.ubq.fi)**",
        "### [ **gitcoindev**: [ CLAIM 18.6 WXDAI ]",
    ],
)
def test_inline_claim_explicit_payee_ignores_markup(body: str) -> None:
    [claim] = parse_comment(body, BOT)
    assert (claim.payee, claim.amount, claim.currency) == ("gitcoindev", Decimal("18.6"), Currency.WXDAI)


def test_named_claim_takes_amount_from_its_own_line() -> None:
    body = (
        "### [ **[ CLAIM 25 WXDAI ]\n"
        "#### Conversation Rewards\n"
        "### [ **bob: [ CLAIM 5 WXDAI ]"
    )
    match = recognize_inline(body)
    assert (match.payee, match.amount, match.currency) == ("bob", Decimal("5"), Currency.WXDAI)
    assert match.reward_hint is ClaimType.CONVERSATION


@pytest.mark.parametrize("body", ["[ CLAIM -5 DAI ]", "bob: [ CLAIM -5 DAI ]", "###### @alice\n[ [ -5 DAI ]]"])
def test_negative_amounts_are_not_claims(body: str) -> None:
    assert recognize(body) is None
    assert list(parse_comment(body, BOT)) == []


def test_inline_claim_reward_markers() -> None:
    assert recognize_inline(CONVERSATION_BODY).reward_hint is ClaimType.CONVERSATION
    creator = "#### Task Creator Reward\n### [ **rndquu: [ CLAIM 23.4 DAI ]"
    assert recognize_inline(creator).reward_hint is ClaimType.CREATOR


def test_inline_claim_requires_the_bot() -> None:
    assert list(parse_comment(ASSIGNEE_BODY, "someone-else")) == []
    assert list(parse_comment(ASSIGNEE_BODY, None)) == []
    assert len(list(parse_comment(ASSIGNEE_BODY, "paybot", bot_login="paybot"))) == 1


def test_inline_claim_needs_brackets() -> None:
    assert recognize_inline("CLAIM 25 WXDAI") is None
    assert recognize_inline("[ CLAIM 25 USDC ]") is None


def test_bracketed_claim_pairs_users_with_amounts_by_position() -> None:
    claims = list(parse_comment(BRACKETED_BODY, BOT))
    assert [(c.payee, c.amount, c.currency) for c in claims] == [
        ("alice", Decimal("12.5"), Currency.WXDAI),
        ("bob-dev", Decimal("3"), Currency.XDAI),
    ]
    assert all(c.dialect is ClaimDialect.BRACKETED for c in claims)


def test_bracketed_claim_accepted_from_any_author() -> None:
    assert len(list(parse_comment(BRACKETED_BODY, "quoting-user"))) == 2


def test_bracketed_mentions_need_a_heading_marker() -> None:
    match = recognize_bracketed("thanks @carol\n###### @dave\n[ [ 1 DAI ]]")
    assert match == BracketedMatch(mentions=("dave",), amounts=((Decimal("1"), Currency.DAI),))


def test_bracketed_length_mismatch_is_an_error() -> None:
    body = "###### @alice\n###### @bob\n[ [ 5 WXDAI ]]"
    with pytest.raises(MalformedClaimError, match="2 mentioned users but 1 amounts"):
        list(parse_comment(body, BOT))


def test_bracketed_without_mentions_is_an_error() -> None:
    with pytest.raises(MalformedClaimError):
        list(parse_comment("[ [ 5 WXDAI ]]", BOT))


def test_inline_wins_when_both_dialects_match(caplog: pytest.LogCaptureFixture) -> None:
    body = "###### @alice\n[ [ 7 DAI ]]\n### [ **[ CLAIM 9 DAI ]"
    with caplog.at_level(logging.WARNING):
        match = recognize(body)
    assert isinstance(match, InlineMatch)
    assert match.amount == Decimal("9")
    assert "several claim dialects" in caplog.text


def test_overlap_from_non_bot_yields_nothing() -> None:
    body = "###### @alice\n[ [ 7 DAI ]]\n### [ **[ CLAIM 9 DAI ]"
    assert list(parse_comment(body, "someone-else")) == []
