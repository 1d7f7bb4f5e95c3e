"""
Claim Parser
------------
Recognizes payout claims in a single comment body.

The payout bot changed its comment format over time, so each historical
format is a ClaimDialect with its own recognizer. A recognizer returns a
structured match or None; it never raises. Decoding a match into raw
claims happens afterwards, and that step is where malformed text surfaces
as a MalformedClaimError.

Typical bodies seen in the wild:

  Inline (assignee):              ### [ **[ CLAIM 25 WXDAI ]
  Inline (creator/conversation):  ### [ **gitcoindev: [ CLAIM 18.6 WXDAI ]
  Bracketed:                      ###### @rndquu ... [ [ **23.4 WXDAI** ]]

To support a new format, add a recognizer to RECOGNIZERS. Earlier entries
take precedence when several match.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterator

from payment_tally.domain.entities import ClaimDialect, ClaimType, Currency
from payment_tally.domain.errors import MalformedClaimError

log = logging.getLogger(__name__)

DEFAULT_BOT_LOGIN = "ubiquibot"

_CURRENCY = r"(XDAI|DAI|WXDAI)"
_AMOUNT   = r"(\d+(?:\.\d+)?)"

INLINE_PATTERN    = re.compile(rf"\[ CLAIM {_AMOUNT} {_CURRENCY} \]")
INLINE_CONFIRM    = re.compile(rf"CLAIM {_AMOUNT} {_CURRENCY}")
NAMED_CLAIM       = re.compile(rf"([^\s:*#\[\]]+)\**: \[ CLAIM {_AMOUNT} {_CURRENCY} \]")
BRACKETED_PATTERN = re.compile(rf"\[ \[ \**{_AMOUNT} \**{_CURRENCY}\** \]\]")
MENTION_PATTERN   = re.compile(r"#{1,6} @([\w-]+)")

CREATOR_REWARD_MARKER      = "Task Creator Reward"
CONVERSATION_REWARD_MARKER = "Conversation Reward"


@dataclass(frozen=True)
class RawClaim:
    """
    A claim as written in the text, before the payee is resolved.

    payee is None when the text does not name anyone; the resolver then
    falls back to the issue context.
    """
    dialect:     ClaimDialect
    amount:      Decimal
    currency:    Currency
    payee:       str | None = None
    reward_hint: ClaimType | None = None


@dataclass(frozen=True)
class InlineMatch:
    amount:      Decimal
    currency:    Currency
    payee:       str | None
    reward_hint: ClaimType | None

    dialect = ClaimDialect.INLINE
    bot_only = True

    def claims(self) -> Iterator[RawClaim]:
        yield RawClaim(
            dialect     = self.dialect,
            amount      = self.amount,
            currency    = self.currency,
            payee       = self.payee,
            reward_hint = self.reward_hint,
        )


@dataclass(frozen=True)
class BracketedMatch:
    mentions: tuple[str, ...]
    amounts:  tuple[tuple[Decimal, Currency], ...]

    dialect = ClaimDialect.BRACKETED
    bot_only = False

    def claims(self) -> Iterator[RawClaim]:
        """One claim per mention; the Nth mention is paid the Nth amount."""
        if len(self.mentions) != len(self.amounts):
            raise MalformedClaimError(
                f"bracketed claim has {len(self.mentions)} mentioned users "
                f"but {len(self.amounts)} amounts"
            )
        for user, (amount, currency) in zip(self.mentions, self.amounts):
            yield RawClaim(
                dialect  = self.dialect,
                amount   = amount,
                currency = currency,
                payee    = user,
            )


DialectMatch = InlineMatch | BracketedMatch


def _reward_hint(body: str) -> ClaimType | None:
    if CREATOR_REWARD_MARKER in body:
        return ClaimType.CREATOR
    if CONVERSATION_REWARD_MARKER in body:
        return ClaimType.CONVERSATION
    return None


def recognize_inline(body: str) -> InlineMatch | None:
    """
    Match `[ CLAIM <amount> <CURRENCY> ]`.

    An explicit payee is the login written right before `: [ CLAIM`, with
    `**` / `###` markup stripped; its amount and currency come from that
    same fragment. Without a payee they come from the first `CLAIM
    <amount> <CURRENCY>` in the body.
    """
    if not INLINE_PATTERN.search(body):
        return None

    if ": [ CLAIM" in body:
        named = NAMED_CLAIM.search(body)
        if named:
            return InlineMatch(
                amount      = Decimal(named.group(2)),
                currency    = Currency(named.group(3)),
                payee       = named.group(1),
                reward_hint = _reward_hint(body),
            )
        log.debug("Claim has a ': [ CLAIM' prefix but no readable payee: %.80r", body)

    confirm = INLINE_CONFIRM.search(body)
    return InlineMatch(
        amount      = Decimal(confirm.group(1)),
        currency    = Currency(confirm.group(2)),
        payee       = None,
        reward_hint = _reward_hint(body),
    )


def recognize_bracketed(body: str) -> BracketedMatch | None:
    """Match one or more `[ [ <amount> <CURRENCY> ]]` next to `#... @user` headings."""
    amounts = tuple(
        (Decimal(m.group(1)), Currency(m.group(2)))
        for m in BRACKETED_PATTERN.finditer(body)
    )
    if not amounts:
        return None
    return BracketedMatch(
        mentions = tuple(MENTION_PATTERN.findall(body)),
        amounts  = amounts,
    )


RECOGNIZERS: list[tuple[ClaimDialect, Callable[[str], DialectMatch | None]]] = [
    (ClaimDialect.INLINE,    recognize_inline),
    (ClaimDialect.BRACKETED, recognize_bracketed),
]


def recognize(body: str) -> DialectMatch | None:
    """
    Run every recognizer and return the winning match.

    When more than one dialect matches, the first in RECOGNIZERS wins and
    the overlap is logged so odd comments stay visible.
    """
    matches = [(dialect, m) for dialect, recognizer in RECOGNIZERS if (m := recognizer(body)) is not None]
    if not matches:
        return None
    if len(matches) > 1:
        log.warning(
            "Comment matches several claim dialects (%s), using %s: %.80r",
            ", ".join(d.value for d, _ in matches),
            matches[0][0].value,
            body,
        )
    return matches[0][1]


def parse_comment(body: str, author_login: str | None, bot_login: str = DEFAULT_BOT_LOGIN) -> Iterator[RawClaim]:
    """
    Lazily yield the raw claims found in one comment.

    Inline claims count only when the bot wrote the comment. Raises
    MalformedClaimError while iterating if the matched text cannot be
    decoded.
    """
    match = recognize(body or "")
    if match is None:
        return
    if match.bot_only and author_login != bot_login:
        log.debug("Ignoring %s claim from non-bot author %s", match.dialect.value, author_login)
        return
    yield from match.claims()
