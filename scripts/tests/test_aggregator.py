from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from payment_tally.application.aggregator import TallyAccumulator, aggregate, finalize, fold, merge_balances
from payment_tally.application.repository_processor import RepositoryProcessor
from payment_tally.domain.entities import (
    NO_ASSIGNEE,
    ClaimType,
    Currency,
    PaymentClaim,
    Repository,
    RepositoryResult,
)
from payment_tally.domain.errors import EmptyTallyError

ORG = "Ubiquity"


def _claim(repo: str, number: int, payee: str, amount: str) -> PaymentClaim:
    return PaymentClaim(
        repo_name=repo,
        issue_number=number,
        amount=Decimal(amount),
        currency=Currency.WXDAI,
        payee=payee,
        type=ClaimType.ASSIGNEE,
        url=f"https://github.com/{ORG}/{repo}/issues/{number}",
    )


def _result(name: str, claims: list[PaymentClaim], last_commit: datetime | None = None) -> RepositoryResult:
    repository = Repository(name=name, is_archived=False, last_commit_date=last_commit)
    return RepositoryProcessor.build_result(ORG, repository, claims)


def test_balances_from_two_repositories_add_up() -> None:
    report = aggregate([
        _result("one", [_claim("one", 1, "carol", "10")]),
        _result("two", [_claim("two", 1, "carol", "5")]),
    ])
    assert report.contributor_balance == {"carol": Decimal("15")}


def test_balances_do_not_depend_on_processing_order() -> None:
    results = [
        _result("a", [_claim("a", 1, "carol", "1.1"), _claim("a", 2, "dan", "2")]),
        _result("b", [_claim("b", 1, "carol", "3.3")]),
        _result("c", [_claim("c", 9, "dan", "0.5")]),
    ]
    forward  = aggregate(results).contributor_balance
    backward = aggregate(list(reversed(results))).contributor_balance
    assert forward == backward == {"carol": Decimal("4.4"), "dan": Decimal("2.5")}


def test_fold_returns_a_new_accumulator() -> None:
    empty = TallyAccumulator()
    folded = fold(empty, _result("a", [_claim("a", 1, "carol", "1")]))

    assert empty.contributor_balance == {}
    assert empty.all_payments == ()
    assert folded.repositories == 1
    assert folded.contributor_balance == {"carol": Decimal("1")}


def test_merge_balances_is_additive_union() -> None:
    left = {"a": Decimal("1"), "b": Decimal("2")}
    merged = merge_balances(left, {"b": Decimal("3"), "c": Decimal("4")})
    assert merged == {"a": Decimal("1"), "b": Decimal("5"), "c": Decimal("4")}
    assert left == {"a": Decimal("1"), "b": Decimal("2")}


def test_payments_sorted_by_repository_name_keeping_fold_order_on_ties() -> None:
    report = aggregate([
        _result("zeta", [_claim("zeta", 1, "a", "1")]),
        _result("Alpha", [_claim("Alpha", 5, "a", "1"), _claim("Alpha", 2, "b", "1")]),
        _result("beta", [_claim("beta", 3, "c", "1")]),
    ])
    assert [(p.repo_name, p.issue_number) for p in report.all_payments] == [
        ("Alpha", 5),
        ("Alpha", 2),
        ("beta", 3),
        ("zeta", 1),
    ]


def test_no_payments_sorted_newest_commit_first_with_unknown_dates_last() -> None:
    report = aggregate([
        _result("never", []),
        _result("old", [], datetime(2022, 1, 1, tzinfo=timezone.utc)),
        _result("paid", [_claim("paid", 1, "a", "1")]),
        _result("new", [], datetime(2024, 6, 1, tzinfo=timezone.utc)),
    ])
    assert [r.repo_name for r in report.no_payments] == ["new", "old", "never"]


def test_repositories_without_claims_only_appear_in_no_payments() -> None:
    report = aggregate([
        _result("empty", []),
        _result("paid", [_claim("paid", 1, "a", "1")]),
    ])
    assert [r.repo_name for r in report.no_payments] == ["empty"]
    assert {p.repo_name for p in report.all_payments} == {"paid"}
    assert report.repositories == 2


def test_manual_review_payments_are_collected() -> None:
    report = aggregate([
        _result("b", [_claim("b", 4, NO_ASSIGNEE, "2")]),
        _result("a", [_claim("a", 1, NO_ASSIGNEE, "3"), _claim("a", 2, "x", "1")]),
    ])
    assert [(p.repo_name, p.issue_number) for p in report.no_assignee_payments] == [("a", 1), ("b", 4)]
    assert report.contributor_balance[NO_ASSIGNEE] == Decimal("5")


def test_finalize_refuses_an_empty_tally() -> None:
    with pytest.raises(EmptyTallyError):
        finalize(TallyAccumulator())
    with pytest.raises(EmptyTallyError):
        aggregate([])
