"""
Aggregator
----------
Folds per-repository results into organization-wide totals.

The running totals are an explicit, immutable TallyAccumulator value:
fold() takes one and returns a new one, so the fold can be tested on its
own and nothing is mutated behind the caller's back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from payment_tally.domain.entities import NoPaymentRecord, PaymentClaim, RepositoryResult, TallyReport
from payment_tally.domain.errors import EmptyTallyError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TallyAccumulator:
    contributor_balance:  dict[str, Decimal] = field(default_factory=dict)
    all_payments:         tuple[PaymentClaim, ...] = ()
    no_assignee_payments: tuple[PaymentClaim, ...] = ()
    no_payments:          tuple[NoPaymentRecord, ...] = ()
    repositories:         int = 0


def merge_balances(left: dict[str, Decimal], right: dict[str, Decimal]) -> dict[str, Decimal]:
    merged = dict(left)
    for payee, amount in right.items():
        merged[payee] = merged.get(payee, Decimal(0)) + amount
    return merged


def fold(accumulator: TallyAccumulator, result: RepositoryResult) -> TallyAccumulator:
    no_payments = accumulator.no_payments
    if result.no_payment_record is not None:
        no_payments += (result.no_payment_record,)

    return TallyAccumulator(
        contributor_balance  = merge_balances(accumulator.contributor_balance, result.contributor_balance),
        all_payments         = accumulator.all_payments + result.claims,
        no_assignee_payments = accumulator.no_assignee_payments + result.no_assignee_claims,
        no_payments          = no_payments,
        repositories         = accumulator.repositories + 1,
    )


def _by_repo_name(payments: Iterable[PaymentClaim]) -> tuple[PaymentClaim, ...]:
    # sorted() is stable: ties keep their fold order
    return tuple(sorted(payments, key=lambda p: p.repo_name.casefold()))


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _commit_sort_key(record: NoPaymentRecord) -> tuple[bool, datetime]:
    date = record.last_commit_date
    if date is not None and date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return (date is not None, date or _OLDEST)


def _by_last_commit(records: Iterable[NoPaymentRecord]) -> tuple[NoPaymentRecord, ...]:
    """Newest commit first; repositories without commit history go last."""
    return tuple(sorted(records, key=_commit_sort_key, reverse=True))


def finalize(accumulator: TallyAccumulator) -> TallyReport:
    """
    Freeze the running totals into a report with stable ordering.
    Raises EmptyTallyError when no repository was folded in.
    """
    if accumulator.repositories == 0:
        raise EmptyTallyError("No data found processing all repositories.")

    log.info(
        "Aggregated %d repositories | %d payments | %d contributors | %d need manual checks | %d without payments",
        accumulator.repositories,
        len(accumulator.all_payments),
        len(accumulator.contributor_balance),
        len(accumulator.no_assignee_payments),
        len(accumulator.no_payments),
    )
    return TallyReport(
        contributor_balance  = dict(accumulator.contributor_balance),
        all_payments         = _by_repo_name(accumulator.all_payments),
        no_assignee_payments = _by_repo_name(accumulator.no_assignee_payments),
        no_payments          = _by_last_commit(accumulator.no_payments),
        repositories         = accumulator.repositories,
    )


def aggregate(results: Iterable[RepositoryResult]) -> TallyReport:
    accumulator = TallyAccumulator()
    for result in results:
        accumulator = fold(accumulator, result)
    return finalize(accumulator)
