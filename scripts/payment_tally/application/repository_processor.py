from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import AsyncIterable, Iterable, Iterator

from payment_tally.domain.entities import (
    DedupKey,
    Issue,
    NoPaymentRecord,
    PaymentClaim,
    Repository,
    RepositoryResult,
    issue_url,
    repository_url,
)
from payment_tally.domain.errors import MalformedClaimError
from .claim_parser import DEFAULT_BOT_LOGIN, parse_comment
from .deduplicator import ClaimDeduplicator
from .payee_resolver import needs_manual_review, resolve_payee

log = logging.getLogger(__name__)


def contributor_balance(claims: Iterable[PaymentClaim]) -> dict[str, Decimal]:
    """Sum claim amounts per payee."""
    balance: dict[str, Decimal] = defaultdict(Decimal)
    for claim in claims:
        balance[claim.payee] += claim.amount
    return dict(balance)


class RepositoryProcessor:
    """
    Walks one repository's issues and comments through the claim parser
    and payee resolver, and turns what it finds into a RepositoryResult.

    Issues are consumed in arrival order; dedup keeps the first claim per
    key, so that order decides which claim survives.
    """

    def __init__(self, bot_login: str = DEFAULT_BOT_LOGIN, dedup_key: DedupKey = DedupKey.ISSUE) -> None:
        self._bot_login = bot_login
        self._dedup_key = dedup_key

    def claims_for_issue(self, org: str, repo_name: str, issue: Issue) -> Iterator[PaymentClaim]:
        """
        Yield every claim found in the issue's comments.

        A comment that cannot be decoded is logged and skipped as a whole;
        the remaining comments are still read.
        """
        url = issue_url(org, repo_name, issue.number)
        for position, comment in enumerate(issue.comments):
            try:
                raws = list(parse_comment(comment.body, comment.author_login, self._bot_login))
            except MalformedClaimError as exc:
                log.warning(
                    "Skipping malformed claim | %s#%d comment %d | %s",
                    repo_name, issue.number, position, exc,
                )
                continue

            for raw in raws:
                payee, claim_type = resolve_payee(raw, issue)
                yield PaymentClaim(
                    repo_name    = repo_name,
                    issue_number = issue.number,
                    amount       = raw.amount,
                    currency     = raw.currency,
                    payee        = payee,
                    type         = claim_type,
                    url          = url,
                )

    async def process(self, org: str, repository: Repository, issues: AsyncIterable[Issue]) -> RepositoryResult:
        deduplicator = ClaimDeduplicator(self._dedup_key)
        claims: list[PaymentClaim] = []
        issue_count = 0

        async for issue in issues:
            issue_count += 1
            claims.extend(deduplicator.filter_fresh(self.claims_for_issue(org, repository.name, issue)))

        log.debug("%s | %d issues | %d claims kept", repository.name, issue_count, len(claims))
        return self.build_result(org, repository, claims)

    @staticmethod
    def build_result(org: str, repository: Repository, claims: list[PaymentClaim]) -> RepositoryResult:
        no_payment_record = None
        if not claims:
            no_payment_record = NoPaymentRecord(
                repo_name        = repository.name,
                archived         = repository.is_archived,
                last_commit_date = repository.last_commit_date,
                url              = repository_url(org, repository.name),
            )

        return RepositoryResult(
            repository          = repository,
            claims              = tuple(claims),
            no_assignee_claims  = tuple(c for c in claims if needs_manual_review(c.payee)),
            contributor_balance = contributor_balance(claims),
            no_payment_record   = no_payment_record,
        )
