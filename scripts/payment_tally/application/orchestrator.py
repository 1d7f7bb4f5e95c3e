from __future__ import annotations
import logging
from typing import AsyncIterator

from payment_tally.domain.entities import Repository, RepositoryResult, TallyReport
from payment_tally.domain.interfaces import IIssueSource
from .aggregator import TallyAccumulator, finalize, fold
from .repository_processor import RepositoryProcessor

log = logging.getLogger(__name__)


class TallyOrchestrator:
    """
    Coordinates a tally over every repository of an organization.

    All dependencies are injected, this class creates NOTHING itself:
      - IIssueSource         → where repositories and issues come from
      - RepositoryProcessor  → how one repository becomes a result

    Repositories are handled strictly one after another, in the order the
    source returns them. Fetch errors are not caught here: a run either
    completes or fails as a whole.
    """

    def __init__(self, source: IIssueSource, processor: RepositoryProcessor) -> None:
        self._source    = source
        self._processor = processor

    async def _repositories(self, org: str, repo_filter: str | None) -> list[Repository]:
        repositories = [r async for r in self._source.list_repositories(org)]
        if repo_filter:
            repositories = [r for r in repositories if r.name == repo_filter]
        return repositories

    async def collect(self, org: str, since: str, repo_filter: str | None = None) -> AsyncIterator[RepositoryResult]:
        """Async generator that yields one RepositoryResult per repository."""
        repositories = await self._repositories(org, repo_filter)
        log.info("Starting tally | org=%s | since=%s | repositories=%d", org, since, len(repositories))

        for i, repository in enumerate(repositories, start=1):
            issues = self._source.list_issues_with_comments(org, repository.name, since)
            result = await self._processor.process(org, repository, issues)
            log.info(
                "Processed repo %d/%d | %s | %d payments | %d need manual checks",
                i, len(repositories), repository.name,
                len(result.claims), len(result.no_assignee_claims),
            )
            yield result

    async def run(self, org: str, since: str, repo_filter: str | None = None) -> TallyReport:
        accumulator = TallyAccumulator()
        async for result in self.collect(org, since, repo_filter):
            accumulator = fold(accumulator, result)
        return finalize(accumulator)
