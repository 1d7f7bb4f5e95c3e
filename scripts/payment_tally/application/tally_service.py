from __future__ import annotations

import logging
from datetime import datetime, timezone

from payment_tally.domain.entities import TallyReport, TallyResult
from payment_tally.domain.interfaces import ILedgerStorage, IReportWriter
from .aggregator import TallyAccumulator, finalize, fold
from .orchestrator import TallyOrchestrator

log = logging.getLogger(__name__)


class TallyApplicationService:
    """
    The top-level use case: tally an organization's payment claims and
    write the report.

    Receives all dependencies via constructor injection. The ledger storage
    is optional; without it no run audit is kept.
    """

    def __init__(self, orchestrator: TallyOrchestrator, writer: IReportWriter, storage: ILedgerStorage | None = None) -> None:
        self._orchestrator = orchestrator
        self._writer       = writer
        self._storage      = storage

    async def _run_per_repo(self, org: str, since: str, repo_filter: str | None) -> TallyReport:
        """Write one set of artifacts per repository, prefixed with its name."""
        accumulator = TallyAccumulator()
        async for result in self._orchestrator.collect(org, since, repo_filter):
            accumulator = fold(accumulator, result)
            single = finalize(fold(TallyAccumulator(), result))
            self._writer.write(single, prefix=f"{result.repository.name}-")
        return finalize(accumulator)

    async def execute(self, org: str, since: str, repo_filter: str | None = None, per_repo: bool = False) -> TallyResult:
        """
        Run a full tally. Returns a TallyResult describing what happened.

        Nothing is written unless the whole run succeeds, except in
        per-repo mode where each repository's files land as it finishes.
        """
        started_at = datetime.now(tz=timezone.utc)
        run_id     = self._storage.create_run(org, since) if self._storage else None

        log.info("TallyApplicationService | run #%s | org=%s | since=%s", run_id, org, since)

        try:
            if per_repo:
                report = await self._run_per_repo(org, since, repo_filter)
            else:
                report = await self._orchestrator.run(org, since, repo_filter)
                paths = self._writer.write(report)
                log.info("Wrote %s", ", ".join(paths))

            if self._storage:
                self._storage.save_payments(run_id, report.all_payments)
                self._storage.finish_run(run_id, len(report.all_payments), "success")

            elapsed = (datetime.now(tz=timezone.utc) - started_at).total_seconds()
            log.info("Tally complete | %d payments | %.0fs", len(report.all_payments), elapsed)
            return TallyResult(
                run_id         = run_id,
                status         = "success",
                repositories   = report.repositories,
                total_payments = len(report.all_payments),
                elapsed_secs   = elapsed,
            )
        except Exception as exc:
            elapsed = (datetime.now(tz=timezone.utc) - started_at).total_seconds()
            log.error("Tally failed: %s", exc, exc_info=True)
            if self._storage:
                self._storage.finish_run(run_id, 0, "failed", str(exc))

            return TallyResult(
                run_id         = run_id,
                status         = "failed",
                repositories   = 0,
                total_payments = 0,
                elapsed_secs   = elapsed,
                error_message  = str(exc),
            )
