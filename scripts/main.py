"""
main.py: Dependency Wiring (Composition Root)
----------------------------------------------
This file has ONE job: wire all the pieces together and run the tally.

It does NOT contain any business logic. It just:
  1. Reads configuration from the command line and environment variables
  2. Creates concrete implementations of each interface
  3. Injects them into the classes that need them
  4. Calls the top-level use case (TallyApplicationService.execute)
  5. Reports the result and exits

Dependency graph (what depends on what):
                         main.py  (wires everything)
                            │
              ┌─────────────┼──────────────────┐
              ▼             ▼                  ▼
    TallyApplicationService │      CsvReportWriter / PostgresLedgerStorage
              │             │
              ▼             ▼
    TallyOrchestrator    GitHubClient
              │
              ▼
    RepositoryProcessor → claim_parser, payee_resolver, ClaimDeduplicator
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import httpx
import psycopg2

# Application layer
from payment_tally.application.orchestrator import TallyOrchestrator
from payment_tally.application.repository_processor import RepositoryProcessor
from payment_tally.application.tally_service import TallyApplicationService
from payment_tally.config import DEFAULT_ORG, DEFAULT_SINCE, TallySettings, since_to_iso
from payment_tally.domain.entities import DedupKey

# Infrastructure layer
from payment_tally.infrastructure.csv_report_writer import CsvReportWriter
from payment_tally.infrastructure.github_client import GitHubClient
from payment_tally.infrastructure.postgres_storage import PostgresLedgerStorage

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Tally bot-issued payment claims across an organization's repositories"
    )
    parser.add_argument("--org", default=DEFAULT_ORG, help=f"GitHub organization (default: {DEFAULT_ORG})")
    parser.add_argument(
        "--since",
        default = DEFAULT_SINCE,
        help    = f"YYYY-MM-DD date to tally from (default: {DEFAULT_SINCE})",
    )
    parser.add_argument("--repo", default=None, help="Only tally this repository")
    parser.add_argument("--bot-login", default=None, help="Login of the payout bot (default: ubiquibot)")
    parser.add_argument(
        "--dedup-key",
        choices = [k.value for k in DedupKey],
        default = DedupKey.ISSUE.value,
        help    = "Keep one claim per issue, or one per issue/payee/type",
    )
    parser.add_argument("--output-dir", default=".", help="Where to write the report files")
    parser.add_argument("--per-repo", action="store_true", help="Write one set of report files per repository")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_settings(argv: list[str] | None = None, environ: dict | None = None) -> TallySettings:
    """
    Combine command-line arguments and environment variables.
    Fails fast with a clear error if GITHUB_TOKEN is missing or --since is
    not a date.
    """
    args    = _parse_args(argv)
    environ = os.environ if environ is None else environ
    token   = environ.get("GITHUB_TOKEN")

    if not token:
        log.error("GITHUB_TOKEN environment variable is required")
        sys.exit(1)

    try:
        since = since_to_iso(args.since)
    except ValueError:
        log.error("--since must be a YYYY-MM-DD date, got %r", args.since)
        sys.exit(1)

    overrides = {"bot_login": args.bot_login} if args.bot_login else {}
    return TallySettings(
        github_token = token,
        database_url = environ.get("DATABASE_URL") or None,
        org          = args.org,
        since        = since,
        repo         = args.repo,
        dedup_key    = DedupKey(args.dedup_key),
        output_dir   = args.output_dir,
        per_repo     = args.per_repo,
        verbose      = args.verbose,
        **overrides,
    )


# ---------------------------------------------------------------------------
# Dependency wiring
# ---------------------------------------------------------------------------

async def build_and_run(settings: TallySettings) -> int:
    """
    Wires all dependencies together and executes the tally use case.
    Returns the process exit code.
    """
    # Infrastructure: the ledger database is optional
    conn   = psycopg2.connect(settings.database_url) if settings.database_url else None
    client = httpx.AsyncClient()

    try:
        source  = GitHubClient(token=settings.github_token, client=client)
        writer  = CsvReportWriter(output_dir=settings.output_dir)
        storage = None
        if conn is not None:
            storage = PostgresLedgerStorage(conn=conn)
            storage.ensure_schema()

        processor    = RepositoryProcessor(bot_login=settings.bot_login, dedup_key=settings.dedup_key)
        orchestrator = TallyOrchestrator(source=source, processor=processor)
        service      = TallyApplicationService(orchestrator=orchestrator, writer=writer, storage=storage)

        result = await service.execute(
            settings.org,
            settings.since,
            repo_filter = settings.repo,
            per_repo    = settings.per_repo,
        )

        if result.status == "success":
            log.info(
                "Success | %d repos | %d payments | %.0fs",
                result.repositories,
                result.total_payments,
                result.elapsed_secs,
            )
            return 0

        log.error("Failed | error: %s", result.error_message)
        return 1

    finally:
        # Always clean up connections, even if an exception occurred
        await client.aclose()
        if conn is not None:
            conn.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    settings = build_settings(argv)
    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    return asyncio.run(build_and_run(settings))


if __name__ == "__main__":
    sys.exit(main())
