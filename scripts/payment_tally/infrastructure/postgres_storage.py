from __future__ import annotations
import logging
from typing import Sequence
from psycopg2.extras import execute_values
from payment_tally.domain.entities import PaymentClaim
from payment_tally.domain.interfaces import ILedgerStorage

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS tally_runs (
    id             SERIAL PRIMARY KEY,
    org            TEXT NOT NULL,
    since          TEXT NOT NULL,
    started_at     TIMESTAMPTZ NOT NULL,
    finished_at    TIMESTAMPTZ,
    status         TEXT NOT NULL,
    total_payments INTEGER,
    error_msg      TEXT
);

CREATE TABLE IF NOT EXISTS payment_claims (
    run_id       INTEGER NOT NULL REFERENCES tally_runs (id),
    repo_name    TEXT NOT NULL,
    issue_number INTEGER NOT NULL,
    amount       NUMERIC NOT NULL,
    currency     TEXT NOT NULL,
    payee        TEXT NOT NULL,
    claim_type   TEXT NOT NULL,
    url          TEXT NOT NULL
);
"""


class PostgresLedgerStorage(ILedgerStorage):
    """
    Concrete implementation of ILedgerStorage using PostgreSQL.

    Receives an already-connected psycopg2 connection (injected).
    Does not create or manage the connection itself; that is the
    responsibility of the caller (main.py / dependency wiring).
    """

    def __init__(self, conn) -> None:
        self._conn = conn

    def ensure_schema(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute(SCHEMA)
        self._conn.commit()

    def create_run(self, org: str, since: str) -> int:
        """
        Create a tally_runs row when the tally starts.
        Returns the new run ID so we can update it when finished.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO tally_runs (org, since, started_at, status)
                VALUES (%s, %s, NOW(), 'running')
                RETURNING id
                """,
                (org, since),
            )
            run_id = cur.fetchone()[0]
        self._conn.commit()
        log.debug("Created tally run #%d", run_id)
        return run_id

    def save_payments(self, run_id: int, payments: Sequence[PaymentClaim]) -> None:
        """
        Insert every payment of a run in a single statement.

        execute_values sends all rows in ONE round-trip to the DB
        instead of N separate INSERT statements.
        """
        if not payments:
            return

        rows = [
            (
                run_id,
                p.repo_name,
                p.issue_number,
                p.amount,
                p.currency.value,
                p.payee,
                p.type.value,
                p.url,
            )
            for p in payments
        ]

        with self._conn.cursor() as cur:
            execute_values(
                cur,
                """
                INSERT INTO payment_claims
                    (run_id, repo_name, issue_number, amount, currency, payee, claim_type, url)
                VALUES %s
                """,
                rows,
            )
        self._conn.commit()
        log.debug("Saved %d payments for run #%d", len(rows), run_id)

    def finish_run(self, run_id: int, total: int, status: str, error: str | None = None) -> None:
        """
        Update the tally_runs row with final stats.
        Called on both success and failure.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                UPDATE tally_runs
                SET finished_at    = NOW(),
                    total_payments = %s,
                    status         = %s,
                    error_msg      = %s
                WHERE id = %s
                """,
                (total, status, error, run_id),
            )
        self._conn.commit()
        log.debug("Finished tally run #%d | status=%s | total=%d", run_id, status, total)
