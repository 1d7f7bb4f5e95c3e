from __future__ import annotations

import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Iterable

from payment_tally.domain.entities import PaymentClaim, TallyReport
from payment_tally.domain.interfaces import IReportWriter

log = logging.getLogger(__name__)

CONTRIBUTORS_HEADERS = ["Username", "Balance"]
PAYMENTS_HEADERS     = ["Repository", "Issue #", "Amount", "Currency", "Payee", "Type", "URL"]
NO_PAYMENTS_HEADERS  = ["Repository", "Archived", "Last Commit", "Message", "URL"]


def _isoformat(value: datetime | None) -> str:
    """Render a commit date the way GitHub does, e.g. 2024-01-02T00:00:00Z. Naive values count as UTC."""
    if not value:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def _payment_row(p: PaymentClaim) -> list:
    return [p.repo_name, p.issue_number, p.amount, p.currency.value, p.payee, p.type.value, p.url]


class CsvReportWriter(IReportWriter):
    """
    Renders a TallyReport as three CSV files and a JSON dump of the claims
    that need a manual check.

    Every CSV opens with a title line followed by the header row:

        All Payments
        Repository,Issue #,Amount,Currency,Payee,Type,URL
        ...
    """

    def __init__(self, output_dir: str = ".") -> None:
        self._output_dir = output_dir

    def _path(self, prefix: str, name: str) -> str:
        return os.path.join(self._output_dir, f"{prefix}{name}")

    def _write_csv(self, path: str, title: str, headers: list[str], rows: Iterable[list]) -> str:
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow([title])
            writer.writerow(headers)
            writer.writerows(rows)
        log.debug("Wrote %s", path)
        return path

    def write(self, report: TallyReport, prefix: str = "") -> list[str]:
        os.makedirs(self._output_dir, exist_ok=True)

        balances = sorted(report.contributor_balance.items(), key=lambda kv: kv[1], reverse=True)
        paths = [
            self._write_csv(
                self._path(prefix, "contributors.csv"),
                "Contributors",
                CONTRIBUTORS_HEADERS,
                ([payee, amount] for payee, amount in balances),
            ),
            self._write_csv(
                self._path(prefix, "all_payments.csv"),
                "All Payments",
                PAYMENTS_HEADERS,
                (_payment_row(p) for p in report.all_payments),
            ),
            self._write_csv(
                self._path(prefix, "no_payments.csv"),
                "No Payments",
                NO_PAYMENTS_HEADERS,
                (
                    [r.repo_name, str(r.archived).lower(), _isoformat(r.last_commit_date), r.message, r.url]
                    for r in report.no_payments
                ),
            ),
        ]

        if not report.no_assignee_payments:
            log.info("No manual checks required.")
            return paths

        manual = sorted(report.no_assignee_payments, key=lambda p: p.issue_number)
        path = self._path(prefix, "manual_checks_required.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                [
                    {
                        "repoName":      p.repo_name,
                        "issueNumber":   p.issue_number,
                        "paymentAmount": float(p.amount),
                        "currency":      p.currency.value,
                        "payee":         p.payee,
                        "type":          p.type.value,
                        "url":           p.url,
                    }
                    for p in manual
                ],
                f,
                indent=2,
            )
        log.info("%d payments need a manual check, see %s", len(manual), path)
        paths.append(path)
        return paths
