"""
Domain Layer: Interfaces (Abstract Contracts)
----------------------------------------------
These are ABSTRACT definitions of what the infrastructure must provide.
The domain layer defines the shape; the infrastructure layer implements it.

The application layer depends on these, never on GitHubClient,
CsvReportWriter or PostgresLedgerStorage directly, so tests can pass
in-memory fakes without touching the network or a database.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import AsyncIterator, Sequence

from .entities import Issue, PaymentClaim, Repository, TallyReport


class IIssueSource(ABC):
    """
    Contract for anything that can list an organization's repositories
    and their issues with comments.

    Both methods return async iterators that walk the source page by page.
    Consumed pages are never fetched again, and arrival order is preserved.
    """

    @abstractmethod
    def list_repositories(self, org: str) -> AsyncIterator[Repository]:
        ...

    @abstractmethod
    def list_issues_with_comments(self, org: str, repo_name: str, since: str) -> AsyncIterator[Issue]:
        """
        Yield every issue with activity at or after `since` (ISO-8601),
        each carrying its comments in thread order.
        """
        ...


class IReportWriter(ABC):
    """Contract for rendering a finished tally."""

    @abstractmethod
    def write(self, report: TallyReport, prefix: str = "") -> list[str]:
        """Write the report artifacts. Returns the paths written."""
        ...


class ILedgerStorage(ABC):
    """
    Contract for an audit store of tally runs.
    Optional: the application service runs fine without one.
    """

    @abstractmethod
    def create_run(self, org: str, since: str) -> int:
        """Create a tally run audit record. Returns the run ID."""
        ...

    @abstractmethod
    def save_payments(self, run_id: int, payments: Sequence[PaymentClaim]) -> None:
        ...

    @abstractmethod
    def finish_run(self, run_id: int, total: int, status: str, error: str | None = None) -> None:
        """Mark a tally run as complete with final stats."""
        ...
