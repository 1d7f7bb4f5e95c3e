from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

NO_ASSIGNEE = "No assignee"
NO_PAYMENTS_MESSAGE = "No payments found"
GITHUB_WEB_URL = "https://github.com"


class Currency(str, Enum):
    XDAI  = "XDAI"
    DAI   = "DAI"
    WXDAI = "WXDAI"


class ClaimType(str, Enum):
    ASSIGNEE     = "assignee"
    CREATOR      = "creator"
    CONVERSATION = "conversation"


class ClaimDialect(str, Enum):
    """
    The textual formats the payout bot has used over time.

    INLINE     : `[ CLAIM 12.5 WXDAI ]`, one claim per comment
    BRACKETED  : `[ [ 12.5 WXDAI ]]` next to `###### @user` headings,
                 one claim per mentioned user
    """
    INLINE    = "inline"
    BRACKETED = "bracketed"


class DedupKey(str, Enum):
    """Which fields identify a claim when deduplicating within a repository."""
    ISSUE            = "issue"
    ISSUE_PAYEE_TYPE = "issue-payee-type"


@dataclass(frozen=True)
class Repository:
    """
    Immutable domain entity for one organization repository.

    Field names are OURS; the GitHub client translates the API shape.
    """
    name:             str
    is_archived:      bool
    last_commit_date: datetime | None = None


@dataclass(frozen=True)
class Comment:
    body:         str
    author_login: str | None = None


@dataclass(frozen=True)
class Issue:
    number:         int
    author_login:   str | None = None
    assignee_login: str = NO_ASSIGNEE
    comments:       tuple[Comment, ...] = ()


@dataclass(frozen=True)
class PaymentClaim:
    """One resolved payment line item. Several may exist per issue."""
    repo_name:    str
    issue_number: int
    amount:       Decimal
    currency:     Currency
    payee:        str
    type:         ClaimType
    url:          str


@dataclass(frozen=True)
class NoPaymentRecord:
    """Marker for a repository in which no claim was found."""
    repo_name:        str
    archived:         bool
    last_commit_date: datetime | None
    url:              str
    message:          str = NO_PAYMENTS_MESSAGE


@dataclass(frozen=True)
class RepositoryResult:
    """Everything the processor learned about one repository."""
    repository:          Repository
    claims:              tuple[PaymentClaim, ...]
    no_assignee_claims:  tuple[PaymentClaim, ...]
    contributor_balance: dict[str, Decimal] = field(default_factory=dict)
    no_payment_record:   NoPaymentRecord | None = None


@dataclass(frozen=True)
class TallyReport:
    """
    Organization-wide totals handed to the report writer.

    Payments are pre-sorted by repository name, no-payment records by
    last commit date (newest first, unknown dates last).
    """
    contributor_balance:  dict[str, Decimal]
    all_payments:         tuple[PaymentClaim, ...]
    no_assignee_payments: tuple[PaymentClaim, ...]
    no_payments:          tuple[NoPaymentRecord, ...]
    repositories:         int = 0


@dataclass(frozen=True)
class TallyResult:
    """
    Immutable value object summarising a completed tally run.
    Returned by the application service when the run finishes.
    """
    run_id:         int | None
    status:         str
    repositories:   int
    total_payments: int
    elapsed_secs:   float
    error_message:  str | None = None


def issue_url(org: str, repo_name: str, issue_number: int) -> str:
    return f"{GITHUB_WEB_URL}/{org}/{repo_name}/issues/{issue_number}"


def repository_url(org: str, repo_name: str) -> str:
    return f"{GITHUB_WEB_URL}/{org}/{repo_name}"
