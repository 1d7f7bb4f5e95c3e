from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone

from payment_tally.application.claim_parser import DEFAULT_BOT_LOGIN
from payment_tally.domain.entities import DedupKey

DEFAULT_ORG   = "Ubiquity"
DEFAULT_SINCE = "2023-01-01"


def since_to_iso(value: str) -> str:
    """'2023-01-01' → '2023-01-01T00:00:00.000Z' (UTC midnight, inclusive)."""
    day = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return day.strftime("%Y-%m-%dT%H:%M:%S.000Z")


@dataclass(frozen=True)
class TallySettings:
    """Everything a tally run needs to know, read once at start-up."""
    github_token: str
    database_url: str | None = None
    org:          str = DEFAULT_ORG
    since:        str = since_to_iso(DEFAULT_SINCE)
    repo:         str | None = None
    bot_login:    str = DEFAULT_BOT_LOGIN
    dedup_key:    DedupKey = DedupKey.ISSUE
    output_dir:   str = "."
    per_repo:     bool = False
    verbose:      bool = False
