from __future__ import annotations

import pytest

from main import build_settings
from payment_tally.config import since_to_iso
from payment_tally.domain.entities import DedupKey


def test_defaults() -> None:
    settings = build_settings([], {"GITHUB_TOKEN": "t0ken"})

    assert settings.github_token == "t0ken"
    assert settings.database_url is None
    assert settings.org == "Ubiquity"
    assert settings.since == "2023-01-01T00:00:00.000Z"
    assert settings.bot_login == "ubiquibot"
    assert settings.dedup_key is DedupKey.ISSUE
    assert settings.repo is None
    assert settings.per_repo is False


def test_flags_and_environment() -> None:
    settings = build_settings(
        [
            "--org", "Acme",
            "--since", "2024-02-29",
            "--repo", "pay-app",
            "--bot-login", "paybot",
            "--dedup-key", "issue-payee-type",
            "--output-dir", "out",
            "--per-repo",
        ],
        {"GITHUB_TOKEN": "t0ken", "DATABASE_URL": "postgresql://localhost/tally"},
    )

    assert settings.org == "Acme"
    assert settings.since == "2024-02-29T00:00:00.000Z"
    assert settings.repo == "pay-app"
    assert settings.bot_login == "paybot"
    assert settings.dedup_key is DedupKey.ISSUE_PAYEE_TYPE
    assert settings.output_dir == "out"
    assert settings.per_repo is True
    assert settings.database_url == "postgresql://localhost/tally"


def test_missing_token_exits() -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_settings([], {})
    assert excinfo.value.code == 1


def test_bad_since_exits() -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_settings(["--since", "last tuesday"], {"GITHUB_TOKEN": "t0ken"})
    assert excinfo.value.code == 1


def test_since_to_iso_is_utc_midnight() -> None:
    assert since_to_iso("2023-06-15") == "2023-06-15T00:00:00.000Z"
