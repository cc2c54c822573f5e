"""Settings and logging setup — env-driven policy values and JSON log lines."""

import json
import logging
from datetime import timedelta

from bloodmatch.config import Settings
from bloodmatch.infrastructure.observability import JSONFormatter


def test_policy_defaults():
    settings = Settings()
    assert settings.donor_cooldown == timedelta(days=56)
    assert settings.strike_threshold == 3
    assert settings.ban_duration == timedelta(days=90)
    assert settings.ban_blocks_cancellation is True


def test_policy_overridable_from_env(monkeypatch):
    monkeypatch.setenv("DONOR_COOLDOWN_DAYS", "90")
    monkeypatch.setenv("BAN_BLOCKS_CANCELLATION", "false")
    settings = Settings()
    assert settings.donor_cooldown == timedelta(days=90)
    assert settings.ban_blocks_cancellation is False


def test_plain_postgres_url_rewritten_for_asyncpg():
    settings = Settings(database_url="postgresql://u:p@host:5432/db")
    assert settings.database_url == "postgresql+asyncpg://u:p@host:5432/db"


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord(
        "bloodmatch.test", logging.INFO, __file__, 1, "Debited %d unit(s)", (2,), None,
    )
    record.stock_entry_id = "abc"
    record.transitioned = 3
    line = json.loads(JSONFormatter().format(record))
    assert line["message"] == "Debited 2 unit(s)"
    assert line["level"] == "INFO"
    assert line["stock_entry_id"] == "abc"
    assert line["transitioned"] == 3
