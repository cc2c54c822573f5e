"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach a real database or start the background sweeper
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")
