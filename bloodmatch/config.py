"""BloodMatch Settings — database, donation policy, sweeper and logging knobs.

Invariants:
    - Database credentials arrive through DATABASE_URL or .env, never literals
    - get_settings() returns one cached Settings per process
    - Policy constants (cooldown, strike threshold, ban duration) live here only

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Policy values default to the stricter historical choices (56-day cooldown,
      3 strikes, 90-day ban) and are overridable per deployment
"""

from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Every field maps to an upper-case env var (DONOR_COOLDOWN_DAYS, ...)."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://bloodmatch:bloodmatch@db:5432/bloodmatch"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Donation safety / abuse policy
    donor_cooldown_days: int = Field(56, ge=1)
    strike_threshold: int = Field(3, ge=1)
    ban_duration_days: int = Field(90, ge=1)
    ban_blocks_cancellation: bool = True

    # Arrival sweeper
    sweeper_enabled: bool = True
    sweep_interval_seconds: int = Field(300, ge=1)

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def donor_cooldown(self) -> timedelta:
        return timedelta(days=self.donor_cooldown_days)

    @property
    def ban_duration(self) -> timedelta:
        return timedelta(days=self.ban_duration_days)


@lru_cache
def get_settings() -> Settings:
    return Settings()
