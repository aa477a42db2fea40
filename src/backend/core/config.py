"""
Runtime settings for the vote pipeline and its HTTP surface.

Values come from the process environment, with a local .env file as a fallback.
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings; one instance is shared per process."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Message Pulse"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - salts identity hashes and verifies tokens

    # Authentication (tokens are issued elsewhere, we only verify them)
    JWT_ALGORITHM: str = "HS256"

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Refuse to start without a secret."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    # Storage backend: "memory" (single process / tests) or "cosmos"
    STORAGE_BACKEND: str = "memory"

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only the two known storage backends are accepted."""
        backend = v.strip().lower()
        if backend not in ("memory", "cosmos"):
            raise ValueError("STORAGE_BACKEND must be 'memory' or 'cosmos'")
        return backend

    # Azure Cosmos DB
    AZURE_COSMOS_ENDPOINT: str | None = None
    AZURE_COSMOS_CONNECTION_STRING: str | None = None  # For local emulator only
    AZURE_COSMOS_DATABASE: str = "messagepulse"
    AZURE_COSMOS_DISABLE_SSL: bool = False

    # Vote ingestion
    IDEMPOTENCY_TTL_HOURS: int = 48
    VOTE_DEDUP_TTL_HOURS: int | None = None  # None = one vote per identity per message, forever
    COUNTER_SHARD_COUNT: int = 16
    MAX_VOTES_PER_BATCH: int = 100

    # Results
    RESULTS_DEFAULT_LIMIT: int = 100
    RESULTS_MAX_LIMIT: int = 1000

    # Anonymous sessions (cookie issued by the HTTP layer)
    ANON_SESSION_COOKIE: str = "anon-session-id"
    ANON_SESSION_MAX_AGE_DAYS: int = 30

    # Maintenance jobs
    ENABLE_MAINTENANCE_JOBS: bool = True
    ROLLUP_INTERVAL_MINUTES: int = 15
    STORE_SWEEP_INTERVAL_MINUTES: int = 60

    # CORS origins, kept as a raw string and split on read
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Accept either a JSON list or a comma-separated string."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def idempotency_ttl_seconds(self) -> int:
        return self.IDEMPOTENCY_TTL_HOURS * 3600

    @property
    def vote_dedup_ttl_seconds(self) -> int | None:
        if self.VOTE_DEDUP_TTL_HOURS is None:
            return None
        return self.VOTE_DEDUP_TTL_HOURS * 3600


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


settings = get_settings()
