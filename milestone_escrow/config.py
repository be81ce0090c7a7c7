"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()

# Recognised API key scopes
API_SCOPES = {"user", "admin"}


class Settings(BaseSettings):
    """Environment configuration for the milestone escrow backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///milestone_escrow.db"
    SECRET_KEY: str = "change-me"
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    # --- Scheduler -------------------------------------------------------
    SCHEDULER_ENABLED: bool = False
    STALLED_WORK_SCAN_MINUTES: int = 60

    # --- Escrow lifecycle ------------------------------------------------
    # When true every milestone becomes pending on activation; otherwise
    # milestone N+1 unlocks only once milestone N is approved.
    INDEPENDENT_MILESTONE_RELEASE: bool = False
    ABANDONED_PROJECT_DAYS: int = 7

    # --- On-chain contract -----------------------------------------------
    ESCROW_CONTRACT_ADDRESS: str = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
    ESCROW_CONTRACT_NAME: str = "escrow-multi-token-v4"
    SBTC_CONTRACT_ADDRESS: str = "ST1F7QA2MDF17S807EPA36TSS8AMEFY4KA9TVGWXT"
    SBTC_CONTRACT_NAME: str = "sbtc-token"
    STACKS_API_URL: str = "https://api.testnet.hiro.so"
    STACKS_READ_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("SENTRY_DSN")
    @classmethod
    def _strip_empty_dsn(cls, value: str | None) -> str | None:
        """Normalise empty DSNs to ``None`` so Sentry stays disabled."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("ABANDONED_PROJECT_DAYS")
    @classmethod
    def _positive_days(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ABANDONED_PROJECT_DAYS must be positive")
        return value


class AppInfo(BaseModel):
    name: str = "milestone-escrow-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "API_SCOPES",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
