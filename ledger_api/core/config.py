"""
Configuration helpers for the ledger backend.

Routers, services and the persistence layer read settings through
`get_settings()` instead of touching os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    auth_secret_key: str
    token_ttl_seconds: int
    referral_bonus: int
    leaderboard_limit: int
    db_lock_timeout_ms: int
    log_level: str
    log_json: bool | None
    api_host: str
    api_port: int
    cors_origins: tuple[str, ...]
    trusted_proxies: tuple[str, ...]


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool | None = False) -> bool | None:
        if value is None or not value.strip():
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    def _csv(value: str) -> tuple[str, ...]:
        return tuple(item.strip().rstrip("/") for item in value.split(",") if item.strip())

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        database_url=os.getenv("DATABASE_URL", ""),
        auth_secret_key=os.getenv("AUTH_SECRET_KEY", ""),
        token_ttl_seconds=_int(os.getenv("TOKEN_TTL_SECONDS", "86400"), 86400),
        referral_bonus=_int(os.getenv("REFERRAL_BONUS", "80"), 80),
        leaderboard_limit=max(1, _int(os.getenv("LEADERBOARD_LIMIT", "10"), 10)),
        db_lock_timeout_ms=max(0, _int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"), 5000)),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        log_json=_bool(os.getenv("LOG_JSON"), None),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_int(os.getenv("API_PORT", "8080"), 8080),
        cors_origins=_csv(os.getenv("CORS_ORIGINS", "")),
        trusted_proxies=_csv(os.getenv("TRUSTED_PROXIES", "")),
    )
