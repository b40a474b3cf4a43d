"""Configuration management. All settings from environment variables with sensible defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any

logger = logging.getLogger(__name__)

_BOOL_TRUTHY = {"true", "1", "yes"}


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    name: str = "milestone"
    user: str = "milestone"
    password: str = "milestone-dev-password"
    statement_timeout_ms: int = 15000  # per-statement cap, enforced by the server

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"

    @property
    def options(self) -> str:
        """libpq options string: UTC session clock and the statement timeout."""
        return f"-c timezone=UTC -c statement_timeout={self.statement_timeout_ms}"


@dataclass(frozen=True)
class AnalyticsConfig:
    default_range_days: int = 90   # window used when a request omits start/end
    default_top_n: int = 10
    max_top_n: int = 100
    query_workers: int = 5         # parallel reads per request (backlog issues five)


@dataclass(frozen=True)
class AuthConfig:
    enabled: bool = False
    api_key: str | None = None  # Static API key (checked via X-API-Key header)
    header_name: str = "X-API-Key"


@dataclass(frozen=True)
class Config:
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    http_host: str = "0.0.0.0"
    http_port: int = 8000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


def _parse_cors_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins. '*' means allow all."""
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _BOOL_TRUTHY


def config_to_flat(config: Config) -> dict[str, Any]:
    """Serialize config to a flat dict with dot-notation keys (secrets masked)."""
    result: dict[str, Any] = {}
    for f in fields(config):
        val = getattr(config, f.name)
        if hasattr(val, "__dataclass_fields__"):
            for sf in fields(val):
                result[f"{f.name}.{sf.name}"] = getattr(val, sf.name)
        elif not isinstance(val, list):
            result[f.name] = val

    for key in ("db.password", "auth.api_key"):
        if result.get(key):
            result[key] = "••••••••"
    return result


def load_config() -> Config:
    """Load configuration from MILESTONE_* environment variables."""
    analytics = AnalyticsConfig(
        default_range_days=int(os.getenv("MILESTONE_ANALYTICS_DEFAULT_RANGE_DAYS", "90")),
        default_top_n=int(os.getenv("MILESTONE_ANALYTICS_DEFAULT_TOP_N", "10")),
        max_top_n=int(os.getenv("MILESTONE_ANALYTICS_MAX_TOP_N", "100")),
        query_workers=int(os.getenv("MILESTONE_ANALYTICS_QUERY_WORKERS", "5")),
    )
    if analytics.query_workers < 1:
        logger.warning("MILESTONE_ANALYTICS_QUERY_WORKERS=%d is invalid, using 1", analytics.query_workers)
        analytics = replace(analytics, query_workers=1)

    return Config(
        db=DatabaseConfig(
            host=os.getenv("MILESTONE_DB_HOST", "localhost"),
            port=int(os.getenv("MILESTONE_DB_PORT", "5432")),
            name=os.getenv("MILESTONE_DB_NAME", "milestone"),
            user=os.getenv("MILESTONE_DB_USER", "milestone"),
            password=os.getenv("MILESTONE_DB_PASS", "milestone-dev-password"),
            statement_timeout_ms=int(os.getenv("MILESTONE_DB_STATEMENT_TIMEOUT_MS", "15000")),
        ),
        analytics=analytics,
        auth=AuthConfig(
            enabled=_env_bool("MILESTONE_AUTH_ENABLED", "false"),
            api_key=os.getenv("MILESTONE_API_KEY") or None,
            header_name=os.getenv("MILESTONE_AUTH_HEADER", "X-API-Key"),
        ),
        http_host=os.getenv("MILESTONE_HTTP_HOST", "0.0.0.0"),
        http_port=int(os.getenv("MILESTONE_HTTP_PORT", "8000")),
        cors_origins=_parse_cors_origins(os.getenv("MILESTONE_CORS_ORIGINS", "*")),
        log_level=os.getenv("MILESTONE_LOG_LEVEL", "INFO").upper(),
    )
