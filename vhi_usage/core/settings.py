"""Environment-driven configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_DEADLINE_SECONDS = 300.0
DEFAULT_CACHE_TTL_SECONDS = 60.0


def _env_str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    return value.strip() if value and value.strip() else default


def _env_float(name: str, default: float, *, minimum: float = 0.0) -> float:
    try:
        value = float(os.getenv(name, ""))
    except ValueError:
        return default
    if value != value or value < minimum:  # NaN or out of range
        return default
    return value


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    try:
        value = int(os.getenv(name, ""))
    except ValueError:
        return default
    return value if value >= minimum else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime settings; every field has a safe default."""

    api_bearer_token: str = ""
    domains_file: Path = Path("domain.txt")

    keystone_url: str = ""
    admin_username: str = ""
    admin_password: str = ""
    admin_domain_name: str = ""
    admin_domain_id: str = ""
    admin_project_name: str = ""

    gnocchi_url: str = ""
    gnocchi_token: str = ""
    nova_url: str = ""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    deadline_seconds: float = DEFAULT_DEADLINE_SECONDS
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    upstream_timeout_seconds: float = 30.0
    upstream_verify_tls: bool = False
    overcommit_ratio: float = 8.0

    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    log_level: str = "INFO"

    @property
    def cache_enabled(self) -> bool:
        return self.cache_ttl_seconds > 0

    @classmethod
    def from_environment(cls) -> Settings:
        """Load configuration from environment variables."""

        defaults = cls()
        origins = [origin.strip() for origin in _env_str("API_CORS_ORIGINS").split(",") if origin.strip()]
        return cls(
            api_bearer_token=_env_str("API_BEARER_TOKEN"),
            domains_file=Path(_env_str("DOMAINS_FILE", str(defaults.domains_file))).expanduser(),
            keystone_url=_env_str("KEYSTONE_URL"),
            admin_username=_env_str("ADMIN_USERNAME"),
            admin_password=os.getenv("ADMIN_PASSWORD", ""),
            admin_domain_name=_env_str("ADMIN_DOMAIN_NAME"),
            admin_domain_id=_env_str("ADMIN_DOMAIN_ID"),
            admin_project_name=_env_str("ADMIN_PROJECT_NAME"),
            gnocchi_url=_env_str("GNOCCHI_URL"),
            gnocchi_token=_env_str("GNOCCHI_TOKEN"),
            nova_url=_env_str("NOVA_URL"),
            max_concurrency=_env_int("USAGE_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY),
            deadline_seconds=_env_float("USAGE_DEADLINE_SECONDS", DEFAULT_DEADLINE_SECONDS, minimum=0.001),
            cache_ttl_seconds=_env_float("CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS),
            upstream_timeout_seconds=_env_float("UPSTREAM_TIMEOUT_SECONDS", 30.0, minimum=0.001),
            upstream_verify_tls=_env_bool("UPSTREAM_VERIFY_TLS", False),
            overcommit_ratio=_env_float("OVERCOMMIT_RATIO", 8.0, minimum=0.001),
            cors_origins=origins or defaults.cors_origins,
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )


__all__ = ["Settings"]
