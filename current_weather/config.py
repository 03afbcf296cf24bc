"""
Environment-driven settings for the current-weather service.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ConfigurationError

DEFAULT_API_URL = "https://api.weatherapi.com/v1"


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", setting=name)
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}", setting=name)
    return value


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    cache_check_period: float = 600.0  # sweep every 10 minutes
    cache_ttl_seconds: float = 900.0  # 15 minutes
    stale_threshold_seconds: float = 3600.0  # 1 hour
    refresh_min_interval_seconds: float = 30.0
    upstream_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    environment: str = "local"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            api_url=os.getenv("WEATHER_API_URL", DEFAULT_API_URL).rstrip("/"),
            api_key=os.getenv("WEATHER_API_KEY") or None,
            cache_check_period=_read_float("CACHE_CHECK_PERIOD", 600.0),
            cache_ttl_seconds=_read_float("CACHE_TTL_SECONDS", 900.0),
            stale_threshold_seconds=_read_float("STALE_THRESHOLD_SECONDS", 3600.0),
            refresh_min_interval_seconds=_read_float(
                "REFRESH_MIN_INTERVAL_SECONDS", 30.0
            ),
            upstream_timeout_seconds=_read_float("UPSTREAM_TIMEOUT_SECONDS", 5.0),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            environment=os.getenv("DEPLOYMENT_ENV", "local"),
        )

    def require_api_key(self) -> str:
        """Return the upstream API key or fail fast."""
        if not self.api_key:
            raise ConfigurationError(
                "WEATHER_API_KEY environment variable is required",
                setting="WEATHER_API_KEY",
            )
        return self.api_key
