"""
Error taxonomy for the current-weather service.
"""
from typing import Optional


class WeatherServiceError(Exception):
    """Base class for all service errors."""

    code = "INTERNAL_ERROR"


class UpstreamError(WeatherServiceError):
    """Upstream provider failed: network, timeout, bad payload or implausible data."""

    code = "WEATHER_API_ERROR"


class RateLimitedError(WeatherServiceError):
    """Manual refresh requested too soon after the previous one."""

    code = "RATE_LIMIT_ERROR"

    def __init__(self, location: str, retry_after: float, min_interval: float = 30):
        self.location = location
        self.retry_after = retry_after
        self.min_interval = min_interval
        super().__init__(
            f"Please wait at least {min_interval:g} seconds between manual updates"
        )


class ConfigurationError(WeatherServiceError):
    """Server-side misconfiguration, e.g. a missing upstream API key."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: Optional[str] = None):
        self.setting = setting
        super().__init__(message)
