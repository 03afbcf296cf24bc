"""
Weather domain model - immutable snapshots independent of any API.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict


class TemperatureUnit(str, Enum):
    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"

    @property
    def symbol(self) -> str:
        return "°C" if self is TemperatureUnit.CELSIUS else "°F"


class WeatherStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    OUTDATED = "outdated"


@dataclass(frozen=True)
class UpstreamReading:
    """Raw result of one upstream call, before conversion."""

    temp_celsius: float
    location_name: str


@dataclass(frozen=True)
class WeatherSnapshot:
    """Result of one successful fetch. Never mutated once built."""

    temperature: float  # one fractional digit, in the requested unit
    unit: str  # "°C" or "°F"
    location: str  # display name as returned by upstream
    timestamp: str  # e.g. "Updated at 14:05"
    status: WeatherStatus
    fetched_at: int  # milliseconds since epoch

    def with_status(self, status: WeatherStatus) -> "WeatherSnapshot":
        """Return a copy carrying a different freshness status."""
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "unit": self.unit,
            "location": self.location,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "fetchedAt": self.fetched_at,
        }


def make_cache_key(location: str, unit: TemperatureUnit) -> str:
    """Generate cache key from location and unit."""
    return f"{location}_{TemperatureUnit(unit).value}"
