"""
Current-weather data provider using a WeatherAPI.com style endpoint.
"""
import logging
import time
from typing import Any, Dict, Optional

import requests

from utils.metrics import upstream_fetch_counter, upstream_fetch_duration

from .config import DEFAULT_API_URL
from .errors import ConfigurationError, UpstreamError
from .models import UpstreamReading

logger = logging.getLogger(__name__)


class UpstreamClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_API_URL,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.current_url = f"{self.base_url}/current.json"
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_current(self, location: str) -> UpstreamReading:
        """
        Fetch current conditions for a location.
        Returns the raw Celsius temperature and the resolved location name.
        """
        if not self.api_key:
            raise ConfigurationError(
                "Weather API key not configured", setting="WEATHER_API_KEY"
            )

        start_time = time.time()
        try:
            response = self.session.get(
                self.current_url,
                params={"key": self.api_key, "q": location},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout:
            self._observe("timeout", start_time)
            logger.error(f"Weather API timed out after {self.timeout}s for '{location}'")
            raise UpstreamError(f"Weather API timed out after {self.timeout}s")
        except requests.HTTPError as e:
            self._observe("http_error", start_time)
            message = self._error_message(e.response) or str(e)
            logger.error(f"Weather API error for '{location}': {message}")
            raise UpstreamError(message)
        except ValueError as e:
            # requests' JSONDecodeError is also a RequestException
            self._observe("invalid_payload", start_time)
            logger.error(f"Weather API returned invalid JSON for '{location}': {e}")
            raise UpstreamError("Invalid API response format")
        except requests.RequestException as e:
            self._observe("network_error", start_time)
            logger.error(f"Weather API request failed for '{location}': {e}")
            raise UpstreamError(f"Failed to fetch weather data: {e}")

        try:
            reading = self._parse(data)
        except UpstreamError:
            self._observe("invalid_payload", start_time)
            raise

        self._observe("success", start_time)
        return reading

    def _parse(self, data: Any) -> UpstreamReading:
        """Validate the response shape and extract the fields we need."""
        if not isinstance(data, dict) or not isinstance(data.get("current"), dict):
            raise UpstreamError("Invalid API response format")

        temp_c = data["current"].get("temp_c")
        if isinstance(temp_c, bool) or not isinstance(temp_c, (int, float)):
            raise UpstreamError("Invalid API response format: missing temp_c")

        location = data.get("location")
        name = location.get("name") if isinstance(location, dict) else None
        if not isinstance(name, str) or not name:
            raise UpstreamError("Invalid API response format: missing location name")

        return UpstreamReading(temp_celsius=float(temp_c), location_name=name)

    def _error_message(self, response: Optional[requests.Response]) -> Optional[str]:
        """Pull the provider's error message out of an error response, if any."""
        if response is None:
            return None
        try:
            body: Dict[str, Any] = response.json()
        except ValueError:
            return None
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error.get("message")
        return None

    def _observe(self, outcome: str, start_time: float) -> None:
        upstream_fetch_counter.labels(outcome=outcome).inc()
        upstream_fetch_duration.labels(outcome=outcome).observe(
            time.time() - start_time
        )
