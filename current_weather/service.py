"""
Weather service: get-or-fetch, rate-limited manual refresh and offline fallback
on top of the freshness cache.
"""
import logging
import time
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Union

from utils.metrics import (
    cache_lookup_counter,
    offline_fallback_counter,
    refresh_rate_limited_counter,
)

from .cache import FreshnessCache
from .errors import RateLimitedError, UpstreamError
from .models import TemperatureUnit, WeatherSnapshot, WeatherStatus, make_cache_key
from .provider import UpstreamClient

logger = logging.getLogger(__name__)

MIN_PLAUSIBLE_CELSIUS = -90.0
MAX_PLAUSIBLE_CELSIUS = 60.0


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def round_one_decimal(value: float) -> float:
    """Round half away from zero to one decimal place."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_timestamp(now: float) -> str:
    """Format a fetch instant as 'Updated at HH:MM' in server local time."""
    return f"Updated at {datetime.fromtimestamp(now).strftime('%H:%M')}"


class WeatherOrchestrator:
    def __init__(
        self,
        client: UpstreamClient,
        cache: FreshnessCache,
        stale_threshold_seconds: float = 3600,  # 1 hour
        refresh_min_interval_seconds: float = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.cache = cache
        self.stale_threshold_seconds = stale_threshold_seconds
        self.refresh_min_interval_seconds = refresh_min_interval_seconds
        self._clock = clock

    def get_current_weather(
        self, location: str, unit: Union[TemperatureUnit, str] = TemperatureUnit.CELSIUS
    ) -> WeatherSnapshot:
        """
        Return current weather for a location, served from cache when possible.

        Cache hits are relabeled 'outdated' once older than the stale
        threshold; the stored snapshot itself is never modified.
        """
        unit = TemperatureUnit(unit)
        key = make_cache_key(location, unit)
        now = self._clock()

        cached, evicted = self.cache.lookup(key, now=now)
        if cached is not None:
            cache_lookup_counter.labels(result="hit").inc()
            age_ms = now * 1000 - cached.fetched_at
            if age_ms > self.stale_threshold_seconds * 1000:
                status = WeatherStatus.OUTDATED
            else:
                status = WeatherStatus.ONLINE
            logger.debug(
                f"Cache hit for {key} (age: {age_ms / 1000:.1f}s, status: {status.value})"
            )
            return cached.with_status(status)

        cache_lookup_counter.labels(result="miss").inc()
        logger.debug(f"Cache miss for {key}, fetching from provider")
        return self._fetch_and_store(location, unit, fallback=evicted)

    def can_refresh(self, location: str, now: Optional[float] = None) -> bool:
        """Check whether a manual refresh is allowed for this location."""
        return self._retry_after(location, now) <= 0

    def refresh_weather(
        self, location: str, unit: Union[TemperatureUnit, str] = TemperatureUnit.CELSIUS
    ) -> WeatherSnapshot:
        """
        Force a fetch from the provider, bypassing the cached value.

        Raises:
            RateLimitedError: if the location was fetched less than the
                minimum interval ago, whatever the unit.
        """
        unit = TemperatureUnit(unit)
        retry_after = self._retry_after(location)
        if retry_after > 0:
            refresh_rate_limited_counter.inc()
            logger.warning(
                f"Refresh for '{location}' rejected, retry in {retry_after:.1f}s"
            )
            raise RateLimitedError(
                location, retry_after, self.refresh_min_interval_seconds
            )

        return self._fetch_and_store(location, unit)

    def _retry_after(self, location: str, now: Optional[float] = None) -> float:
        last = self.cache.last_refresh(location)
        if last is None:
            return 0.0
        now = self._clock() if now is None else now
        return self.refresh_min_interval_seconds - (now - last)

    def _fetch_and_store(
        self,
        location: str,
        unit: TemperatureUnit,
        fallback: Optional[WeatherSnapshot] = None,
    ) -> WeatherSnapshot:
        """
        Fetch, convert and cache a fresh snapshot.

        On an upstream failure the stored entry for the key is served with
        status offline, or `fallback` when nothing is stored (the caller
        may just have evicted it as expired).
        """
        key = make_cache_key(location, unit)

        try:
            reading = self.client.fetch_current(location)

            temp_c = reading.temp_celsius
            if not MIN_PLAUSIBLE_CELSIUS <= temp_c <= MAX_PLAUSIBLE_CELSIUS:
                raise UpstreamError(
                    f"Temperature value outside plausible range: {temp_c}°C"
                )

            if unit is TemperatureUnit.FAHRENHEIT:
                temperature = celsius_to_fahrenheit(temp_c)
            else:
                temperature = temp_c

        except UpstreamError as e:
            stale = self.cache.get_stale(key) or fallback
            if stale is None:
                logger.error(f"Fetch failed for {key} and no cached data: {e}")
                raise

            offline_fallback_counter.inc()
            logger.warning(f"Fetch failed for {key}, serving cached data offline: {e}")
            return stale.with_status(WeatherStatus.OFFLINE)

        now = self._clock()
        snapshot = WeatherSnapshot(
            temperature=round_one_decimal(temperature),
            unit=unit.symbol,
            location=reading.location_name,
            timestamp=format_timestamp(now),
            status=WeatherStatus.ONLINE,
            fetched_at=int(now * 1000),
        )

        self.cache.set(key, snapshot, now=now)
        self.cache.record_refresh(location, now=now)

        logger.info(
            f"Fetched weather for {key}: {snapshot.temperature}{snapshot.unit}"
        )
        return snapshot
