"""
Cache implementation for current-weather snapshots with TTL support.

Entries expire lazily on read and are also removed by a background sweep,
so keys that are queried once and never again do not accumulate.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from utils.metrics import cache_entries_gauge, cache_swept_counter

from .models import WeatherSnapshot

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    snapshot: WeatherSnapshot
    expires_at: float  # seconds since epoch

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class FreshnessCache:
    def __init__(
        self,
        ttl_seconds: float = 900,  # 15 minutes
        check_period: float = 600,  # sweep every 10 minutes
        clock: Clock = time.time,
        start_sweeper: bool = True,
    ):
        self.ttl_seconds = ttl_seconds
        self.check_period = check_period
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._entries_lock = threading.Lock()
        self._refreshes: Dict[str, float] = {}
        self._refreshes_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        if start_sweeper:
            self.start()

    def __enter__(self) -> "FreshnessCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def __len__(self) -> int:
        with self._entries_lock:
            return len(self._entries)

    def get(self, key: str, now: Optional[float] = None) -> Optional[WeatherSnapshot]:
        """Get cached snapshot if not expired; drop it if it is."""
        snapshot, _ = self.lookup(key, now)
        return snapshot

    def lookup(
        self, key: str, now: Optional[float] = None
    ) -> Tuple[Optional[WeatherSnapshot], Optional[WeatherSnapshot]]:
        """
        Like get, but also hand back an entry evicted for being expired.

        Returns (fresh, evicted); at most one of them is set.
        """
        now = self._clock() if now is None else now

        with self._entries_lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, None
            if entry.is_expired(now):
                del self._entries[key]
                cache_entries_gauge.set(len(self._entries))
                logger.debug(f"Cache entry expired on read: {key}")
                return None, entry.snapshot
            return entry.snapshot, None

    def get_stale(self, key: str) -> Optional[WeatherSnapshot]:
        """Get the stored snapshot regardless of TTL, without evicting it."""
        with self._entries_lock:
            entry = self._entries.get(key)
        return entry.snapshot if entry else None

    def set(
        self, key: str, snapshot: WeatherSnapshot, now: Optional[float] = None
    ) -> None:
        """Cache snapshot, replacing any previous entry for the key."""
        now = self._clock() if now is None else now
        entry = CacheEntry(snapshot=snapshot, expires_at=now + self.ttl_seconds)

        with self._entries_lock:
            self._entries[key] = entry
            cache_entries_gauge.set(len(self._entries))

    def record_refresh(self, location: str, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        with self._refreshes_lock:
            self._refreshes[location] = now

    def last_refresh(self, location: str) -> Optional[float]:
        with self._refreshes_lock:
            return self._refreshes.get(location)

    def keys(self) -> List[str]:
        """Snapshot of the stored keys, expired or not."""
        with self._entries_lock:
            return list(self._entries)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove every expired entry. Returns how many were removed."""
        now = self._clock() if now is None else now

        with self._entries_lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        cache_entries_gauge.set(remaining)
        if expired:
            cache_swept_counter.inc(len(expired))
            logger.info(
                f"Cache sweep removed {len(expired)} expired entries "
                f"({remaining} remaining)"
            )
        return len(expired)

    def clear(self) -> None:
        """Clear all cached data and refresh history."""
        with self._entries_lock, self._refreshes_lock:
            self._entries.clear()
            self._refreshes.clear()
        cache_entries_gauge.set(0)

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def start(self) -> None:
        """Start the periodic sweep thread."""
        if self.sweeping:
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper, name="freshness-cache-sweeper", daemon=True
        )
        self._sweeper.start()
        logger.info(f"Cache sweeper started (period={self.check_period}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the sweep thread and wait for it to exit."""
        sweeper = self._sweeper
        if sweeper is None:
            return
        self._stop_event.set()
        sweeper.join(timeout)
        self._sweeper = None
        logger.info("Cache sweeper stopped")

    def _run_sweeper(self) -> None:
        while not self._stop_event.wait(self.check_period):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
