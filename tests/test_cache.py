"""
Unit tests for the freshness cache.
"""
import threading
import time

from current_weather.cache import CacheEntry, FreshnessCache
from current_weather.models import WeatherSnapshot, WeatherStatus

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_snapshot(temperature: float = 21.5, location: str = "Paris") -> WeatherSnapshot:
    return WeatherSnapshot(
        temperature=temperature,
        unit="°C",
        location=location,
        timestamp="Updated at 10:00",
        status=WeatherStatus.ONLINE,
        fetched_at=int(T0 * 1000),
    )


class TestCacheEntry:
    def test_not_expired_at_boundary(self):
        """Entry is still valid exactly at its expiry instant."""
        entry = CacheEntry(snapshot=make_snapshot(), expires_at=T0 + 900)
        assert entry.is_expired(T0 + 900) is False

    def test_expired_after_boundary(self):
        entry = CacheEntry(snapshot=make_snapshot(), expires_at=T0 + 900)
        assert entry.is_expired(T0 + 900.001) is True


class TestFreshnessCacheOperations:
    def setup_method(self):
        """Setup test fixtures."""
        self.clock = FakeClock()
        self.cache = FreshnessCache(clock=self.clock, start_sweeper=False)
        self.snapshot = make_snapshot()

    def test_cache_initialization_defaults(self):
        cache = FreshnessCache(start_sweeper=False)
        assert cache.ttl_seconds == 900
        assert cache.check_period == 600
        assert len(cache) == 0
        assert cache.sweeping is False

    def test_set_and_get_data(self):
        self.cache.set("Paris_celsius", self.snapshot)
        assert self.cache.get("Paris_celsius") is self.snapshot

    def test_get_nonexistent_key(self):
        assert self.cache.get("Nowhere_celsius") is None

    def test_cache_overwrite_same_key(self):
        self.cache.set("Paris_celsius", self.snapshot)
        newer = make_snapshot(temperature=23.0)
        self.cache.set("Paris_celsius", newer)

        assert self.cache.get("Paris_celsius") is newer
        assert len(self.cache) == 1

    def test_overwrite_resets_expiry(self):
        self.cache.set("Paris_celsius", self.snapshot)
        self.clock.advance(800)
        self.cache.set("Paris_celsius", self.snapshot)
        self.clock.advance(800)

        assert self.cache.get("Paris_celsius") is self.snapshot

    def test_keys_are_independent(self):
        self.cache.set("Paris_celsius", self.snapshot)
        assert self.cache.get("Paris_fahrenheit") is None
        assert self.cache.keys() == ["Paris_celsius"]

    def test_keys_returns_copy(self):
        self.cache.set("Paris_celsius", self.snapshot)
        keys = self.cache.keys()
        keys.clear()
        assert self.cache.keys() == ["Paris_celsius"]

    def test_clear_empties_entries_and_refresh_times(self):
        self.cache.set("Paris_celsius", self.snapshot)
        self.cache.record_refresh("Paris")

        self.cache.clear()

        assert len(self.cache) == 0
        assert self.cache.get("Paris_celsius") is None
        assert self.cache.last_refresh("Paris") is None


class TestFreshnessCacheTTL:
    def setup_method(self):
        """Setup test fixtures."""
        self.clock = FakeClock()
        self.cache = FreshnessCache(ttl_seconds=900, clock=self.clock, start_sweeper=False)
        self.snapshot = make_snapshot()
        self.cache.set("Paris_celsius", self.snapshot)

    def test_ttl_not_expired(self):
        self.clock.advance(899)
        assert self.cache.get("Paris_celsius") is self.snapshot

    def test_ttl_exact_boundary_is_hit(self):
        self.clock.advance(900)
        assert self.cache.get("Paris_celsius") is self.snapshot

    def test_ttl_expired_returns_none_and_evicts(self):
        self.clock.advance(901)

        assert self.cache.get("Paris_celsius") is None
        assert "Paris_celsius" not in self.cache.keys()

    def test_clean_hit_has_no_side_effect(self):
        self.cache.get("Paris_celsius")
        assert self.cache.keys() == ["Paris_celsius"]

    def test_explicit_now_overrides_clock(self):
        assert self.cache.get("Paris_celsius", now=T0 + 901) is None

    def test_get_stale_ignores_ttl(self):
        self.clock.advance(5000)
        assert self.cache.get_stale("Paris_celsius") is self.snapshot
        # Still stored: get_stale never evicts
        assert self.cache.keys() == ["Paris_celsius"]

    def test_get_stale_after_lazy_eviction(self):
        self.clock.advance(901)
        self.cache.get("Paris_celsius")
        assert self.cache.get_stale("Paris_celsius") is None

    def test_lookup_hit(self):
        assert self.cache.lookup("Paris_celsius") == (self.snapshot, None)

    def test_lookup_returns_evicted_snapshot(self):
        self.clock.advance(901)

        fresh, evicted = self.cache.lookup("Paris_celsius")

        assert fresh is None
        assert evicted is self.snapshot
        assert self.cache.keys() == []

    def test_lookup_missing_key(self):
        assert self.cache.lookup("Berlin_celsius") == (None, None)


class TestRefreshTimes:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = FreshnessCache(clock=self.clock, start_sweeper=False)

    def test_last_refresh_absent(self):
        assert self.cache.last_refresh("Tokyo") is None

    def test_record_refresh_uses_clock(self):
        self.cache.record_refresh("Tokyo")
        assert self.cache.last_refresh("Tokyo") == T0

    def test_record_refresh_overwrites(self):
        self.cache.record_refresh("Tokyo", now=T0)
        self.cache.record_refresh("Tokyo", now=T0 + 45)
        assert self.cache.last_refresh("Tokyo") == T0 + 45

    def test_refresh_times_survive_sweep(self):
        self.cache.record_refresh("Tokyo")
        self.clock.advance(10 * 3600)
        self.cache.sweep()
        assert self.cache.last_refresh("Tokyo") == T0


class TestSweep:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = FreshnessCache(ttl_seconds=900, clock=self.clock, start_sweeper=False)

    def test_sweep_removes_only_expired_entries(self):
        self.cache.set("Paris_celsius", make_snapshot())
        self.clock.advance(600)
        self.cache.set("Tokyo_celsius", make_snapshot(location="Tokyo"))
        self.clock.advance(400)

        removed = self.cache.sweep()

        assert removed == 1
        assert self.cache.keys() == ["Tokyo_celsius"]

    def test_sweep_without_reads(self):
        """Expired entries disappear even if never read via get."""
        for city in ("Paris", "Tokyo", "Lima"):
            self.cache.set(f"{city}_celsius", make_snapshot(location=city))

        assert self.cache.sweep(now=T0 + 901) == 3
        assert self.cache.keys() == []

    def test_sweep_keeps_entry_at_boundary(self):
        self.cache.set("Paris_celsius", make_snapshot())
        assert self.cache.sweep(now=T0 + 900) == 0
        assert len(self.cache) == 1

    def test_sweep_empty_cache(self):
        assert self.cache.sweep() == 0


class TestSweeperThread:
    def test_background_sweep_removes_expired_entries(self):
        cache = FreshnessCache(ttl_seconds=0.01, check_period=0.02)
        try:
            cache.set("Paris_celsius", make_snapshot())
            deadline = time.time() + 2
            while cache.keys() and time.time() < deadline:
                time.sleep(0.01)
            assert cache.keys() == []
        finally:
            cache.stop()

    def test_stop_terminates_thread(self):
        cache = FreshnessCache(check_period=3600)
        thread = cache._sweeper
        assert thread.is_alive()

        cache.stop()

        assert cache.sweeping is False
        assert not thread.is_alive()

    def test_stop_is_idempotent(self):
        cache = FreshnessCache(check_period=3600)
        cache.stop()
        cache.stop()
        assert cache.sweeping is False

    def test_start_after_stop(self):
        cache = FreshnessCache(check_period=3600, start_sweeper=False)
        cache.start()
        cache.start()  # no second thread
        assert cache.sweeping is True
        cache.stop()
        assert cache.sweeping is False

    def test_context_manager_stops_sweeper(self):
        with FreshnessCache(check_period=3600) as cache:
            assert cache.sweeping is True
        assert cache.sweeping is False


class TestConcurrency:
    def test_concurrent_set_and_get(self):
        cache = FreshnessCache(start_sweeper=False)
        errors = []

        def worker(n):
            try:
                for i in range(200):
                    key = f"City{n}-{i % 10}_celsius"
                    cache.set(key, make_snapshot(location=f"City{n}"))
                    cache.get(key)
                    cache.record_refresh(f"City{n}")
                    cache.sweep()
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(cache) == 80

    def test_clear_during_writes(self):
        rounds = 50
        cache = FreshnessCache(start_sweeper=False)

        def writer():
            for i in range(rounds):
                cache.set(f"Paris{i}_celsius", make_snapshot())

        thread = threading.Thread(target=writer)
        thread.start()
        for _ in range(rounds):
            cache.clear()
        thread.join()

        cache.clear()
        assert len(cache) == 0
