"""
Cache Manager for upstream weather, hazard and geocoding lookups.

In-memory cache with single-flight request deduplication: entries are keyed by
data type plus a lookup key (coordinates rounded to 4 decimal places, about
11 m, for location data). When several callers ask for the same missing key at
once, exactly one of them runs the fetch and the others wait for its result
instead of racing to issue duplicate API calls.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)


class _InFlightRequest:
    """A fetch in progress that other callers can wait on."""

    def __init__(self):
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class CacheManager:
    """Thread-safe TTL cache whose misses are fetched once per key."""

    # Cache durations in minutes (None = never expires)
    CACHE_DURATIONS = {
        'weather': 30,          # 30 minutes - forecasts refresh a few times an hour
        'hazard_zones': 30,     # 30 minutes - derived from weather, same cadence
        'geocode': 60 * 24 * 30,  # 30 days - place names don't move
    }
    DEFAULT_DURATION_MINUTES = 60

    # 4 decimal places = ~11m
    COORDINATE_PRECISION = 4

    def __init__(
        self,
        durations: Optional[Dict[str, Optional[float]]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            durations: Per data type TTL overrides in minutes
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.durations = dict(self.CACHE_DURATIONS)
        if durations:
            self.durations.update(durations)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, Hashable], Tuple[float, Any]] = {}
        self._in_flight: Dict[Tuple[str, Hashable], _InFlightRequest] = {}
        self._stats = {'hits': 0, 'misses': 0, 'shared_waits': 0, 'fetch_errors': 0}

    @classmethod
    def location_key(cls, latitude: float, longitude: float) -> str:
        """
        Cache key for a coordinate pair.

        Examples:
            >>> CacheManager.location_key(3.139012, 101.686855)
            '3.1390,101.6869'
        """
        precision = cls.COORDINATE_PRECISION
        return f"{latitude:.{precision}f},{longitude:.{precision}f}"

    def get_or_fetch(self, data_type: str, key: Hashable, fetch: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key``, fetching it at most once concurrently.

        Args:
            data_type: Cache namespace ('weather', 'hazard_zones', 'geocode', ...)
            key: Lookup key within the namespace
            fetch: Zero-argument callable producing the value on a miss

        Returns:
            Cached or freshly fetched value

        Raises:
            Whatever ``fetch`` raised. Every caller waiting on the same fetch
            receives the same error, and failures are not cached.
        """
        cache_key = (data_type, key)

        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is not None and not self._is_expired(data_type, entry[0]):
                self._stats['hits'] += 1
                return entry[1]

            in_flight = self._in_flight.get(cache_key)
            is_leader = in_flight is None
            if is_leader:
                in_flight = _InFlightRequest()
                self._in_flight[cache_key] = in_flight
                self._stats['misses'] += 1
            else:
                self._stats['shared_waits'] += 1

        if not is_leader:
            logger.debug(f"Waiting on in-flight {data_type} fetch for {key}")
            in_flight.done.wait()
            if in_flight.error is not None:
                raise in_flight.error
            return in_flight.result

        try:
            result = fetch()
        except BaseException as e:
            in_flight.error = e
            with self._lock:
                self._stats['fetch_errors'] += 1
            logger.warning(f"Fetch for {data_type} {key} failed: {e}")
            raise
        else:
            in_flight.result = result
            with self._lock:
                self._entries[cache_key] = (self._clock(), result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(cache_key, None)
            in_flight.done.set()

    def get_or_fetch_location(
        self,
        data_type: str,
        latitude: float,
        longitude: float,
        fetch: Callable[[], Any]
    ) -> Any:
        """get_or_fetch keyed by rounded coordinates."""
        return self.get_or_fetch(data_type, self.location_key(latitude, longitude), fetch)

    def get_cached_data(self, data_type: str, key: Hashable) -> Optional[Any]:
        """Return a fresh cached value or None, without fetching."""
        with self._lock:
            entry = self._entries.get((data_type, key))
            if entry is None or self._is_expired(data_type, entry[0]):
                return None
            return entry[1]

    def should_update(self, data_type: str, key: Hashable) -> bool:
        """True if ``key`` is missing or expired."""
        return self.get_cached_data(data_type, key) is None

    def clear_cache(self, data_type: Optional[str] = None) -> None:
        """
        Clear cache for specific data type or all

        In-flight fetches are unaffected; their results are stored when they finish.
        """
        with self._lock:
            if data_type:
                for cache_key in [k for k in self._entries if k[0] == data_type]:
                    del self._entries[cache_key]
                logger.info(f"Cleared cache for {data_type}")
            else:
                self._entries.clear()
                logger.info("Cleared all cache")

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            stats = dict(self._stats)
            stats['entries'] = len(self._entries)
            stats['in_flight'] = len(self._in_flight)
            return stats

    def _is_expired(self, data_type: str, stored_at: float) -> bool:
        duration = self.durations.get(data_type, self.DEFAULT_DURATION_MINUTES)
        if duration is None:
            return False
        return self._clock() - stored_at > duration * 60
