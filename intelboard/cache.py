"""
In-memory TTL cache for upstream intel feeds.

Sits between the route handlers and the third-party APIs so that
repeated dashboard polls are served from memory instead of hitting
rate-limited upstreams on every request.

Expiry rule: an entry is stale once ``now - timestamp > ttl``. Stale
entries are dropped lazily on read and by a periodic background sweep,
so keys nobody reads again do not accumulate forever.

There is no size bound. Under sustained distinct-key traffic with long
TTLs memory grows until the next sweep; the host application must cap
key cardinality if that matters.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Sweep every 5 minutes unless configured otherwise
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


def _now_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class CacheEntry:
    """Stored value with the clock reading at write time and its TTL (ms)."""
    data: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class CacheStore:
    """
    Thread-safe TTL key/value store.

    All reads and writes go through a single re-entrant lock, so a sweep
    can never interleave with a concurrent ``set`` on the same key.

    Args:
        clock: Callable returning the current time in milliseconds.
               Defaults to a monotonic clock; tests pass a fake one.
        sweep_interval: Seconds between background sweeps.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        sweep_interval: Optional[float] = None,
    ):
        self._clock = clock or _now_ms
        self.sweep_interval = sweep_interval or DEFAULT_SWEEP_INTERVAL_SECONDS

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

        # Background sweeper state
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def get(self, key: str) -> Optional[Any]:
        """
        Get cached value by key.

        Returns None if absent or expired. An expired entry is removed
        as a side effect.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug(f'Cache miss: {key}')
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug(f'Cache expired: {key}')
                return None

            logger.debug(f'Cache hit: {key}')
            return entry.data

    def set(self, key: str, data: Any, ttl: float) -> None:
        """Insert or overwrite ``key`` with a TTL in milliseconds."""
        with self._lock:
            self._entries[key] = CacheEntry(data=data, timestamp=self._clock(), ttl=ttl)

    def invalidate(self, key: str) -> None:
        """Remove specific entry, whether fresh or stale."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        """
        Get entry count and keys.

        Entries that expired but were not read or swept yet are still
        counted.
        """
        with self._lock:
            return {
                'size': len(self._entries),
                'keys': list(self._entries.keys()),
            }

    def cleanup(self) -> int:
        """Remove every expired entry. Returns count removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f'Cache sweep removed {len(expired)} expired entries')
        return len(expired)

    # -------------------------------------------------------------------------
    # Background sweep
    # -------------------------------------------------------------------------

    def _run_sweeper(self, interval: float) -> None:
        logger.info(f'Cache sweeper started (interval={interval}s)')
        while not self._stop_event.wait(interval):
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f'Cache sweep failed: {e}')
        logger.info('Cache sweeper stopped')

    def start(self, interval: Optional[float] = None) -> None:
        """Start the periodic sweep in a background thread."""
        if self.is_running:
            logger.warning('Cache sweeper already running')
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_sweeper,
            args=(interval or self.sweep_interval,),
            name='cache-sweeper',
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5) -> None:
        """Stop the periodic sweep and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # Still running; start() must stay a no-op until it exits
                logger.warning(f'Cache sweeper did not stop within {timeout}s')
                return
            self._thread = None

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
