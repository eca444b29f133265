"""
Lifecycle cache - synthetic per-event expiry used to simulate events aging out.

Each key gets a random time-to-live the first time it is seen. A prune pass,
run on its own interval, drops expired entries and then enforces a global
size cap by evicting the entries closest to expiry.
"""

import heapq
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from ..core.codec import RecordKey
from ..core.config import LIFECYCLE_MAX_ENTRIES, PRUNE_INTERVAL_SEC, TTL_MAX_SEC, TTL_MIN_SEC
from ..core.schema import Event
from ..util.logging import logger


@dataclass(frozen=True)
class LifecycleConfig:
    """TTL bounds, prune cadence and global size cap for one feed."""

    ttl_min_sec: float = TTL_MIN_SEC
    ttl_max_sec: float = TTL_MAX_SEC
    prune_interval_sec: float = PRUNE_INTERVAL_SEC
    max_entries: int = LIFECYCLE_MAX_ENTRIES

    def __post_init__(self):
        if self.ttl_min_sec < 0 or self.ttl_max_sec < self.ttl_min_sec:
            raise ValueError("TTL bounds must satisfy 0 <= ttl_min_sec <= ttl_max_sec")
        if self.prune_interval_sec <= 0:
            raise ValueError("prune_interval_sec must be > 0")
        if self.max_entries < 1:
            raise ValueError("max_entries must be >= 1")


@dataclass(frozen=True)
class LifecycleEntry:
    event: Event
    created_at: float
    expires_at: float


@dataclass(frozen=True)
class PruneReport:
    expired: int
    evicted: int
    remaining: int


class LifecycleCache:
    """Owns all lifecycle entries; consumers only ever see snapshots."""

    def __init__(self, ttl_min_sec: float, ttl_max_sec: float, max_entries: int,
                 clock: Callable[[], float] = time.monotonic,
                 rng: Optional[random.Random] = None):
        if ttl_min_sec < 0 or ttl_max_sec < ttl_min_sec:
            raise ValueError("TTL bounds must satisfy 0 <= ttl_min_sec <= ttl_max_sec")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self.ttl_min_sec = ttl_min_sec
        self.ttl_max_sec = ttl_max_sec
        self.max_entries = max_entries
        self._clock = clock
        self._rng = rng or random.Random()
        self._entries: Dict[RecordKey, LifecycleEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: LifecycleConfig, **kwargs) -> "LifecycleCache":
        return cls(config.ttl_min_sec, config.ttl_max_sec, config.max_entries, **kwargs)

    def observe(self, events: Iterable[Event], now: Optional[float] = None) -> int:
        """
        Record a batch of events. Returns how many keys were new.

        A key seen before keeps its original created_at/expires_at; only the
        stored event is refreshed.
        """
        now = self._clock() if now is None else now
        added = 0

        with self._lock:
            for event in events:
                existing = self._entries.get(event.key)
                if existing is not None:
                    self._entries[event.key] = LifecycleEntry(event, existing.created_at, existing.expires_at)
                    continue

                ttl = self._rng.uniform(self.ttl_min_sec, self.ttl_max_sec)
                self._entries[event.key] = LifecycleEntry(event, now, now + ttl)
                added += 1

        return added

    def prune(self, now: Optional[float] = None) -> PruneReport:
        """Drop expired entries, then evict soonest-to-expire until within the cap."""
        now = self._clock() if now is None else now

        with self._lock:
            expired_keys = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired_keys:
                del self._entries[key]

            excess = len(self._entries) - self.max_entries
            evicted = 0
            if excess > 0:
                soonest = heapq.nsmallest(excess, self._entries.items(), key=lambda item: item[1].expires_at)
                for key, _ in soonest:
                    del self._entries[key]
                evicted = len(soonest)

            return PruneReport(expired=len(expired_keys), evicted=evicted, remaining=len(self._entries))

    def snapshot(self) -> Tuple[LifecycleEntry, ...]:
        """Materialized copy of the current entries, in first-seen order."""
        with self._lock:
            return tuple(self._entries.values())

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, key):
        with self._lock:
            return key in self._entries


class LifecyclePruner:
    """Runs LifecycleCache.prune() on a fixed interval in a daemon thread."""

    def __init__(self, cache: LifecycleCache, interval_sec: float, name: str = "lifecycle"):
        if interval_sec <= 0:
            raise ValueError(f"Prune interval must be > 0: {interval_sec}")
        self.cache = cache
        self.interval_sec = interval_sec
        self.name = name
        self._shutdown_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            raise RuntimeError(f"Pruner '{self.name}' already running")

        self._shutdown_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._shutdown_event,),
            name=f"livetail-prune-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 1.0):
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def run_once(self) -> PruneReport:
        start_time = time.monotonic()
        report = self.cache.prune()
        duration_ms = (time.monotonic() - start_time) * 1000
        logger.log_prune(report.expired, report.evicted, report.remaining, duration_ms)
        return report

    def _run(self, shutdown_event: threading.Event):
        while not shutdown_event.wait(self.interval_sec):
            try:
                self.run_once()
            except Exception as e:
                # Error isolation - log and keep the schedule
                logger.error(f"Lifecycle prune '{self.name}' failed: {e}")
