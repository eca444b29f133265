"""
Feed poller - one category, one cursor, one sequential fetch loop.

    start/retarget -> bootstrap (retried every interval until it yields a
    cursor) -> tail loop: wait interval, one tail request, apply result.

States: idle (healthy, nothing new), ok (data delivered on the last check),
error (last check failed). Every failure is absorbed into the state and the
loop keeps going, except UnsupportedCategory which parks the loop until the
feed is retargeted or restarted.

Each run owns a threading.Event cancellation token. The token is checked
before a request is issued and again, under the state lock, before a result
is applied; results of a cancelled run are dropped without touching state.
"""

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .buffer import RollingBuffer
from .client import TailClient
from .lifecycle import LifecycleCache, LifecycleConfig, LifecycleEntry, LifecyclePruner
from ..core.codec import decode_cursor, key_after
from ..core.config import BUFFER_CAP, DEFAULT_PAGE_SIZE, POLL_INTERVAL_SEC, is_lifecycle_enabled
from ..core.errors import DecodeFailure, InvalidCursor, LiveTailError, UnsupportedCategory
from ..core.schema import BootstrapResult, Event, TailResult
from ..util.logging import logger


class FeedStatus(str, Enum):
    IDLE = "idle"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class FeedState:
    """Snapshot of a feed; replaced wholesale on every transition."""

    status: FeedStatus = FeedStatus.IDLE
    cursor: Optional[str] = None
    error_message: Optional[str] = None
    total_received: int = 0
    last_event: Optional[Event] = None


def _default_lifecycle() -> Optional[LifecycleConfig]:
    return LifecycleConfig() if is_lifecycle_enabled() else None


@dataclass(frozen=True)
class PollerConfig:
    base_url: str
    category: str
    interval_sec: float = POLL_INTERVAL_SEC
    page_size: int = DEFAULT_PAGE_SIZE
    buffer_cap: int = BUFFER_CAP
    lifecycle: Optional[LifecycleConfig] = field(default_factory=_default_lifecycle)

    def __post_init__(self):
        if self.interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0: {self.interval_sec}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1: {self.page_size}")
        if self.buffer_cap < 1:
            raise ValueError(f"buffer_cap must be >= 1: {self.buffer_cap}")


class FeedPoller:
    """
    Tails one category of a live tail server into a rolling buffer and,
    when configured, a lifecycle cache.

    Args:
        config: feed configuration
        client_factory: builds a client for a base URL (tests inject fakes)
        lifecycle_cache: optional pre-built cache (tests inject clock/rng)
    """

    def __init__(self, config: PollerConfig,
                 client_factory: Callable[[str], TailClient] = TailClient,
                 lifecycle_cache: Optional[LifecycleCache] = None):
        self.config = config
        self._client_factory = client_factory
        self._client: Optional[TailClient] = None

        self.buffer = RollingBuffer(config.buffer_cap)
        self.lifecycle: Optional[LifecycleCache] = None
        self._pruner: Optional[LifecyclePruner] = None
        if config.lifecycle is not None:
            self.lifecycle = lifecycle_cache or LifecycleCache.from_config(config.lifecycle)
            self._pruner = LifecyclePruner(self.lifecycle, config.lifecycle.prune_interval_sec,
                                           name=config.category)

        self._state = FeedState()
        self._state_lock = threading.Lock()
        self._bootstrapped = False
        self._parked = False
        self._cancel = threading.Event()
        self._thread_token = self._cancel
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------ views

    @property
    def category(self) -> str:
        return self.config.category

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_parked(self) -> bool:
        return self._parked

    def buffer_snapshot(self) -> Tuple[Event, ...]:
        return self.buffer.snapshot()

    def lifecycle_snapshot(self) -> Tuple[LifecycleEntry, ...]:
        if self.lifecycle is None:
            return ()
        return self.lifecycle.snapshot()

    # -------------------------------------------------------------- lifecycle

    def start(self):
        """
        Start the poll loop (and the prune loop when lifecycle is enabled).
        Every start begins from a clean state and bootstraps again.
        """
        if self.is_running:
            phase = "still stopping" if self._thread_token.is_set() else "already running"
            raise RuntimeError(f"Feed '{self.category}' {phase}")

        self.reset()
        self._cancel = threading.Event()
        self._thread_token = self._cancel
        client = self._ensure_client()

        self._thread = threading.Thread(
            target=self._run, args=(self._cancel, client, self.config),
            name=f"livetail-feed-{self.category}", daemon=True
        )
        self._thread.start()

        if self._pruner is not None and not self._pruner.is_running:
            self._pruner.start()

        logger.log_feed_lifecycle(self.category, "start", {"base_url": self.config.base_url})

    def stop(self, timeout: Optional[float] = 1.0):
        """
        Cancel the run: no further scheduling, and the in-flight request is
        aborted by closing the client. A result that still arrives is dropped.

        State, cursor and buffers are kept; run_once() works on a stopped
        feed, start() resets it.
        """
        with self._state_lock:
            self._cancel.set()
            # Fresh token for run_once(); the cancelled thread keeps the old one
            self._cancel = threading.Event()

        if self._client is not None:
            self._client.close()
            self._client = None

        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Feed '{self.category}' thread still finishing after stop()")
            else:
                self._thread = None

        if self._pruner is not None:
            self._pruner.stop(timeout)

        logger.log_feed_lifecycle(self.category, "stop")

    def retarget(self, category: Optional[str] = None, base_url: Optional[str] = None):
        """
        Switch category and/or server. Cancels the current run, discards the
        cursor, buffer and lifecycle entries, then restarts if it was running.
        """
        was_running = self.is_running
        self.stop()

        self.config = replace(
            self.config,
            category=category if category is not None else self.config.category,
            base_url=base_url if base_url is not None else self.config.base_url,
        )
        if self._pruner is not None:
            self._pruner.name = self.config.category

        self.reset()
        logger.log_feed_lifecycle(self.category, "retarget", {"base_url": self.config.base_url})

        if was_running:
            self.start()

    def reset(self):
        """Back to the initial state: no cursor, nothing buffered, bootstrap pending."""
        with self._state_lock:
            self._state = FeedState()
            self._bootstrapped = False
            self._parked = False
            self.buffer.clear()
            if self.lifecycle is not None:
                self.lifecycle.clear()

    # ----------------------------------------------------------------- stepping

    def run_once(self) -> FeedState:
        """Perform one bootstrap-or-tail step synchronously and return the new state."""
        self._step(self._cancel, self._ensure_client(), self.config)
        return self._state

    def _ensure_client(self) -> TailClient:
        if self._client is None:
            self._client = self._client_factory(self.config.base_url)
        return self._client

    def _run(self, token: threading.Event, client: TailClient, config: PollerConfig):
        first = True
        while not token.is_set():
            if not first and token.wait(config.interval_sec):
                break
            first = False

            try:
                self._step(token, client, config)
            except Exception as e:
                # Error isolation - a bug in one step must not kill the feed
                logger.error(f"Feed '{config.category}' step failed unexpectedly: {e}")
                self._commit(token, lambda: self._set_error(f"Unexpected error: {e}"))

            if self._parked:
                break

    def _step(self, token: threading.Event, client: TailClient, config: PollerConfig):
        if token.is_set() or self._parked:
            return

        category = config.category
        phase = "tail" if self._bootstrapped else "bootstrap"
        try:
            if phase == "bootstrap":
                boot = client.bootstrap(category)
                self._commit(token, lambda: self._apply_bootstrap(boot))
            else:
                result = client.tail(category, self._state.cursor, config.page_size)
                self._commit(token, lambda: self._apply_tail(result))
        except UnsupportedCategory as e:
            logger.log_poll(category, phase, "error", {"error": str(e), "parked": True})
            self._commit(token, lambda: self._park(str(e)))
        except LiveTailError as e:
            logger.log_poll(category, phase, "error", {"error": str(e)})
            self._commit(token, lambda: self._set_error(str(e)))

    def _commit(self, token: threading.Event, apply: Callable[[], None]):
        """Apply a state change unless the run was cancelled meanwhile."""
        with self._state_lock:
            if token.is_set():
                return
            apply()

    # --------------------------------------------------------------- transitions
    # All called with _state_lock held.

    def _set_error(self, message: str):
        self._state = replace(self._state, status=FeedStatus.ERROR, error_message=message)

    def _park(self, message: str):
        self._parked = True
        self._set_error(message)

    def _apply_bootstrap(self, boot: BootstrapResult):
        if boot.cursor is None:
            # Empty collection: stay unbootstrapped, bootstrap again next tick
            self._state = replace(self._state, status=FeedStatus.IDLE, cursor=None, error_message=None)
            logger.log_poll(self.category, "bootstrap", "empty")
            return

        try:
            decode_cursor(boot.cursor)
        except InvalidCursor as e:
            self._set_error(f"Bootstrap returned an undecodable cursor: {e}")
            return

        self._bootstrapped = True
        self._state = replace(self._state, status=FeedStatus.IDLE, cursor=boot.cursor, error_message=None)
        logger.log_poll(self.category, "bootstrap", "success", {"cursor": boot.cursor})

    def _apply_tail(self, result: TailResult):
        try:
            fresh, next_cursor = self._advance(result)
        except (InvalidCursor, DecodeFailure) as e:
            self._set_error(f"Tail response rejected: {e}")
            return

        if not fresh:
            self._state = replace(self._state, status=FeedStatus.IDLE, error_message=None)
            return

        self.buffer.extend(fresh)
        if self.lifecycle is not None:
            self.lifecycle.observe(fresh)

        self._state = replace(
            self._state,
            status=FeedStatus.OK,
            cursor=next_cursor,
            error_message=None,
            total_received=self._state.total_received + len(fresh),
            last_event=fresh[-1],
        )
        logger.log_poll(self.category, "tail", "ok", {"received": len(fresh), "cursor": next_cursor})

    def _advance(self, result: TailResult) -> Tuple[List[Event], Optional[str]]:
        """
        Keep only items strictly after the current cursor (and after each
        other), and pick the new cursor. The cursor only ever moves forward.
        """
        current = self._state.cursor
        last_key = decode_cursor(current) if current else None

        fresh: List[Event] = []
        for event in result.items:
            if key_after(event.key, last_key):
                fresh.append(event)
                last_key = event.key

        if not fresh:
            return [], current

        next_cursor = fresh[-1].id
        if result.next_cursor:
            candidate = decode_cursor(result.next_cursor)
            if not key_after(fresh[-1].key, candidate):
                next_cursor = result.next_cursor
        return fresh, next_cursor

    def __repr__(self):
        return f"FeedPoller(category={self.category!r}, status={self._state.status.value})"


def make_pollers(base_url: str, categories: Sequence[str], **options) -> List[FeedPoller]:
    """One poller per category sharing the same options."""
    return [FeedPoller(PollerConfig(base_url=base_url, category=c, **options)) for c in categories]
