"""
Rolling buffer - the most recent N events of a feed, oldest evicted first.
"""

import threading
from collections import deque
from typing import Iterable, Tuple

from ..core.schema import Event


class RollingBuffer:
    """
    Bounded, insertion-ordered holding area for recent events.

    Appending k events to a buffer of n with cap C leaves min(n + k, C)
    events: the newest C, in arrival order. Safe to read from other threads.
    """

    def __init__(self, cap: int):
        if cap < 1:
            raise ValueError(f"Buffer cap must be >= 1: {cap}")
        self.cap = cap
        self._items = deque(maxlen=cap)
        self._lock = threading.Lock()

    def extend(self, events: Iterable[Event]) -> int:
        """Append a batch; returns the buffer length afterwards."""
        with self._lock:
            self._items.extend(events)
            return len(self._items)

    def snapshot(self) -> Tuple[Event, ...]:
        """Immutable copy of the current contents, oldest first."""
        with self._lock:
            return tuple(self._items)

    def clear(self):
        with self._lock:
            self._items.clear()

    def __len__(self):
        with self._lock:
            return len(self._items)
