"""In-process LRU tier."""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from tickreplay.core.models import MarketRecord

Records = Tuple[MarketRecord, ...]


@dataclass(frozen=True)
class _Entry:
    records: Records
    inserted_at: float
    generation: int


class LocalTier:
    """
    Bounded LRU keyed by cache-key string.

    Reads reorder the LRU, so lookups and inserts share one lock. Critical
    sections never await.
    """

    def __init__(
        self,
        capacity: int,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str, generation: int) -> Optional[Records]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.generation != generation or self._expired(entry):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.records

    def put(self, key: str, records: Records, generation: int) -> None:
        with self._lock:
            self._entries[key] = _Entry(records, self._clock(), generation)
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _expired(self, entry: _Entry) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() - entry.inserted_at > self.ttl_seconds
