import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Small expiring map with per-entry TTL and a capacity bound.

    Entries carry their own expiry so a failed lookup can be cached for a shorter
    time than a successful one. When full, expired entries are pruned first and
    then the oldest insertion is evicted.
    """

    def __init__(self, ttl: float, max_entries: int = 512, clock: Optional[Callable[[], float]] = None):
        self.ttl = float(ttl)
        self.max_entries = max(1, int(max_entries))
        self.clock = clock or time.monotonic
        self._data: "OrderedDict[Hashable, Tuple[float, V]]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self.clock():
            del self._data[key]
            return None
        return value

    def set(self, key: Hashable, value: V, ttl: Optional[float] = None) -> None:
        expires_at = self.clock() + (self.ttl if ttl is None else float(ttl))
        if key in self._data:
            del self._data[key]
        self._data[key] = (expires_at, value)
        if len(self._data) > self.max_entries:
            self._prune()
        while len(self._data) > self.max_entries:
            self._data.popitem(last=False)

    def _prune(self) -> None:
        now = self.clock()
        for key in [k for k, (exp, _) in self._data.items() if exp <= now]:
            del self._data[key]

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
