import time
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class _Entry:
    expires_at: float
    value: Any


class TTLCache:
    """Small in-process cache; entries live for ``ttl_s`` seconds."""

    def __init__(
        self,
        *,
        max_items: int = 1000,
        ttl_s: int = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_items = max(1, int(max_items or 1))
        self._ttl_s = max(1, int(ttl_s or 1))
        self._clock = clock
        self._items: dict[str, _Entry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._evict_if_needed()
        self._items[key] = _Entry(expires_at=self._clock() + self._ttl_s, value=value)

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value)
        return value

    def clear(self) -> None:
        self._items.clear()

    def _evict_if_needed(self) -> None:
        if len(self._items) < self._max_items:
            return
        now = self._clock()
        for k in list(self._items.keys()):
            if self._items[k].expires_at <= now:
                self._items.pop(k, None)
        while len(self._items) >= self._max_items and self._items:
            self._items.pop(next(iter(self._items)), None)
