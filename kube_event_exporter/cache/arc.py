"""Adaptive replacement cache.

Fixed-capacity map that balances a recency list (T1, keys seen once) and a
frequency list (T2, keys seen at least twice). Two ghost lists (B1, B2) keep
the keys recently evicted from T1 and T2; a hit in a ghost list moves the
target size ``p`` of T1 towards the list that would have kept the key, so a
one-off scan cannot flush the frequently used entries.

Not thread-safe. Callers serialise access (see MetadataCache).
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable
from typing import Any


class ARCCache:
    """Adaptive replacement cache with a fixed number of live entries."""

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError(f"cache size must be positive, got {size}")
        self._size = size
        self._p = 0
        # Oldest entry first in every list.
        self._t1: OrderedDict[Hashable, Any] = OrderedDict()
        self._t2: OrderedDict[Hashable, Any] = OrderedDict()
        self._b1: OrderedDict[Hashable, None] = OrderedDict()
        self._b2: OrderedDict[Hashable, None] = OrderedDict()

    @property
    def size(self) -> int:
        return self._size

    @property
    def target(self) -> int:
        """Current target length of the recency list."""
        return self._p

    def __len__(self) -> int:
        return len(self._t1) + len(self._t2)

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the value for *key*, promoting it to the frequency list."""
        if key in self._t1:
            value = self._t1.pop(key)
            self._t2[key] = value
            return value
        if key in self._t2:
            self._t2.move_to_end(key)
            return self._t2[key]
        return default

    def contains(self, key: Hashable) -> bool:
        """Check for a live entry without touching recency or frequency."""
        return key in self._t1 or key in self._t2

    def __contains__(self, key: Hashable) -> bool:
        return self.contains(key)

    def add(self, key: Hashable, value: Any) -> None:
        """Insert or update *key*, evicting as needed."""
        if key in self._t1:
            del self._t1[key]
            self._t2[key] = value
            return

        if key in self._t2:
            self._t2[key] = value
            self._t2.move_to_end(key)
            return

        if key in self._b1:
            # Recently evicted from T1: the recency side deserves more room.
            delta = 1 if len(self._b2) <= len(self._b1) else len(self._b2) // len(self._b1)
            self._p = min(self._p + delta, self._size)
            if len(self) >= self._size:
                self._replace(in_b2=False)
            del self._b1[key]
            self._t2[key] = value
            return

        if key in self._b2:
            delta = 1 if len(self._b1) <= len(self._b2) else len(self._b1) // len(self._b2)
            self._p = max(self._p - delta, 0)
            if len(self) >= self._size:
                self._replace(in_b2=True)
            del self._b2[key]
            self._t2[key] = value
            return

        if len(self) >= self._size:
            self._replace(in_b2=False)

        # Bound the ghost lists.
        if len(self._b1) > self._size - self._p:
            self._b1.popitem(last=False)
        if len(self._b2) > self._p:
            self._b2.popitem(last=False)

        self._t1[key] = value

    def remove(self, key: Hashable) -> None:
        for lst in (self._t1, self._t2, self._b1, self._b2):
            lst.pop(key, None)

    def keys(self) -> list[Hashable]:
        """Live keys, recency list first, oldest first within each list."""
        return [*self._t1, *self._t2]

    def purge(self) -> None:
        self._t1.clear()
        self._t2.clear()
        self._b1.clear()
        self._b2.clear()
        self._p = 0

    def _replace(self, in_b2: bool) -> None:
        """Evict one live entry into the matching ghost list."""
        t1_len = len(self._t1)
        if t1_len > 0 and (t1_len > self._p or (t1_len == self._p and in_b2) or not self._t2):
            key, _ = self._t1.popitem(last=False)
            self._b1[key] = None
        else:
            key, _ = self._t2.popitem(last=False)
            self._b2[key] = None
