"""Bounded insertion-ordered map of recently issued identifiers."""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterator


class RecentIdentifiers:
    """Map of idempotency key to nonce holding at most ``capacity`` entries.

    Eviction is oldest-inserted-first. Updating an existing key keeps its
    original position, so a replay never extends an entry's lifetime.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._entries: OrderedDict[str, int] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: str) -> int | None:
        return self._entries.get(key)

    def put(self, key: str, nonce: int) -> None:
        """Record *key*, evicting the oldest entries beyond capacity."""
        self._entries[key] = nonce
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"RecentIdentifiers(capacity={self._capacity}, size={len(self._entries)})"
