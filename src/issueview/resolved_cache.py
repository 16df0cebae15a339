"""Bounded LRU cache of resolved issues."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterator

from .models import ResolvedIssue

DEFAULT_CAPACITY = 50


class ResolvedObjectCache:
    """Key -> ResolvedIssue with least-recently-used eviction.

    Both ``get`` hits and ``set`` calls mark an entry most recently used. The
    capacity is fixed at construction. Entries only leave through eviction.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        # Oldest entries at the front
        self._data: OrderedDict[str, ResolvedIssue] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: str) -> ResolvedIssue | None:
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key: str, value: ResolvedIssue) -> None:
        if key in self._data:
            self._data.move_to_end(key)
            self._data[key] = value
            return
        if len(self._data) >= self._capacity:
            self._data.popitem(last=False)
        self._data[key] = value

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        return list(self._data.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data.keys()))
