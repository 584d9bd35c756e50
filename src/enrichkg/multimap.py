"""
multimap.py — MultiMap: a key → set-of-values container.

Keys keep their insertion order and are unique; each key maps to a set, so
repeated insertions are idempotent.  Used wherever the analysis groups by
resource or by identifier.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class MultiMap(Generic[K, V]):
    """
    Insertion-ordered mapping from a key to a set of values.

    ``None`` keys are rejected with :class:`TypeError`.
    """

    __slots__ = ("_map",)

    def __init__(self) -> None:
        self._map: dict[K, set[V]] = {}

    def _bucket(self, key: K) -> set[V]:
        if key is None:
            raise TypeError("MultiMap keys cannot be None")
        bucket = self._map.get(key)
        if bucket is None:
            bucket = self._map[key] = set()
        return bucket

    def add(self, key: K, value: V) -> None:
        """Add *value* to the set stored under *key*."""
        self._bucket(key).add(value)

    def add_many(self, key: K, values: Iterable[V]) -> None:
        """
        Union *values* into the set stored under *key*.

        The key is registered even when *values* is empty.
        """
        self._bucket(key).update(values)

    def merge(self, other: MultiMap[K, V]) -> None:
        """Union every key of *other* into this map."""
        for key, values in other._map.items():
            self._bucket(key).update(values)

    def get(self, key: K) -> set[V]:
        """
        Return a copy of the values under *key*.

        :return: The value set, or an empty set if *key* is absent.
        """
        return set(self._map.get(key, ()))

    def keys(self) -> list[K]:
        return list(self._map)

    def values(self) -> set[V]:
        """Return all values, deduplicated across keys."""
        out: set[V] = set()
        for bucket in self._map.values():
            out.update(bucket)
        return out

    def items(self) -> Iterator[tuple[K, set[V]]]:
        for key, bucket in self._map.items():
            yield key, set(bucket)

    def is_empty(self) -> bool:
        return not self._map

    def __contains__(self, key: object) -> bool:
        return key in self._map

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._map))

    def __len__(self) -> int:
        return len(self._map)

    def __bool__(self) -> bool:
        return bool(self._map)

    def __repr__(self) -> str:
        return f"MultiMap({self._map!r})"
