"""Ordered-unique container keyed by entity id."""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator


class _Identified(Protocol):
    @property
    def id(self) -> str: ...


T = TypeVar("T", bound=_Identified)


class MapSet(Generic[T]):
    """A mapping from id to entity that also behaves as an ordered set.

    Iteration follows first insertion.  Overwriting an existing id keeps its
    original position, so repeated processing of the same input always
    yields the same order.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: dict[str, T] = {}
        for item in items:
            self._items[item.id] = item

    @classmethod
    def from_items(cls, *items: T) -> MapSet[T]:
        return cls(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items.values())

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in self._items
        item_id = getattr(key, "id", None)
        return isinstance(item_id, str) and item_id in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MapSet):
            return NotImplemented
        return list(self._items.items()) == list(other._items.items())

    def __repr__(self) -> str:
        return f"MapSet({list(self._items)!r})"

    def get(self, key: str | None) -> T | None:
        if key is None:
            return None
        return self._items.get(key)

    def add(self, item: T) -> None:
        """Insert or replace *item*; replacement keeps the original position."""
        self._items[item.id] = item

    def setdefault(self, item: T) -> T:
        """Insert *item* unless its id is present; return the stored entity."""
        return self._items.setdefault(item.id, item)

    def discard(self, key: str) -> None:
        self._items.pop(key, None)

    def ids(self) -> list[str]:
        return list(self._items)

    def values(self) -> list[T]:
        return list(self._items.values())

    def filter(self, predicate: Callable[[T], bool]) -> MapSet[T]:
        return MapSet(item for item in self._items.values() if predicate(item))

    def union(self, *others: Iterable[T]) -> MapSet[T]:
        """Return a new container; later entities override earlier ones by id."""
        result = MapSet(self._items.values())
        for other in others:
            for item in other:
                result.add(item)
        return result

    def copy(self) -> MapSet[T]:
        return MapSet(self._items.values())
