"""Storage of items keyed by sequential ids remapped from remote span ids."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Iterator, Mapping, TypeVar

__all__ = ["Visibility", "Id", "Ids", "Store"]

T = TypeVar("T")
U = TypeVar("U")

_U64 = 1 << 64


class Visibility(enum.Enum):
    """Whether newly inserted items are shown in the current view."""

    SHOW = "show"
    HIDE = "hide"


@dataclass(frozen=True, order=True)
class Id:
    """A sequential id assigned by the console, distinct from the remote span id."""

    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass
class Ids:
    """Maps remote span ids to sequential ids."""

    next: int = 1
    map: dict[int, Id] = field(default_factory=dict)

    def id_for(self, span_id: int) -> Id:
        """Return the id for ``span_id``, allocating the next one if needed."""
        existing = self.map.get(span_id)
        if existing is not None:
            return existing
        new = Id(self.next)
        self.map[span_id] = new
        self.next = (self.next + 1) % _U64
        return new

    def get(self, span_id: int) -> Id | None:
        """Return the id already assigned to ``span_id``, if any."""
        return self.map.get(span_id)


class Store(Generic[T]):
    """Items keyed by sequential :class:`Id`, remembering newly added ones."""

    def __init__(self) -> None:
        self.ids: Ids = Ids()
        self._items: dict[Id, T] = {}
        self._new_items: list[T] = []

    def get(self, id: Id) -> T | None:
        return self._items.get(id)

    def get_by_span(self, span_id: int) -> T | None:
        id = self.ids.get(span_id)
        return None if id is None else self._items.get(id)

    def insert_with(
        self,
        visibility: Visibility,
        items: Iterable[U],
        f: Callable[[Ids, U], "tuple[Id, T] | None"],
    ) -> None:
        """Map each item through ``f`` and store the results that are not ``None``."""
        if visibility is Visibility.SHOW:
            self._new_items.clear()
        for item in items:
            mapped = f(self.ids, item)
            if mapped is None:
                continue
            id, value = mapped
            self._new_items.append(value)
            self._items[id] = value

    def updated(
        self, update: "Mapping[int, U] | Iterable[tuple[int, U]]"
    ) -> Iterator["tuple[U, T]"]:
        """Yield ``(update, item)`` for each update whose span id is stored."""
        pairs = update.items() if isinstance(update, Mapping) else update
        for span_id, value in pairs:
            item = self.get_by_span(span_id)
            if item is not None:
                yield value, item

    def retain(self, predicate: Callable[[Id, T], bool]) -> None:
        """Remove every item for which ``predicate`` returns false."""
        removed = [id for id, item in self._items.items() if not predicate(id, item)]
        for id in removed:
            del self._items[id]
        if removed:
            live = {builtin_id(v) for v in self._items.values()}
            self._new_items = [v for v in self._new_items if builtin_id(v) in live]

    def take_new_items(self) -> list[T]:
        """Return and forget the items added since the last call."""
        taken, self._new_items = self._new_items, []
        return taken

    def values(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def items(self) -> Iterator["tuple[Id, T]"]:
        return iter(list(self._items.items()))

    def __iter__(self) -> Iterator["tuple[Id, T]"]:
        return self.items()

    def __len__(self) -> int:
        return len(self._items)


builtin_id = id