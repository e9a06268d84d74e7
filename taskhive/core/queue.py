"""Priority-ordered task buffer."""
from __future__ import annotations

from typing import Callable, Generic, Iterator, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class PriorityQueue(Generic[T]):
    """Insertion-sorted queue: highest priority first, arrival order among equals."""

    def __init__(self) -> None:
        self._items: List[Tuple[int, T]] = []

    def enqueue(self, item: T, priority: int = 5) -> None:
        for index, (existing, _) in enumerate(self._items):
            if priority > existing:
                self._items.insert(index, (priority, item))
                return
        self._items.append((priority, item))

    def dequeue(self) -> Optional[T]:
        if not self._items:
            return None
        return self._items.pop(0)[1]

    def peek(self) -> Optional[T]:
        if not self._items:
            return None
        return self._items[0][1]

    def is_empty(self) -> bool:
        return not self._items

    def size(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()

    def remove_if(self, predicate: Callable[[T], bool]) -> int:
        """Drop every item matching ``predicate`` and return how many were removed."""
        kept = [(priority, item) for priority, item in self._items if not predicate(item)]
        removed = len(self._items) - len(kept)
        self._items = kept
        return removed

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return (item for _, item in list(self._items))
