"""Ordering guarantees of the priority queue."""
from __future__ import annotations

from taskhive.core.queue import PriorityQueue


def test_dequeue_order_is_priority_then_arrival() -> None:
    queue: PriorityQueue[str] = PriorityQueue()
    for label, priority in [("a", 3), ("b", 9), ("c", 5), ("d", 9)]:
        queue.enqueue(label, priority)

    assert queue.peek() == "b"
    assert [queue.dequeue() for _ in range(4)] == ["b", "d", "c", "a"]
    assert queue.dequeue() is None
    assert queue.is_empty()


def test_remove_if_keeps_order_of_survivors() -> None:
    queue: PriorityQueue[dict] = PriorityQueue()
    queue.enqueue({"id": 1, "auto": True}, 5)
    queue.enqueue({"id": 2, "auto": False}, 1)
    queue.enqueue({"id": 3, "auto": True}, 7)
    queue.enqueue({"id": 4, "auto": False}, 7)

    removed = queue.remove_if(lambda item: item["auto"])

    assert removed == 2
    assert [item["id"] for item in queue] == [4, 2]
    assert len(queue) == 2


def test_default_priority_and_clear() -> None:
    queue: PriorityQueue[str] = PriorityQueue()
    queue.enqueue("low", 1)
    queue.enqueue("default")
    assert queue.dequeue() == "default"
    queue.clear()
    assert queue.size() == 0
    assert queue.peek() is None
