"""Routing and fan-out behaviour of the in-memory A2A bus."""
from __future__ import annotations

from typing import List

import pytest

from taskhive.core.errors import MessageDeliveryError
from taskhive.core.models import A2AMessage


class Recorder:
    def __init__(self, agent_id: str, name: str, role: str) -> None:
        self.agent_id = agent_id
        self.name = name
        self.role = role
        self.received: List[A2AMessage] = []

    async def receive_message(self, message: A2AMessage) -> None:
        self.received.append(message)


@pytest.mark.anyio
async def test_send_resolves_by_id_then_role_or_name(bus) -> None:
    first = Recorder("id-1", "alpha", "writer")
    second = Recorder("id-2", "beta", "reader")
    await bus.register_agent(first)
    await bus.register_agent(second)

    await bus.send(A2AMessage(sender_id="x", recipient_id="id-2", payload=1))
    await bus.send(A2AMessage(sender_id="x", recipient_id="writer", payload=2))
    await bus.send(A2AMessage(sender_id="x", recipient_id="beta", payload=3))

    assert [m.payload for m in first.received] == [2]
    assert [m.payload for m in second.received] == [1, 3]


@pytest.mark.anyio
async def test_send_to_unknown_recipient_fails(bus) -> None:
    with pytest.raises(MessageDeliveryError, match="ghost"):
        await bus.send(A2AMessage(sender_id="x", recipient_id="ghost", payload=None))


@pytest.mark.anyio
async def test_unregistered_endpoint_no_longer_receives(bus) -> None:
    endpoint = Recorder("id-1", "alpha", "writer")
    await bus.register_agent(endpoint)
    await bus.unregister_agent("id-1")

    assert not bus.is_registered("id-1")
    with pytest.raises(MessageDeliveryError):
        await bus.send(A2AMessage(sender_id="x", recipient_id="id-1", payload=None))


@pytest.mark.anyio
async def test_publish_isolates_failing_subscribers(bus) -> None:
    seen = []

    async def broken(_data) -> None:
        raise RuntimeError("subscriber down")

    def healthy(data) -> None:
        seen.append(data)

    await bus.subscribe("updates", broken)
    await bus.subscribe("updates", healthy)
    await bus.publish("updates", {"n": 1})
    await bus.unsubscribe("updates", healthy)
    await bus.publish("updates", {"n": 2})

    assert seen == [{"n": 1}]
    stats = bus.get_stats()
    assert stats["topic_subscribers"] == {"updates": 1}
    assert [entry["type"] for entry in bus.get_message_log()] == ["publish", "publish"]


@pytest.mark.anyio
async def test_publish_without_subscribers_is_quiet(bus) -> None:
    await bus.publish("nobody-listens", "data")
    await bus.shutdown()
    assert bus.get_stats()["registered_agents"] == 0
