"""Agent lifecycle, messaging and task-processing tests."""
from __future__ import annotations

import pytest

from taskhive.agents.base import ERROR_STATE_THRESHOLD
from taskhive.agents.echo import EchoAgent
from taskhive.agents.learner import LearnerAgent
from taskhive.core import events
from taskhive.core.errors import AgentStateError, MessageTimeoutError, RemoteTaskError
from taskhive.core.models import A2AMessage, AgentConfig, AgentDescriptor, AgentState, MessageKind


class SilentEndpoint:
    agent_id = "silent"
    name = "silent"
    role = "sink"

    async def receive_message(self, message: A2AMessage) -> None:
        return None


def make_agent(bus, name: str = "echo-1") -> EchoAgent:
    descriptor = AgentDescriptor(agent_id=f"id-{name}", name=name, config=AgentConfig(role="echo"))
    return EchoAgent(descriptor, bus, poll_interval=0.01, error_backoff=0.01)


def task_message(agent: EchoAgent, payload, priority: int = 5, requires_ack: bool = False) -> A2AMessage:
    return A2AMessage(
        sender_id="tester",
        recipient_id=agent.agent_id,
        payload=payload,
        priority=priority,
        requires_ack=requires_ack,
    )


@pytest.mark.anyio
async def test_lifecycle_state_guards(bus) -> None:
    agent = make_agent(bus)
    with pytest.raises(AgentStateError):
        await agent.start()

    await agent.initialize()
    assert agent.state is AgentState.IDLE
    with pytest.raises(AgentStateError):
        await agent.initialize()

    await agent.start()
    assert agent.is_running
    await agent.stop()
    assert agent.state is AgentState.STOPPED
    assert not agent.is_running
    assert not bus.is_registered(agent.agent_id)


@pytest.mark.anyio
async def test_request_times_out_and_clears_pending(bus) -> None:
    await bus.register_agent(SilentEndpoint())
    agent = make_agent(bus)
    await agent.initialize()

    with pytest.raises(MessageTimeoutError) as excinfo:
        await agent.send_message("silent", {"content": "anyone?"}, timeout=0.05)

    assert isinstance(excinfo.value, TimeoutError)
    assert agent.pending_request_count == 0


@pytest.mark.anyio
async def test_request_response_is_correlated(bus) -> None:
    caller = make_agent(bus, "caller")
    worker = make_agent(bus, "worker")
    for agent in (caller, worker):
        await agent.initialize()
        await agent.start()

    reply = await caller.send_message(worker.agent_id, {"content": "ping", "action": "say"}, timeout=1)

    assert reply == {"echo": "ping", "agent": "worker", "action": "say"}
    assert caller.pending_request_count == 0
    await caller.stop()
    await worker.stop()


@pytest.mark.anyio
async def test_remote_failure_rejects_the_request(bus) -> None:
    caller = make_agent(bus, "caller")
    worker = make_agent(bus, "worker")
    for agent in (caller, worker):
        await agent.initialize()
        await agent.start()

    with pytest.raises(RemoteTaskError, match="cannot comply"):
        await caller.send_message(worker.agent_id, {"fail": "cannot comply"}, timeout=1)

    await caller.stop()
    await worker.stop()


@pytest.mark.anyio
async def test_unmatched_response_is_dropped(bus) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    await agent.receive_message(
        A2AMessage(
            sender_id="someone",
            recipient_id=agent.agent_id,
            payload={"late": True},
            kind=MessageKind.RESPONSE,
            correlation_id="not-pending",
        )
    )
    assert agent.queue_size == 0


@pytest.mark.anyio
async def test_tasks_run_in_priority_order(bus, eventually) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    order = []
    agent.events.on(events.TASK_COMPLETED, lambda payload: order.append(payload["result"]["echo"]))

    for label, priority in [("a", 3), ("b", 9), ("c", 5), ("d", 9)]:
        await agent.receive_message(task_message(agent, {"content": label}, priority))
    await agent.start()

    await eventually(lambda: len(order) == 4)
    assert order == ["b", "d", "c", "a"]
    await agent.stop()


@pytest.mark.anyio
async def test_repeated_failures_move_agent_to_error(bus) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    failures = []
    agent.events.on(events.TASK_FAILED, failures.append)

    for attempt in range(ERROR_STATE_THRESHOLD):
        result = await agent.handle_task(task_message(agent, {"fail": f"bad {attempt}"}))
        assert not result.success
        expected = AgentState.ERROR if attempt == ERROR_STATE_THRESHOLD - 1 else AgentState.IDLE
        assert agent.state is expected

    assert agent.error_count == ERROR_STATE_THRESHOLD
    assert len(failures) == ERROR_STATE_THRESHOLD
    assert agent.metrics.tasks_failed == ERROR_STATE_THRESHOLD
    assert agent.descriptor.last_error == "bad 4"


@pytest.mark.anyio
async def test_restart_clears_error_log(bus) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    await agent.start()
    for _ in range(ERROR_STATE_THRESHOLD):
        await agent.handle_task(task_message(agent, {"fail": "bad"}))
    assert agent.state is AgentState.ERROR

    await agent.restart()

    assert agent.state is AgentState.IDLE
    assert agent.error_count == 0
    assert agent.is_running
    await agent.stop()


@pytest.mark.anyio
async def test_stop_with_grace_cancels_long_task(bus, eventually) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    agent.enqueue_task(task_message(agent, {"delay": 10}))
    await agent.start()
    await eventually(lambda: agent.state is AgentState.BUSY)

    await agent.stop(grace=0.05)

    assert agent.state is AgentState.STOPPED
    assert not agent.is_running
    assert agent.metrics.busy_since is None


@pytest.mark.anyio
async def test_publish_wraps_payload(bus) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    received = []
    await bus.subscribe("news", received.append)

    await agent.publish("news", {"headline": "hello"})

    assert received[0]["publisher_id"] == agent.agent_id
    assert received[0]["publisher_name"] == agent.name
    assert received[0]["topic"] == "news"
    assert received[0]["data"] == {"headline": "hello"}


@pytest.mark.anyio
async def test_status_reports_metrics(bus) -> None:
    agent = make_agent(bus)
    await agent.initialize()
    await agent.handle_task(task_message(agent, {"content": "x"}))

    status = await agent.health_check()

    assert status["state"] == "idle"
    assert status["health"] == "healthy"
    assert status["metrics"]["tasks_succeeded"] == 1
    assert agent.metrics.success_rate == 1.0


@pytest.mark.anyio
async def test_learner_keeps_a_bounded_outcome_window() -> None:
    descriptor = AgentDescriptor(
        agent_id="id-learner",
        name="learner",
        config=AgentConfig(role="learner", metadata={"history_limit": 3}),
    )
    learner = LearnerAgent(descriptor, None)

    for success in (False, False, True, True, True):
        lesson = await learner.process_task({"action": "learn", "decision": {"fingerprint": "a|b", "success": success}})

    assert list(learner.outcomes["a|b"]) == [True, True, True]
    assert lesson == {"fingerprint": "a|b", "observations": 3, "success_rate": 1.0}
