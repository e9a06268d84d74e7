"""CLI demonstration of orchestrator-managed agent lifecycle."""
from __future__ import annotations

import asyncio
from typing import NoReturn

from taskhive.agents.echo import EchoAgent
from taskhive.agents.learner import LearnerAgent
from taskhive.config import OrchestratorSettings
from taskhive.core.message_bus import A2AMessageBus
from taskhive.core.models import AgentConfig
from taskhive.observability import configure_structlog
from taskhive.orchestration.orchestrator import Orchestrator


async def main() -> None:
    configure_structlog()
    bus = A2AMessageBus()
    orchestrator = Orchestrator(
        bus=bus,
        agent_catalog={"echo": EchoAgent, "learner": LearnerAgent},
        settings=OrchestratorSettings(
            monitoring_interval=0.5,
            decision_interval=0.1,
            snapshot_interval=5.0,
            autonomy_enabled=True,
            decision_threshold=0.6,
        ),
    )
    await orchestrator.start()

    worker = await orchestrator.register_agent("demo-echo", AgentConfig(role="echo", capabilities=["echo"]))
    helper = await orchestrator.register_agent("demo-helper", AgentConfig(role="echo", capabilities=["echo"]))
    await orchestrator.register_agent("demo-learner", AgentConfig(role="learner"))
    print(f"Registered {worker.name} and {helper.name}")

    for index in range(4):
        orchestrator.queue_task(
            {"content": f"job {index}", "delay": 0.2},
            priority=index,
            required_capabilities=["echo"],
        )

    agent = orchestrator.get_agent_instance(worker.agent_id)
    if agent is None:
        raise RuntimeError(f"agent {worker.agent_id} vanished before delegation")
    reply = await agent.delegate_task("echo", {"content": "Hello from a peer"}, timeout=2)
    print(f"Delegated reply: {reply}")

    await asyncio.sleep(2)
    status = orchestrator.get_status()
    print(f"Completed {status['metrics']['tasks_completed']} tasks, autonomy={status['autonomy_enabled']}")

    await orchestrator.shutdown()
    print("Orchestrator stopped")


def run() -> NoReturn:
    asyncio.run(main())
    raise SystemExit(0)


if __name__ == "__main__":
    run()
