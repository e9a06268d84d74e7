"""In-memory bus implementing A2A message delivery and topic pub/sub."""
from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, runtime_checkable

import structlog

from taskhive.core.errors import MessageDeliveryError
from taskhive.core.models import A2AMessage

logger = structlog.get_logger(__name__)

TopicHandler = Callable[[Any], Any]


@runtime_checkable
class MessageEndpoint(Protocol):
    """Anything that can be addressed on the bus."""

    @property
    def agent_id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def role(self) -> str: ...

    async def receive_message(self, message: A2AMessage) -> None: ...


class MessageBus(Protocol):
    """Contract agents and the orchestrator rely on."""

    async def register_agent(self, endpoint: MessageEndpoint) -> None: ...

    async def unregister_agent(self, agent_id: str) -> None: ...

    async def send(self, message: A2AMessage) -> Any: ...

    async def subscribe(self, topic: str, handler: TopicHandler) -> None: ...

    async def unsubscribe(self, topic: str, handler: TopicHandler) -> None: ...

    async def publish(self, topic: str, data: Any) -> None: ...


class A2AMessageBus:
    """Async message hub enabling agent-to-agent communication."""

    def __init__(self, *, max_log_size: int = 1000) -> None:
        self._endpoints: Dict[str, MessageEndpoint] = {}
        self._topics: Dict[str, List[TopicHandler]] = {}
        self._log: Deque[Dict[str, Any]] = deque(maxlen=max_log_size)
        self._lock = asyncio.Lock()

    async def register_agent(self, endpoint: MessageEndpoint) -> None:
        """Make the endpoint reachable under its id. Re-registering is a no-op."""
        async with self._lock:
            if self._endpoints.get(endpoint.agent_id) is endpoint:
                return
            self._endpoints[endpoint.agent_id] = endpoint
        logger.debug("bus_endpoint_registered", agent_id=endpoint.agent_id, name=endpoint.name)

    async def unregister_agent(self, agent_id: str) -> None:
        """Remove the endpoint to stop further deliveries."""
        async with self._lock:
            removed = self._endpoints.pop(agent_id, None)
        if removed is not None:
            logger.debug("bus_endpoint_unregistered", agent_id=agent_id)

    def is_registered(self, agent_id: str) -> bool:
        return agent_id in self._endpoints

    async def send(self, message: A2AMessage) -> None:
        """Deliver a message to its recipient, resolved by id, then by role or name."""
        self._record(
            {
                "type": message.kind.value,
                "message_id": message.message_id,
                "from": message.sender_id,
                "to": message.recipient_id,
                "correlation_id": message.correlation_id,
            }
        )
        target = self._resolve(message.recipient_id)
        if target is None:
            raise MessageDeliveryError(f"Target agent not found: {message.recipient_id}")
        await target.receive_message(message)

    async def subscribe(self, topic: str, handler: TopicHandler) -> None:
        handlers = self._topics.setdefault(topic, [])
        handlers.append(handler)
        logger.debug("bus_subscribed", topic=topic, subscribers=len(handlers))

    async def unsubscribe(self, topic: str, handler: TopicHandler) -> None:
        handlers = self._topics.get(topic)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._topics[topic]

    async def publish(self, topic: str, data: Any) -> None:
        """Fan out ``data`` to every subscriber of ``topic``."""
        self._record({"type": "publish", "topic": topic})
        handlers = list(self._topics.get(topic, ()))
        if not handlers:
            logger.debug("bus_no_subscribers", topic=topic)
            return
        await asyncio.gather(*(self._deliver(topic, handler, data) for handler in handlers))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "registered_agents": len(self._endpoints),
            "topics": len(self._topics),
            "message_log_size": len(self._log),
            "topic_subscribers": {topic: len(handlers) for topic, handlers in self._topics.items()},
        }

    def get_message_log(self, limit: int = 100) -> List[Dict[str, Any]]:
        return list(self._log)[-limit:]

    async def shutdown(self) -> None:
        async with self._lock:
            self._endpoints.clear()
        self._topics.clear()
        self._log.clear()

    def _resolve(self, recipient: str) -> Optional[MessageEndpoint]:
        endpoint = self._endpoints.get(recipient)
        if endpoint is not None:
            return endpoint
        for candidate in list(self._endpoints.values()):
            if candidate.role == recipient or candidate.name == recipient:
                return candidate
        return None

    async def _deliver(self, topic: str, handler: TopicHandler, data: Any) -> None:
        try:
            result = handler(data)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            logger.error("bus_subscriber_failed", topic=topic, error=str(exc))

    def _record(self, entry: Dict[str, Any]) -> None:
        entry["logged_at"] = time.time()
        self._log.append(entry)
