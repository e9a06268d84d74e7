"""Exception hierarchy shared by agents, the bus and the orchestrator."""
from __future__ import annotations


class TaskHiveError(Exception):
    """Base class for every error raised by the engine."""


class AgentStateError(TaskHiveError):
    """Raised when a lifecycle operation is not allowed in the agent's current state."""


class MessageBusUnavailable(TaskHiveError):
    """Raised when an agent needs the bus but none was configured."""


class MessageDeliveryError(TaskHiveError):
    """Raised by the bus when a message has no reachable recipient."""


class MessageTimeoutError(TaskHiveError, TimeoutError):
    """Raised when a correlated request gets no response in time."""

    def __init__(self, correlation_id: str, timeout: float) -> None:
        super().__init__(f"Message timeout after {timeout}s (correlation_id={correlation_id})")
        self.correlation_id = correlation_id
        self.timeout = timeout


class RemoteTaskError(TaskHiveError):
    """Raised on the requester side when the remote agent answered with an error."""


class TaskExecutionError(TaskHiveError):
    """Raised by agents whose task payload cannot be processed."""


class CircuitOpenError(TaskHiveError):
    """Raised when a circuit breaker refuses a call."""


class AutonomyLockedError(TaskHiveError):
    """Raised when autonomy is enabled while the emergency lock is engaged."""


class UnknownDecisionError(TaskHiveError, KeyError):
    """Raised when a decision id does not refer to a pending decision."""
