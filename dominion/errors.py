"""Exception types raised by the scheduler and the execution engine."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for every error raised by this package."""


class InvariantViolation(SchedulerError):
    """A programming invariant was broken (e.g. a NaN priority)."""


class UnknownActionError(SchedulerError, KeyError):
    """A queue lookup referenced an id that is not (or no longer) queued."""

    def __init__(self, agent_id: int, action_id: int) -> None:
        super().__init__(f"Agent {agent_id} has no queued action #{action_id}")
        self.agent_id = agent_id
        self.action_id = action_id

    def __str__(self) -> str:
        return self.args[0]


class ExecutionError(SchedulerError):
    """Raised by an ExecutionEngine when an action cannot be applied."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RecoverableExecutionError(ExecutionError):
    """The target is transiently invalid; the action may be retried."""


class FatalExecutionError(ExecutionError):
    """The action is structurally invalid and must be dropped."""
