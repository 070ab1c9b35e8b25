"""Scheduling engine: queues, turn processor, execution and worker pool."""

from dominion.engine.action_queue import ActionQueue, EnqueueResult, QueuedAction
from dominion.engine.execution import Effect, ExecutionEngine, WorldExecutionEngine
from dominion.engine.turn_processor import (
    ActionEvent,
    AgentTurnReport,
    RetryPolicy,
    Selection,
    TurnBudget,
    TurnProcessor,
    TurnReport,
)
from dominion.engine.worker_pool import WorkerPool

__all__ = [
    "ActionEvent",
    "ActionQueue",
    "AgentTurnReport",
    "Effect",
    "EnqueueResult",
    "ExecutionEngine",
    "QueuedAction",
    "RetryPolicy",
    "Selection",
    "TurnBudget",
    "TurnProcessor",
    "TurnReport",
    "WorkerPool",
    "WorldExecutionEngine",
]
