"""Persistence hook: per-agent queue contents to and from JSON.

Only scheduler state is saved: the turn counter, every agent's pending
actions and next sequence number.  The world snapshot and the execution
engine are rebuilt by the caller.

    text = dumps(processor)
    loads(processor, text)     # raises ValueError on bad data, processor untouched
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

from dominion.actions.kinds import kind_from_dict
from dominion.engine.action_queue import ActionQueue

if TYPE_CHECKING:
    from dominion.engine.turn_processor import TurnProcessor

logger = logging.getLogger(__name__)

SAVE_VERSION = 1


class QueuedActionRecord(BaseModel):
    action_id: int = Field(ge=1)
    kind: dict[str, Any]
    priority: float = Field(allow_inf_nan=False)
    enqueued_turn: int = Field(ge=0)
    earliest_eligible_turn: int = Field(ge=0)
    attempts_made: int = Field(0, ge=0)
    source: str = ""
    reason: str = ""

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, value: dict[str, Any]) -> dict[str, Any]:
        kind_from_dict(value)
        return value


class ActionQueueRecord(BaseModel):
    agent_id: int
    next_seq: int = Field(ge=1)
    actions: list[QueuedActionRecord] = Field(default_factory=list)


class SchedulerSave(BaseModel):
    version: int = SAVE_VERSION
    turn: int = Field(ge=0)
    config: dict[str, Any] = Field(default_factory=dict)
    queues: list[ActionQueueRecord] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if value != SAVE_VERSION:
            raise ValueError(f"unsupported save version {value} (expected {SAVE_VERSION})")
        return value

    @field_validator("queues")
    @classmethod
    def _unique_agents(cls, value: list[ActionQueueRecord]) -> list[ActionQueueRecord]:
        ids = [q.agent_id for q in value]
        if len(set(ids)) != len(ids):
            raise ValueError("duplicate agent ids in save data")
        return value


# ---------------------------------------------------------------------------
# Export / restore
# ---------------------------------------------------------------------------

def export_state(processor: TurnProcessor) -> SchedulerSave:
    queues = [
        ActionQueueRecord(
            agent_id=agent_id,
            next_seq=queue.next_seq,
            actions=[QueuedActionRecord(**r) for r in queue.export_records()],
        )
        for agent_id, queue in sorted(processor.queues.items())
    ]
    return SchedulerSave(turn=processor.turn, config=processor.config.to_dict(), queues=queues)


def restore_state(processor: TurnProcessor, save: SchedulerSave) -> None:
    """Replace the processor's queues and turn with *save*.

    Every queue is rebuilt and validated before the processor is touched,
    so a ValueError leaves it exactly as it was.
    """
    rebuilt: dict[int, ActionQueue] = {}
    for record in save.queues:
        queue = ActionQueue(record.agent_id, processor.config)
        queue.restore([a.model_dump() for a in record.actions], next_seq=record.next_seq)
        rebuilt[record.agent_id] = queue
    processor.restore(save.turn, rebuilt)
    logger.info(
        "Restored scheduler at turn %d (%d queues, %d actions)",
        save.turn, len(rebuilt), sum(len(q) for q in rebuilt.values()),
    )


def dumps(processor: TurnProcessor) -> str:
    return export_state(processor).model_dump_json(indent=2)


def loads(processor: TurnProcessor, text: str | bytes) -> SchedulerSave:
    """Parse and apply a save.  pydantic's ValidationError is a ValueError."""
    save = SchedulerSave.model_validate_json(text)
    restore_state(processor, save)
    return save


def save_to_file(processor: TurnProcessor, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dumps(processor), encoding="utf-8")
    logger.info("Scheduler state saved to %s", target)
    return target


def load_from_file(processor: TurnProcessor, path: str | Path) -> SchedulerSave:
    return loads(processor, Path(path).read_text(encoding="utf-8"))
