"""Base action kind and candidate — the universal currency between AI and World."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, ClassVar, Hashable

from dominion.core.enums import ActionCategory
from dominion.core.models import Vector2


@dataclass(frozen=True, slots=True)
class ActionKind(ABC):
    """One variant of the closed action vocabulary.

    Subclasses set ``category`` and carry the payload the execution engine
    needs.  ``target`` identifies what the action is aimed at; two kinds with
    the same category and target are the same intent.
    """

    category: ClassVar[ActionCategory]

    @property
    @abstractmethod
    def target(self) -> Hashable:
        """What the action is aimed at (a position, a civilization, a technology)."""

    @property
    def dedup_key(self) -> tuple[ActionCategory, Hashable]:
        return (self.category, self.target)

    def to_dict(self) -> dict[str, Any]:
        """Plain-JSON form: ``{"type": <category name>, <field>: <value>, ...}``."""
        data: dict[str, Any] = {"type": self.category.name}
        for f in fields(self):
            data[f.name] = _encode(getattr(self, f.name))
        return data

    def __repr__(self) -> str:
        payload = ", ".join(f"{f.name}={getattr(self, f.name)!r}" for f in fields(self))
        return f"{self.category.name}({payload})"


def _encode(value: Any) -> Any:
    if isinstance(value, Vector2):
        return [value.x, value.y]
    if isinstance(value, IntEnum):
        return value.name
    return value


@dataclass(frozen=True, slots=True)
class Candidate:
    """An action proposed by a decision layer, not yet committed to a queue.

    ``bonus`` is the situational contribution; the coordinator adds the
    category base weight to obtain the queue priority.  ``delay_turns``
    lets a planner schedule later steps of a multi-turn plan.
    """

    agent_id: int
    kind: ActionKind
    bonus: float
    source: str = ""
    reason: str = ""
    delay_turns: int = 0

    def __repr__(self) -> str:
        return (
            f"Candidate(agent={self.agent_id}, {self.kind!r}, bonus={self.bonus:.2f}, "
            f"source={self.source!r}, delay={self.delay_turns})"
        )
