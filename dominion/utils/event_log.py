"""Thread-safe bounded feed of scheduler events exposed via the API."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class SchedulerEvent:
    """A single entry in the event feed."""

    turn: int
    category: str
    message: str
    agent_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn,
            "category": self.category,
            "message": self.message,
            "agent_ids": list(self.agent_ids),
        }


class EventLog:
    """Bounded event log.  Writers append; readers copy a slice.

    Keeps the most recent ``capacity`` events; older ones fall off the front.
    """

    __slots__ = ("_buffer", "_lock")

    def __init__(self, capacity: int = 5000) -> None:
        self._buffer: deque[SchedulerEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._buffer.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def append(self, event: SchedulerEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def append_many(self, events: list[SchedulerEvent]) -> None:
        with self._lock:
            self._buffer.extend(events)

    def since_turn(self, turn: int) -> list[SchedulerEvent]:
        """Return all retained events with turn >= *turn*."""
        with self._lock:
            return [e for e in self._buffer if e.turn >= turn]

    def for_agent(self, agent_id: int, count: int = 50) -> list[SchedulerEvent]:
        with self._lock:
            items = [e for e in self._buffer if agent_id in e.agent_ids]
        return items[-count:]

    def latest(self, count: int = 50) -> list[SchedulerEvent]:
        """Return the *count* most recent events."""
        with self._lock:
            items = list(self._buffer)
        return items[-count:] if count > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()
