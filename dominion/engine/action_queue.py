"""Per-agent bounded priority queue of pending actions.

Entries are ordered by ``(-priority, enqueued_turn, seq)``: higher priority
first, then older enqueue turn, then the per-queue monotonic sequence number.
The sequence number doubles as the entry id, so ids are stable across
requeues and across save/load.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Hashable, Iterator

from dominion.actions.kinds import kind_from_dict
from dominion.config import SchedulerConfig
from dominion.core.enums import EnqueueStatus
from dominion.engine.priority import ensure_finite
from dominion.errors import UnknownActionError

if TYPE_CHECKING:
    from dominion.actions.base import ActionKind

logger = logging.getLogger(__name__)

SortKey = tuple[float, int, int]


@dataclass(slots=True)
class QueuedAction:
    """One pending action, owned by its ActionQueue."""

    action_id: int
    kind: ActionKind
    priority: float
    enqueued_turn: int
    earliest_eligible_turn: int
    attempts_made: int = 0
    source: str = ""
    reason: str = ""

    @property
    def sort_key(self) -> SortKey:
        return (-self.priority, self.enqueued_turn, self.action_id)

    def is_eligible(self, turn: int) -> bool:
        return self.earliest_eligible_turn <= turn

    def to_record(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "kind": self.kind.to_dict(),
            "priority": self.priority,
            "enqueued_turn": self.enqueued_turn,
            "earliest_eligible_turn": self.earliest_eligible_turn,
            "attempts_made": self.attempts_made,
            "source": self.source,
            "reason": self.reason,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> QueuedAction:
        return cls(
            action_id=int(data["action_id"]),
            kind=kind_from_dict(data["kind"]),
            priority=float(data["priority"]),
            enqueued_turn=int(data["enqueued_turn"]),
            earliest_eligible_turn=int(data["earliest_eligible_turn"]),
            attempts_made=int(data.get("attempts_made", 0)),
            source=str(data.get("source", "")),
            reason=str(data.get("reason", "")),
        )

    def __repr__(self) -> str:
        return (
            f"QueuedAction(#{self.action_id}, {self.kind!r}, p={self.priority:.2f}, "
            f"attempts={self.attempts_made}, eligible@{self.earliest_eligible_turn})"
        )


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of ``ActionQueue.enqueue``.

    ``action_id`` is the id of the retained new entry, or None when the
    candidate was rejected.  ``evicted_id`` names the resident entry pushed
    out to make room, if any.
    """

    status: EnqueueStatus
    action_id: int | None = None
    evicted_id: int | None = None
    evicted: QueuedAction | None = None

    @property
    def accepted(self) -> bool:
        return self.status != EnqueueStatus.REJECTED


class ActionQueue:
    """Bounded ordered multiset of QueuedAction for a single agent.

    Not thread-safe: the TurnProcessor is the only mutator.
    """

    __slots__ = ("agent_id", "_config", "_entries", "_order", "_next_seq")

    def __init__(self, agent_id: int, config: SchedulerConfig | None = None) -> None:
        self.agent_id = agent_id
        self._config = config or SchedulerConfig()
        self._entries: dict[int, QueuedAction] = {}
        self._order: list[tuple[SortKey, int]] = []
        self._next_seq: int = 1

    # -- properties --

    @property
    def max_size(self) -> int:
        return self._config.max_queue_size

    @property
    def next_seq(self) -> int:
        return self._next_seq

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._entries

    def __iter__(self) -> Iterator[QueuedAction]:
        """Entries in priority order."""
        for _key, aid in list(self._order):
            yield self._entries[aid]

    def is_full(self) -> bool:
        return len(self._order) >= self._config.max_queue_size

    def ready_count(self, turn: int) -> int:
        return sum(1 for e in self._entries.values() if e.is_eligible(turn))

    def has_pending(self, dedup_key: Hashable) -> bool:
        return self.pending_id(dedup_key) is not None

    def pending_id(self, dedup_key: Hashable) -> int | None:
        """Id of the best-ranked entry with this intent, if any."""
        for _key, aid in self._order:
            if self._entries[aid].kind.dedup_key == dedup_key:
                return aid
        return None

    # -- core operations --

    def enqueue(
        self,
        kind: ActionKind,
        priority: float,
        current_turn: int,
        delay_turns: int = 0,
        source: str = "",
        reason: str = "",
    ) -> EnqueueResult:
        """Insert a new entry, evicting the lowest-priority one on overflow.

        If the queue is full and the new entry would itself be the minimum
        (ties favour residents), it is rejected and the queue is unchanged.
        """
        if delay_turns < 0:
            raise ValueError(f"delay_turns must be >= 0, got {delay_turns}")
        priority = ensure_finite(priority, self._config, f"agent {self.agent_id} {kind!r}")

        seq = self._next_seq
        key: SortKey = (-priority, current_turn, seq)
        evicted: QueuedAction | None = None

        if self.is_full():
            lowest_key, lowest_id = self._order[-1]
            if key > lowest_key:
                logger.debug(
                    "Agent %d: rejected %r (p=%.2f) — queue full, minimum p=%.2f",
                    self.agent_id, kind, priority, -lowest_key[0],
                )
                return EnqueueResult(status=EnqueueStatus.REJECTED)
            self._order.pop()
            evicted = self._entries.pop(lowest_id)
            logger.debug(
                "Agent %d: evicted #%d %r (p=%.2f) for %r (p=%.2f)",
                self.agent_id, evicted.action_id, evicted.kind, evicted.priority, kind, priority,
            )

        self._next_seq += 1
        entry = QueuedAction(
            action_id=seq,
            kind=kind,
            priority=priority,
            enqueued_turn=current_turn,
            earliest_eligible_turn=current_turn + delay_turns,
            source=source,
            reason=reason,
        )
        self._entries[seq] = entry
        bisect.insort(self._order, (key, seq))

        if evicted is not None:
            return EnqueueResult(
                status=EnqueueStatus.EVICTED, action_id=seq,
                evicted_id=evicted.action_id, evicted=evicted,
            )
        return EnqueueResult(status=EnqueueStatus.ACCEPTED, action_id=seq)

    def peek_eligible(self, current_turn: int, limit: int) -> list[int]:
        """Ids of the top *limit* entries eligible at *current_turn*, best first.

        Non-destructive: calling it twice on the same state returns the same
        list.  Entries scheduled for a later turn are skipped but kept.
        """
        if limit <= 0:
            return []
        selected: list[int] = []
        for _key, aid in self._order:
            if self._entries[aid].earliest_eligible_turn <= current_turn:
                selected.append(aid)
                if len(selected) >= limit:
                    break
        return selected

    def get(self, action_id: int) -> QueuedAction:
        try:
            return self._entries[action_id]
        except KeyError:
            raise UnknownActionError(self.agent_id, action_id) from None

    def remove(self, action_id: int) -> QueuedAction:
        """Remove an entry after a terminal outcome."""
        entry = self.get(action_id)
        self._order.remove((entry.sort_key, action_id))
        del self._entries[action_id]
        return entry

    def requeue(
        self,
        action_id: int,
        new_priority: float,
        current_turn: int,
        delay_turns: int = 0,
    ) -> QueuedAction:
        """Reinsert a failed entry for another attempt.

        ``attempts_made`` is incremented; the original enqueue turn and
        sequence number are kept so the entry does not lose its tie-break
        position to later arrivals.
        """
        if delay_turns < 0:
            raise ValueError(f"delay_turns must be >= 0, got {delay_turns}")
        entry = self.get(action_id)
        new_priority = ensure_finite(new_priority, self._config, f"agent {self.agent_id} retry")
        self._order.remove((entry.sort_key, action_id))
        entry.priority = new_priority
        entry.attempts_made += 1
        entry.earliest_eligible_turn = current_turn + delay_turns
        bisect.insort(self._order, (entry.sort_key, action_id))
        return entry

    def promote(self, action_id: int, priority: float) -> QueuedAction:
        """Raise a pending entry to *priority* if that is higher.

        Attempts, eligibility, enqueue turn and sequence number are untouched.
        """
        entry = self.get(action_id)
        priority = ensure_finite(priority, self._config, f"agent {self.agent_id} promote")
        if priority > entry.priority:
            self._order.remove((entry.sort_key, action_id))
            entry.priority = priority
            bisect.insort(self._order, (entry.sort_key, action_id))
        return entry

    def drain(self) -> list[QueuedAction]:
        """Remove and return every entry (queue teardown)."""
        drained = [self._entries[aid] for _key, aid in self._order]
        self._entries.clear()
        self._order.clear()
        return drained

    # -- persistence --

    def export_records(self) -> list[dict[str, Any]]:
        return [entry.to_record() for entry in self]

    def restore(self, records: list[dict[str, Any]], next_seq: int | None = None) -> None:
        """Replace the contents with *records* (from ``export_records``).

        Raises ValueError when the records would break the queue's
        invariants (duplicate ids, over capacity, non-finite priority).
        """
        entries = [QueuedAction.from_record(r) for r in records]
        if len(entries) > self._config.max_queue_size:
            raise ValueError(
                f"Agent {self.agent_id}: {len(entries)} saved actions exceed "
                f"max_queue_size {self._config.max_queue_size}"
            )
        ids = [e.action_id for e in entries]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Agent {self.agent_id}: duplicate action ids in save data")
        highest = max(ids, default=0)
        if next_seq is None:
            next_seq = highest + 1
        elif next_seq <= highest:
            raise ValueError(
                f"Agent {self.agent_id}: next_seq {next_seq} must exceed highest id {highest}"
            )
        for e in entries:
            if not math.isfinite(e.priority):
                raise ValueError(f"Agent {self.agent_id}: action #{e.action_id} has priority {e.priority!r}")

        self._entries = {e.action_id: e for e in entries}
        self._order = sorted((e.sort_key, e.action_id) for e in entries)
        self._next_seq = next_seq

    def __repr__(self) -> str:
        return f"ActionQueue(agent={self.agent_id}, size={len(self)}/{self.max_size})"
