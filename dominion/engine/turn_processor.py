"""TurnProcessor — the per-turn scheduling state machine.

Phase cycle (Idle -> Populating -> Selecting -> Executing -> Advancing -> Idle):
  1. Populate — coordinator plans every active agent (parallel, read-only),
     results merged into queues in ascending agent-id order
  2. Select   — top ``actions_per_turn`` eligible entries of every queue
  3. Execute  — sequentially, priority then agent id; success retires,
     recoverable failure retries or exhausts, fatal failure drops
  4. Advance  — turn counter increments; untouched entries persist

Every failure mode is handled here and surfaces only in the TurnReport.
The one exception is InvariantViolation, which propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

from dominion.core.enums import ActionCategory, EnqueueStatus, Outcome, TurnPhase
from dominion.engine.action_queue import ActionQueue
from dominion.engine.priority import retry_priority
from dominion.errors import (
    FatalExecutionError,
    InvariantViolation,
    RecoverableExecutionError,
)

if TYPE_CHECKING:
    from dominion.ai.coordinator import Coordinator, PlannedAction
    from dominion.config import SchedulerConfig
    from dominion.engine.action_queue import QueuedAction
    from dominion.engine.execution import ExecutionEngine
    from dominion.engine.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class SnapshotLike(Protocol):
    """What the processor needs from a snapshot: the turn's active agents."""

    def active_agents(self) -> Sequence[int]:
        ...


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How recoverable failures are retried."""

    max_retries: int = 2
    delay_turns: int = 1
    priority_boost: float = 0.5

    def should_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.max_retries

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            delay_turns=config.retry_delay_turns,
            priority_boost=config.retry_priority_boost,
        )


@dataclass(frozen=True, slots=True)
class TurnBudget:
    """Actions attempted per agent per turn, with per-agent overrides."""

    actions_per_turn: int = 3
    overrides: Mapping[int, int] = field(default_factory=dict)

    def for_agent(self, agent_id: int) -> int:
        return self.overrides.get(agent_id, self.actions_per_turn)

    def with_override(self, agent_id: int, actions: int) -> TurnBudget:
        if actions < 0:
            raise ValueError(f"actions_per_turn must be >= 0, got {actions}")
        overrides = dict(self.overrides)
        overrides[agent_id] = actions
        return TurnBudget(self.actions_per_turn, MappingProxyType(overrides))

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> TurnBudget:
        return cls(config.actions_per_turn, MappingProxyType(dict(config.agent_actions_per_turn)))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ActionEvent:
    """One entry of the per-turn action trace."""

    turn: int
    agent_id: int
    action_id: int | None
    category: ActionCategory
    outcome: Outcome
    priority: float
    detail: str = ""

    def key(self) -> tuple[Any, ...]:
        """Comparable form used for determinism checks."""
        return (self.turn, self.agent_id, self.action_id, self.category.name,
                self.outcome.name, round(self.priority, 6), self.detail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn,
            "agent_id": self.agent_id,
            "action_id": self.action_id,
            "category": self.category.name,
            "outcome": self.outcome.name,
            "priority": self.priority,
            "detail": self.detail,
        }


_COUNTERS: dict[Outcome, str] = {
    Outcome.EXECUTED:   "executed",
    Outcome.RETRIED:    "retried",
    Outcome.EXHAUSTED:  "exhausted",
    Outcome.FATAL:      "fatal",
    Outcome.REJECTED:   "rejected",
    Outcome.EVICTED:    "evicted",
    Outcome.ELIMINATED: "eliminated",
    Outcome.MERGED:     "merged",
}


@dataclass(slots=True)
class AgentTurnReport:
    """Per-agent counters for one turn."""

    agent_id: int
    enqueued: int = 0
    executed: int = 0
    retried: int = 0
    exhausted: int = 0
    fatal: int = 0
    rejected: int = 0
    evicted: int = 0
    eliminated: int = 0
    merged: int = 0

    @property
    def dropped(self) -> int:
        """Permanent failures: retries exhausted plus fatal."""
        return self.exhausted + self.fatal

    def to_dict(self) -> dict[str, int]:
        return {
            "agent_id": self.agent_id,
            "enqueued": self.enqueued,
            "executed": self.executed,
            "retried": self.retried,
            "dropped": self.dropped,
            "exhausted": self.exhausted,
            "fatal": self.fatal,
            "rejected": self.rejected,
            "evicted": self.evicted,
            "eliminated": self.eliminated,
            "merged": self.merged,
        }


@dataclass(slots=True)
class TurnReport:
    """Everything observable about one processed turn."""

    turn: int
    agents: dict[int, AgentTurnReport] = field(default_factory=dict)
    events: list[ActionEvent] = field(default_factory=list)

    def agent(self, agent_id: int) -> AgentTurnReport:
        rep = self.agents.get(agent_id)
        if rep is None:
            rep = self.agents[agent_id] = AgentTurnReport(agent_id)
        return rep

    def record(
        self,
        agent_id: int,
        action_id: int | None,
        category: ActionCategory,
        outcome: Outcome,
        priority: float,
        detail: str = "",
    ) -> ActionEvent:
        event = ActionEvent(self.turn, agent_id, action_id, category, outcome, priority, detail)
        self.events.append(event)
        rep = self.agent(agent_id)
        name = _COUNTERS[outcome]
        setattr(rep, name, getattr(rep, name) + 1)
        return event

    def totals(self) -> dict[str, int]:
        keys = ("enqueued", "executed", "retried", "dropped", "exhausted", "fatal",
                "rejected", "evicted", "eliminated", "merged")
        totals = dict.fromkeys(keys, 0)
        for rep in self.agents.values():
            for k, v in rep.to_dict().items():
                if k in totals:
                    totals[k] += v
        return totals

    def trace(self) -> list[tuple[Any, ...]]:
        return [e.key() for e in self.events]

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn,
            "agents": [self.agents[a].to_dict() for a in sorted(self.agents)],
            "totals": self.totals(),
            "events": [e.to_dict() for e in self.events],
        }


@dataclass(frozen=True, slots=True)
class Selection:
    """An entry chosen for execution this turn."""

    agent_id: int
    action_id: int
    priority: float
    rank: int

    @property
    def order_key(self) -> tuple[float, int, int]:
        return (-self.priority, self.agent_id, self.rank)


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class TurnProcessor:
    """Owns every agent's ActionQueue and drives one turn at a time.

    Not re-entrant and not thread-safe: call ``process_turn`` from a single
    thread.  Only the Populate phase fans out to the worker pool.
    """

    __slots__ = (
        "_config",
        "_coordinator",
        "_engine",
        "_worker_pool",
        "_queues",
        "_turn",
        "_phase",
        "_retry",
        "_budget",
        "_last_report",
    )

    def __init__(
        self,
        config: SchedulerConfig,
        coordinator: Coordinator,
        engine: ExecutionEngine,
        worker_pool: WorkerPool | None = None,
        start_turn: int = 0,
    ) -> None:
        self._config = config
        self._coordinator = coordinator
        self._engine = engine
        self._worker_pool = worker_pool
        self._queues: dict[int, ActionQueue] = {}
        self._turn = start_turn
        self._phase = TurnPhase.IDLE
        self._retry = RetryPolicy.from_config(config)
        self._budget = TurnBudget.from_config(config)
        self._last_report: TurnReport | None = None

    # -- properties --

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def turn(self) -> int:
        return self._turn

    @property
    def phase(self) -> TurnPhase:
        return self._phase

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def budget(self) -> TurnBudget:
        return self._budget

    @property
    def last_report(self) -> TurnReport | None:
        return self._last_report

    @property
    def queues(self) -> Mapping[int, ActionQueue]:
        return MappingProxyType(self._queues)

    def set_agent_budget(self, agent_id: int, actions_per_turn: int) -> None:
        self._budget = self._budget.with_override(agent_id, actions_per_turn)

    # -- queue lifecycle --

    def queue_for(self, agent_id: int) -> ActionQueue:
        """The agent's queue, created on first use."""
        queue = self._queues.get(agent_id)
        if queue is None:
            queue = self._queues[agent_id] = ActionQueue(agent_id, self._config)
            logger.debug("Created action queue for agent %d", agent_id)
        return queue

    def eliminate_agent(self, agent_id: int, report: TurnReport | None = None) -> list[QueuedAction]:
        """Tear down the agent's queue; pending actions are discarded unexecuted."""
        queue = self._queues.pop(agent_id, None)
        if queue is None:
            return []
        discarded = queue.drain()
        if report is not None:
            report.agent(agent_id)
            for entry in discarded:
                report.record(agent_id, entry.action_id, entry.kind.category,
                              Outcome.ELIMINATED, entry.priority, "agent eliminated")
        logger.info(
            "Turn %d: agent %d eliminated — %d pending actions discarded",
            self._turn, agent_id, len(discarded),
        )
        return discarded

    def restore(self, turn: int, queues: Mapping[int, ActionQueue]) -> None:
        """Replace the turn counter and every queue (load from a save)."""
        if self._phase != TurnPhase.IDLE:
            raise InvariantViolation(f"restore during {self._phase.name}")
        self._turn = turn
        self._queues = dict(queues)
        self._last_report = None

    # -- turn --

    def process_turn(self, snapshot: SnapshotLike) -> TurnReport:
        """Run Populate, Select, Execute and Advance for the current turn."""
        if self._phase != TurnPhase.IDLE:
            raise InvariantViolation(f"process_turn called while {self._phase.name}")
        report = TurnReport(turn=self._turn)
        try:
            self._phase = TurnPhase.POPULATING
            self._populate(snapshot, report)

            self._phase = TurnPhase.SELECTING
            selections = self.select()

            self._phase = TurnPhase.EXECUTING
            self._execute(selections, report)

            self._phase = TurnPhase.ADVANCING
            self._turn += 1
        finally:
            self._phase = TurnPhase.IDLE

        self._last_report = report
        totals = report.totals()
        logger.debug(
            "Turn %d: executed=%d retried=%d dropped=%d rejected=%d",
            report.turn, totals["executed"], totals["retried"], totals["dropped"], totals["rejected"],
        )
        return report

    def select(self) -> list[Selection]:
        """Eligible entries for this turn, in execution order.

        Pure with respect to queue state: calling it repeatedly without
        executing returns the same list.
        """
        selections: list[Selection] = []
        for agent_id in sorted(self._queues):
            queue = self._queues[agent_id]
            limit = self._budget.for_agent(agent_id)
            for rank, action_id in enumerate(queue.peek_eligible(self._turn, limit)):
                entry = queue.get(action_id)
                selections.append(Selection(agent_id, action_id, entry.priority, rank))
        selections.sort(key=lambda s: s.order_key)
        return selections

    # -- phases --

    def _populate(self, snapshot: SnapshotLike, report: TurnReport) -> None:
        active = sorted(set(snapshot.active_agents()))
        active_set = set(active)

        for agent_id in sorted(self._queues):
            if agent_id not in active_set:
                self.eliminate_agent(agent_id, report)

        if self._worker_pool is not None:
            plans = self._worker_pool.dispatch(active, snapshot, self._coordinator.plan)
        else:
            plans = {a: self._coordinator.plan(snapshot, a) for a in active}

        for agent_id in active:
            queue = self.queue_for(agent_id)
            report.agent(agent_id)
            self._submit(agent_id, queue, plans.get(agent_id, []), report)

    def _submit(
        self,
        agent_id: int,
        queue: ActionQueue,
        planned: list[PlannedAction],
        report: TurnReport,
    ) -> None:
        for sub in self._coordinator.submit(queue, planned, self._turn):
            pa = sub.planned
            category = pa.candidate.kind.category
            result = sub.result
            if result is None:
                report.record(agent_id, None, category, Outcome.MERGED, pa.priority, "already pending")
                continue
            if result.status == EnqueueStatus.REJECTED:
                report.record(agent_id, None, category, Outcome.REJECTED, pa.priority, "queue full")
                continue
            report.agent(agent_id).enqueued += 1
            if result.status == EnqueueStatus.EVICTED and result.evicted is not None:
                ev = result.evicted
                report.record(agent_id, ev.action_id, ev.kind.category, Outcome.EVICTED,
                              ev.priority, f"evicted by #{result.action_id}")

    def _execute(self, selections: list[Selection], report: TurnReport) -> None:
        for sel in selections:
            queue = self._queues.get(sel.agent_id)
            if queue is None or sel.action_id not in queue:
                continue
            entry = queue.get(sel.action_id)
            category = entry.kind.category
            try:
                effect = self._engine.apply(sel.agent_id, entry.kind)
            except RecoverableExecutionError as exc:
                if self._retry.should_retry(entry.attempts_made):
                    new_priority = retry_priority(self._config, entry.priority)
                    queue.requeue(entry.action_id, new_priority, self._turn, self._retry.delay_turns)
                    report.record(sel.agent_id, entry.action_id, category, Outcome.RETRIED,
                                  new_priority, exc.reason)
                    logger.debug(
                        "Turn %d: agent %d %r failed (%s) — retry %d/%d",
                        self._turn, sel.agent_id, entry.kind, exc.reason,
                        entry.attempts_made, self._retry.max_retries,
                    )
                else:
                    queue.remove(entry.action_id)
                    report.record(sel.agent_id, entry.action_id, category, Outcome.EXHAUSTED,
                                  entry.priority, exc.reason)
                    logger.info(
                        "Turn %d: agent %d %r dropped after %d attempts (%s)",
                        self._turn, sel.agent_id, entry.kind, entry.attempts_made + 1, exc.reason,
                    )
            except FatalExecutionError as exc:
                queue.remove(entry.action_id)
                report.record(sel.agent_id, entry.action_id, category, Outcome.FATAL,
                              entry.priority, exc.reason)
                logger.info(
                    "Turn %d: agent %d %r is invalid (%s) — dropped",
                    self._turn, sel.agent_id, entry.kind, exc.reason,
                )
            except InvariantViolation:
                raise
            except Exception as exc:
                queue.remove(entry.action_id)
                report.record(sel.agent_id, entry.action_id, category, Outcome.FATAL,
                              entry.priority, f"engine error: {exc}")
                logger.exception(
                    "Turn %d: engine crashed applying %r for agent %d — dropped",
                    self._turn, entry.kind, sel.agent_id,
                )
            else:
                queue.remove(entry.action_id)
                report.record(sel.agent_id, entry.action_id, category, Outcome.EXECUTED,
                              entry.priority, effect.description)
