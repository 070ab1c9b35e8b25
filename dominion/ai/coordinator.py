"""AI Coordinator: merges decision-layer output into an agent's queue.

Per agent per turn:
  1. call every layer once with the same snapshot (a crashing layer is
     logged and skipped)
  2. de-duplicate on (category, target), keeping the highest priority
  3. clamp priority into [priority_floor, priority_ceiling]
  4. keep the best ``max_candidates_per_agent``
  5. enqueue the survivors, best first

``plan`` is pure and runs on worker threads; ``submit`` mutates the queue
and runs on the turn thread.  Nothing is remembered between turns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, Sequence

from dominion.engine.priority import clamp, raw_priority
from dominion.errors import InvariantViolation

if TYPE_CHECKING:
    from dominion.actions.base import Candidate
    from dominion.ai.base import DecisionLayer
    from dominion.config import SchedulerConfig
    from dominion.core.models import AgentId
    from dominion.core.snapshot import WorldSnapshot
    from dominion.engine.action_queue import ActionQueue, EnqueueResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlannedAction:
    """A merged candidate with its final (clamped) queue priority."""

    candidate: Candidate
    priority: float

    @property
    def dedup_key(self) -> Hashable:
        return self.candidate.kind.dedup_key


@dataclass(frozen=True, slots=True)
class Submission:
    """What happened to one PlannedAction at enqueue time.

    ``result`` is None when the intent was already pending in the queue and
    the candidate was merged into it (the pending entry keeps the higher
    of the two priorities) instead of being enqueued again.
    """

    planned: PlannedAction
    result: EnqueueResult | None = None

    @property
    def merged(self) -> bool:
        return self.result is None


class Coordinator:
    """Stateless merge of decision-layer candidates."""

    __slots__ = ("_config", "_layers")

    def __init__(self, config: SchedulerConfig, layers: Sequence[DecisionLayer] = ()) -> None:
        self._config = config
        self._layers: tuple[DecisionLayer, ...] = tuple(layers)

    @property
    def layers(self) -> tuple[DecisionLayer, ...]:
        return self._layers

    def gather(self, snapshot: WorldSnapshot, agent: AgentId) -> list[Candidate]:
        """Raw candidates from every layer, in layer order."""
        candidates: list[Candidate] = []
        for layer in self._layers:
            try:
                proposed = layer.propose(snapshot, agent)
            except InvariantViolation:
                raise
            except Exception:
                logger.exception("Layer %s failed for agent %d — skipping layer", layer.name, agent)
                continue
            for c in proposed:
                if c.agent_id != agent:
                    logger.warning(
                        "Layer %s proposed %r for agent %d while planning agent %d — ignored",
                        layer.name, c.kind, c.agent_id, agent,
                    )
                    continue
                candidates.append(c)
        return candidates

    def merge(self, candidates: Sequence[Candidate]) -> list[PlannedAction]:
        """De-duplicate, clamp and truncate; result is best first.

        Among duplicates the highest unclamped priority wins; exact ties keep
        the earliest candidate (layer order).
        """
        cfg = self._config
        best: dict[Hashable, tuple[float, int, Candidate]] = {}
        for index, c in enumerate(candidates):
            raw = raw_priority(cfg, c.kind.category, c.bonus)
            key = c.kind.dedup_key
            current = best.get(key)
            if current is None or raw > current[0]:
                best[key] = (raw, current[1] if current else index, c)

        ranked = sorted(best.values(), key=lambda item: (-item[0], item[1]))
        limit = cfg.max_candidates_per_agent
        if len(ranked) > limit:
            logger.debug("Truncating %d merged candidates to %d", len(ranked), limit)
            ranked = ranked[:limit]
        return [PlannedAction(candidate=c, priority=clamp(raw, cfg)) for raw, _i, c in ranked]

    def plan(self, snapshot: WorldSnapshot, agent: AgentId) -> list[PlannedAction]:
        """Gather and merge for one agent.  Read-only; safe on worker threads."""
        return self.merge(self.gather(snapshot, agent))

    def submit(
        self,
        queue: ActionQueue,
        planned: Sequence[PlannedAction],
        current_turn: int,
    ) -> list[Submission]:
        """Enqueue *planned* into *queue* in order and report each outcome."""
        submissions: list[Submission] = []
        for pa in planned:
            c = pa.candidate
            if self._config.merge_pending_duplicates:
                pending = queue.pending_id(pa.dedup_key)
                if pending is not None:
                    queue.promote(pending, pa.priority)
                    submissions.append(Submission(planned=pa))
                    continue
            result = queue.enqueue(
                c.kind, pa.priority, current_turn,
                delay_turns=c.delay_turns, source=c.source, reason=c.reason,
            )
            submissions.append(Submission(planned=pa, result=result))
        return submissions
