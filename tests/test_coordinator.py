"""Tests for the AI Coordinator: gather, merge, submit."""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dominion.actions.kinds import Defend, Research, Trade
from dominion.ai.base import DecisionLayer
from dominion.ai.coordinator import Coordinator
from dominion.config import SchedulerConfig
from dominion.core.enums import EnqueueStatus
from dominion.core.models import Vector2
from dominion.engine.action_queue import ActionQueue
from dominion.errors import InvariantViolation


class _FixedLayer(DecisionLayer):
    def __init__(self, name, items):
        self._name = name
        self._items = items

    @property
    def name(self):
        return self._name

    def propose(self, snapshot, agent):
        return [self.candidate(agent, kind, bonus) for kind, bonus in self._items]


class _CrashingLayer(DecisionLayer):
    def __init__(self, exc):
        self._exc = exc

    @property
    def name(self):
        return "crashing"

    def propose(self, snapshot, agent):
        raise self._exc


class _ForeignLayer(DecisionLayer):
    @property
    def name(self):
        return "foreign"

    def propose(self, snapshot, agent):
        return [self.candidate(agent + 1, Research(technology="Writing"), 1.0)]


def _config(**overrides):
    overrides.setdefault("category_base_weights", {})
    return SchedulerConfig(**overrides)


def _tech(i):
    return Research(technology=f"Tech {i}")


# ---------------------------------------------------------------------------
# Gather
# ---------------------------------------------------------------------------

class TestGather:
    def test_layers_called_in_order(self):
        a = _FixedLayer("a", [(_tech(1), 1.0)])
        b = _FixedLayer("b", [(_tech(2), 2.0)])
        coord = Coordinator(_config(), [a, b])
        assert [c.source for c in coord.gather(None, 0)] == ["a", "b"]

    def test_crashing_layer_skipped(self, caplog):
        good = _FixedLayer("good", [(_tech(1), 1.0)])
        coord = Coordinator(_config(), [_CrashingLayer(RuntimeError("boom")), good])
        with caplog.at_level("ERROR"):
            candidates = coord.gather(None, 0)
        assert [c.kind for c in candidates] == [_tech(1)]
        assert "Layer crashing failed" in caplog.text

    def test_invariant_violation_propagates(self):
        coord = Coordinator(_config(), [_CrashingLayer(InvariantViolation("nan"))])
        with pytest.raises(InvariantViolation):
            coord.gather(None, 0)

    def test_foreign_candidates_ignored(self):
        coord = Coordinator(_config(), [_ForeignLayer()])
        assert coord.gather(None, 0) == []


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

class TestMerge:
    def test_duplicates_keep_highest(self):
        a = _FixedLayer("a", [(_tech(1), 2.0)])
        b = _FixedLayer("b", [(_tech(1), 6.0)])
        coord = Coordinator(_config(), [a, b])
        planned = coord.plan(None, 0)
        assert len(planned) == 1
        assert planned[0].priority == 6.0
        assert planned[0].candidate.source == "b"

    def test_exact_tie_keeps_earliest_layer(self):
        a = _FixedLayer("a", [(_tech(1), 3.0)])
        b = _FixedLayer("b", [(_tech(1), 3.0)])
        planned = Coordinator(_config(), [a, b]).plan(None, 0)
        assert planned[0].candidate.source == "a"

    def test_base_weight_added_and_clamped(self):
        layer = _FixedLayer("a", [(Defend(position=Vector2(1, 1)), 15.0), (Trade(partner=2), 0.5)])
        planned = Coordinator(SchedulerConfig(), [layer]).plan(None, 0)
        assert [p.priority for p in planned] == [20.0, 1.5]

    def test_negative_priority_clamped_to_floor(self):
        layer = _FixedLayer("a", [(_tech(1), -5.0)])
        assert Coordinator(_config(), [layer]).plan(None, 0)[0].priority == 0.0

    def test_truncated_to_best(self):
        layer = _FixedLayer("a", [(_tech(i), float(i)) for i in range(10)])
        planned = Coordinator(_config(max_candidates_per_agent=3), [layer]).plan(None, 0)
        assert [p.priority for p in planned] == [9.0, 8.0, 7.0]

    def test_nan_bonus_strict(self):
        layer = _FixedLayer("a", [(_tech(1), float("nan"))])
        with pytest.raises(InvariantViolation):
            Coordinator(_config(), [layer]).plan(None, 0)

    def test_stateless_between_calls(self):
        layer = _FixedLayer("a", [(_tech(1), 4.0)])
        coord = Coordinator(_config(), [layer])
        assert coord.plan(None, 0) == coord.plan(None, 0)


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------

class TestSubmit:
    def test_enqueues_best_first(self):
        config = _config()
        layer = _FixedLayer("a", [(_tech(1), 1.0), (_tech(2), 5.0)])
        coord = Coordinator(config, [layer])
        queue = ActionQueue(0, config)
        subs = coord.submit(queue, coord.plan(None, 0), current_turn=0)
        assert [s.result.status for s in subs] == [EnqueueStatus.ACCEPTED] * 2
        assert [e.kind for e in queue] == [_tech(2), _tech(1)]
        assert next(iter(queue)).source == "a"

    def test_pending_intent_enqueued_again_by_default(self):
        config = _config()
        coord = Coordinator(config, [_FixedLayer("a", [(_tech(1), 1.0)])])
        queue = ActionQueue(0, config)
        coord.submit(queue, coord.plan(None, 0), 0)
        subs = coord.submit(queue, coord.plan(None, 0), 1)
        assert subs[0].result.status == EnqueueStatus.ACCEPTED
        assert len(queue) == 2

    def test_pending_intent_merged_when_enabled(self):
        config = _config(merge_pending_duplicates=True)
        coord = Coordinator(config, [_FixedLayer("a", [(_tech(1), 1.0)])])
        queue = ActionQueue(0, config)
        coord.submit(queue, coord.plan(None, 0), 0)
        subs = coord.submit(queue, coord.plan(None, 0), 1)
        assert subs[0].merged
        assert len(queue) == 1

    def test_merge_raises_pending_priority(self):
        config = _config(merge_pending_duplicates=True)
        defend = Defend(position=Vector2(3, 3))
        queue = ActionQueue(0, config)
        aid = queue.enqueue(defend, 10.0, 0).action_id
        coord = Coordinator(config, [_FixedLayer("a", [(defend, 18.0)])])
        subs = coord.submit(queue, coord.plan(None, 0), 1)
        assert subs[0].merged
        (entry,) = list(queue)
        assert entry.action_id == aid
        assert entry.priority == 18.0
        assert entry.enqueued_turn == 0

    def test_merge_never_lowers_pending_priority(self):
        config = _config(merge_pending_duplicates=True)
        defend = Defend(position=Vector2(3, 3))
        queue = ActionQueue(0, config)
        queue.enqueue(defend, 10.0, 0)
        coord = Coordinator(config, [_FixedLayer("a", [(defend, 2.0)])])
        coord.submit(queue, coord.plan(None, 0), 1)
        assert [e.priority for e in queue] == [10.0]

    def test_rejections_reported(self):
        config = _config(max_queue_size=1)
        coord = Coordinator(config, [_FixedLayer("a", [(_tech(1), 5.0), (_tech(2), 1.0)])])
        queue = ActionQueue(0, config)
        subs = coord.submit(queue, coord.plan(None, 0), 0)
        assert [s.result.status for s in subs] == [EnqueueStatus.ACCEPTED, EnqueueStatus.REJECTED]
