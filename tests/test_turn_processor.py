"""Tests for the TurnProcessor state machine.

Covers:
- Per-agent budget and global execution order
- Overflow eviction / rejection surfaced in the report
- Retry with boost and delay, exhaustion after max_retries
- Fatal failures and engine crashes
- InvariantViolation propagation
- Agent elimination, duplicate merging, determinism
"""

import sys
import os
import math
import time

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dominion.actions.kinds import Research
from dominion.ai.base import DecisionLayer
from dominion.ai.coordinator import Coordinator
from dominion.config import SchedulerConfig
from dominion.core.enums import Outcome, TurnPhase
from dominion.engine.execution import Effect
from dominion.engine.turn_processor import TurnProcessor
from dominion.engine.worker_pool import WorkerPool
from dominion.errors import (
    FatalExecutionError,
    InvariantViolation,
    RecoverableExecutionError,
)


class _Snapshot:
    """Just enough of a snapshot for the processor and the scripted layer."""

    def __init__(self, agents):
        self._agents = tuple(agents)

    def active_agents(self):
        return self._agents


class _ScriptedLayer(DecisionLayer):
    """Proposes a fixed list per agent: once, or every turn when ``repeat``."""

    def __init__(self, script, repeat=False):
        self._script = {a: list(items) for a, items in script.items()}
        self._repeat = repeat
        self._proposed = set()

    @property
    def name(self):
        return "scripted"

    def propose(self, snapshot, agent):
        if agent in self._proposed and not self._repeat:
            return []
        self._proposed.add(agent)
        out = []
        for item in self._script.get(agent, []):
            kind, bonus = item[0], item[1]
            delay = item[2] if len(item) > 2 else 0
            out.append(self.candidate(agent, kind, bonus, delay_turns=delay))
        return out


class _ScriptedEngine:
    """Raises queued exceptions per kind, otherwise succeeds."""

    def __init__(self, outcomes=None):
        self._outcomes = {k: list(v) for k, v in (outcomes or {}).items()}
        self.calls = []

    def apply(self, agent_id, kind):
        self.calls.append((agent_id, kind))
        pending = self._outcomes.get(kind)
        if pending:
            exc = pending.pop(0)
            if exc is not None:
                raise exc
        return Effect(f"applied {kind!r}")


def _tech(i):
    return Research(technology=f"Tech {i}")


def _config(**overrides):
    # Zero base weights: queue priority equals the layer's bonus
    overrides.setdefault("category_base_weights", {})
    return SchedulerConfig(**overrides)


def _processor(script, outcomes=None, repeat=False, start_turn=0, **cfg):
    config = _config(**cfg)
    coordinator = Coordinator(config, [_ScriptedLayer(script, repeat=repeat)])
    engine = _ScriptedEngine(outcomes)
    return TurnProcessor(config, coordinator, engine, start_turn=start_turn), engine


class _SlowLayer(_ScriptedLayer):
    """Scripted layer that stalls while planning one agent."""

    def __init__(self, script, slow_agent, delay=0.3):
        super().__init__(script)
        self._slow_agent = slow_agent
        self._delay = delay

    def propose(self, snapshot, agent):
        if agent == self._slow_agent:
            time.sleep(self._delay)
        return super().propose(snapshot, agent)


def _outcomes(report, outcome):
    return [e for e in report.events if e.outcome == outcome]


# ---------------------------------------------------------------------------
# Select / execute
# ---------------------------------------------------------------------------

class TestSelection:
    def test_top_three_of_four_execute(self):
        kinds = [_tech(i) for i in range(4)]
        proc, engine = _processor({0: list(zip(kinds, [15.0, 12.0, 8.0, 7.0]))}, actions_per_turn=3)
        report = proc.process_turn(_Snapshot([0]))

        assert [k for _a, k in engine.calls] == kinds[:3]
        assert report.agents[0].executed == 3
        remaining = list(proc.queue_for(0))
        assert [e.priority for e in remaining] == [7.0]

    def test_budget_caps_executions_per_agent(self):
        script = {a: [(_tech(a * 10 + i), float(i)) for i in range(6)] for a in (0, 1)}
        proc, engine = _processor(script, actions_per_turn=2)
        report = proc.process_turn(_Snapshot([0, 1]))
        assert report.agents[0].executed == 2
        assert report.agents[1].executed == 2

    def test_agent_budget_override(self):
        script = {a: [(_tech(a * 10 + i), float(i)) for i in range(6)] for a in (0, 1)}
        proc, _engine = _processor(script, actions_per_turn=2)
        proc.set_agent_budget(1, 4)
        report = proc.process_turn(_Snapshot([0, 1]))
        assert report.agents[0].executed == 2
        assert report.agents[1].executed == 4

    def test_global_order_priority_then_agent(self):
        script = {
            0: [(_tech(1), 5.0), (_tech(2), 9.0)],
            1: [(_tech(3), 9.0), (_tech(4), 7.0)],
        }
        proc, engine = _processor(script, actions_per_turn=2)
        proc.process_turn(_Snapshot([1, 0]))
        assert engine.calls == [
            (0, _tech(2)), (1, _tech(3)), (1, _tech(4)), (0, _tech(1)),
        ]

    def test_select_is_idempotent(self):
        proc, engine = _processor({0: [(_tech(i), float(i)) for i in range(5)]}, actions_per_turn=0)
        proc.process_turn(_Snapshot([0]))
        proc.set_agent_budget(0, 3)
        first = proc.select()
        second = proc.select()
        assert first == second
        assert len(first) == 3
        assert engine.calls == []
        assert len(proc.queue_for(0)) == 5

    def test_turn_counter_advances_and_phase_returns_idle(self):
        proc, _engine = _processor({}, start_turn=4)
        report = proc.process_turn(_Snapshot([0]))
        assert report.turn == 4
        assert proc.turn == 5
        assert proc.phase == TurnPhase.IDLE
        assert proc.last_report is report


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------

class TestOverflow:
    def test_eviction_and_rejection_are_reported(self):
        config = _config(max_queue_size=3, actions_per_turn=0)
        layer = _ScriptedLayer({0: [(_tech(0), 3.0), (_tech(1), 9.0), (_tech(2), 6.0)]})
        proc = TurnProcessor(config, Coordinator(config, [layer]), _ScriptedEngine())
        proc.process_turn(_Snapshot([0]))

        layer._script[0] = [(_tech(3), 5.0)]
        layer._proposed.clear()
        report = proc.process_turn(_Snapshot([0]))
        evicted = _outcomes(report, Outcome.EVICTED)
        assert len(evicted) == 1 and evicted[0].priority == 3.0
        assert report.agents[0].evicted == 1

        layer._script[0] = [(_tech(4), 1.0)]
        layer._proposed.clear()
        report = proc.process_turn(_Snapshot([0]))
        assert report.agents[0].rejected == 1
        assert [e.priority for e in proc.queue_for(0)] == [9.0, 6.0, 5.0]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestRetries:
    def test_exhausted_after_three_recoverable_failures(self):
        kind = _tech(1)
        failures = [RecoverableExecutionError("no gold")] * 3
        proc, engine = _processor({0: [(kind, 5.0)]}, outcomes={kind: failures}, max_retries=2)

        r0 = proc.process_turn(_Snapshot([0]))
        r1 = proc.process_turn(_Snapshot([0]))
        r2 = proc.process_turn(_Snapshot([0]))

        assert r0.agents[0].retried == 1
        assert r1.agents[0].retried == 1
        assert r2.agents[0].exhausted == 1
        assert r2.agents[0].dropped == 1
        assert len(engine.calls) == 3
        assert len(proc.queue_for(0)) == 0

    def test_retry_boosts_priority_and_delays(self):
        kind = _tech(1)
        proc, _engine = _processor(
            {0: [(kind, 5.0)]},
            outcomes={kind: [RecoverableExecutionError("busy")]},
            retry_delay_turns=2,
        )
        report = proc.process_turn(_Snapshot([0]))
        retried = _outcomes(report, Outcome.RETRIED)
        assert retried[0].priority == 5.5
        entry = next(iter(proc.queue_for(0)))
        assert entry.attempts_made == 1
        assert entry.earliest_eligible_turn == 2

    def test_never_more_than_max_retries_plus_one_attempts(self):
        kind = _tech(1)
        proc, engine = _processor(
            {0: [(kind, 5.0)]},
            outcomes={kind: [RecoverableExecutionError("x")] * 10},
            max_retries=4,
        )
        for _ in range(10):
            proc.process_turn(_Snapshot([0]))
        assert len(engine.calls) == 5

    def test_retry_priority_clamped_to_ceiling(self):
        kind = _tech(1)
        proc, _engine = _processor(
            {0: [(kind, 20.0)]},
            outcomes={kind: [RecoverableExecutionError("x")]},
        )
        proc.process_turn(_Snapshot([0]))
        assert next(iter(proc.queue_for(0))).priority == 20.0

    def test_fatal_failure_dropped_without_retry(self):
        kind = _tech(1)
        proc, engine = _processor({0: [(kind, 5.0)]}, outcomes={kind: [FatalExecutionError("gone")]})
        report = proc.process_turn(_Snapshot([0]))
        proc.process_turn(_Snapshot([0]))
        assert report.agents[0].fatal == 1
        assert len(engine.calls) == 1

    def test_engine_crash_is_fatal_and_logged(self, caplog):
        kind = _tech(1)
        proc, _engine = _processor({0: [(kind, 5.0)]}, outcomes={kind: [RuntimeError("boom")]})
        with caplog.at_level("ERROR"):
            report = proc.process_turn(_Snapshot([0]))
        fatal = _outcomes(report, Outcome.FATAL)
        assert len(fatal) == 1 and "boom" in fatal[0].detail
        assert "engine crashed" in caplog.text

    def test_invariant_violation_propagates(self):
        kind = _tech(1)
        proc, _engine = _processor({0: [(kind, 5.0)]}, outcomes={kind: [InvariantViolation("bad")]})
        with pytest.raises(InvariantViolation):
            proc.process_turn(_Snapshot([0]))
        assert proc.phase == TurnPhase.IDLE


# ---------------------------------------------------------------------------
# Delayed scheduling
# ---------------------------------------------------------------------------

class TestDelay:
    def test_delay_two_at_turn_five_runs_at_seven(self):
        kind = _tech(1)
        proc, engine = _processor({0: [(kind, 5.0, 2)]}, start_turn=5)
        executed_at = []
        for _ in range(4):
            report = proc.process_turn(_Snapshot([0]))
            if _outcomes(report, Outcome.EXECUTED):
                executed_at.append(report.turn)
        assert executed_at == [7]
        assert len(engine.calls) == 1


# ---------------------------------------------------------------------------
# Elimination / merging
# ---------------------------------------------------------------------------

class TestElimination:
    def test_missing_agent_queue_torn_down(self):
        script = {0: [(_tech(1), 1.0)], 1: [(_tech(2), 1.0), (_tech(3), 2.0)]}
        proc, engine = _processor(script, actions_per_turn=0)
        proc.process_turn(_Snapshot([0, 1]))
        report = proc.process_turn(_Snapshot([0]))

        eliminated = _outcomes(report, Outcome.ELIMINATED)
        assert {e.action_id for e in eliminated} == {1, 2}
        assert all(e.agent_id == 1 for e in eliminated)
        assert 1 not in proc.queues
        assert engine.calls == []

    def test_eliminated_agent_never_executes(self):
        script = {1: [(_tech(2), 1.0)]}
        proc, engine = _processor(script, actions_per_turn=0)
        proc.process_turn(_Snapshot([1]))
        proc.set_agent_budget(1, 3)
        proc.process_turn(_Snapshot([]))
        assert engine.calls == []


class TestMerging:
    def test_pending_intent_merged_when_enabled(self):
        proc, _engine = _processor(
            {0: [(_tech(1), 4.0)]}, repeat=True, actions_per_turn=0, merge_pending_duplicates=True,
        )
        proc.process_turn(_Snapshot([0]))
        report = proc.process_turn(_Snapshot([0]))
        assert report.agents[0].merged == 1
        assert len(proc.queue_for(0)) == 1

    def test_every_survivor_enqueued_by_default(self):
        proc, _engine = _processor({0: [(_tech(1), 4.0)]}, repeat=True, actions_per_turn=0)
        proc.process_turn(_Snapshot([0]))
        report = proc.process_turn(_Snapshot([0]))
        assert report.agents[0].merged == 0
        assert report.agents[0].enqueued == 1
        assert len(proc.queue_for(0)) == 2


# ---------------------------------------------------------------------------
# Invariants and determinism
# ---------------------------------------------------------------------------

class TestInvariants:
    def test_nan_bonus_raises_when_strict(self):
        proc, _engine = _processor({0: [(_tech(1), math.nan)]})
        with pytest.raises(InvariantViolation):
            proc.process_turn(_Snapshot([0]))

    def test_nan_bonus_normalised_when_lenient(self):
        proc, _engine = _processor({0: [(_tech(1), math.nan)]}, strict_invariants=False, actions_per_turn=0)
        proc.process_turn(_Snapshot([0]))
        assert [e.priority for e in proc.queue_for(0)] == [0.0]


class TestDeterminism:
    def _trace(self):
        kinds = {a: [(_tech(a * 100 + i), float((a * 7 + i * 3) % 11)) for i in range(8)] for a in range(4)}
        fail = {kinds[2][0][0]: [RecoverableExecutionError("x")] * 2, kinds[1][3][0]: [FatalExecutionError("y")]}
        proc, _engine = _processor(kinds, outcomes=fail, max_queue_size=5, actions_per_turn=2)
        trace = []
        for turn in range(6):
            agents = [0, 1, 2, 3] if turn < 4 else [0, 2, 3]
            trace.extend(proc.process_turn(_Snapshot(agents)).trace())
        return trace

    def test_identical_inputs_identical_trace(self):
        assert self._trace() == self._trace()

    def _pooled_run(self, layer, workers):
        config = _config(actions_per_turn=2)
        engine = _ScriptedEngine()
        pool = WorkerPool(workers)
        proc = TurnProcessor(config, Coordinator(config, [layer]), engine, worker_pool=pool)
        try:
            trace = []
            for _turn in range(3):
                trace.extend(proc.process_turn(_Snapshot([0, 1, 2])).trace())
        finally:
            pool.shutdown()
        return trace, engine

    def test_slow_agent_still_planned_on_worker_threads(self):
        script = {a: [(_tech(a * 10 + i), float(5 - i)) for i in range(3)] for a in range(3)}
        inline, _ = self._pooled_run(_ScriptedLayer(script), workers=1)
        threaded, engine = self._pooled_run(_SlowLayer(script, slow_agent=0), workers=2)

        assert threaded == inline
        executed = [agent for agent, _kind in engine.calls]
        assert sorted(executed) == [0, 0, 0, 1, 1, 1, 2, 2, 2]

    def test_dispatch_waits_for_slow_worker(self):
        def plan(snapshot, agent):
            if agent == 1:
                time.sleep(0.3)
            return agent * 2

        pool = WorkerPool(2)
        try:
            assert pool.dispatch([0, 1, 2], None, plan) == {0: 0, 1: 2, 2: 4}
        finally:
            pool.shutdown()
