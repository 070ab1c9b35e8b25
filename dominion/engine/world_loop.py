"""WorldLoop — drives the reference world one turn at a time.

Turn cycle:
  1. Snapshot    — immutable, fog-gated view of the world
  2. Schedule    — TurnProcessor.process_turn (populate, select, execute, advance)
  3. Upkeep      — gold += income - expenses for every living civilization
  4. Cleanup     — civilizations without cities and units are eliminated,
                   visibility recomputed, replay and event feed updated
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dominion.ai import Coordinator, build_layers
from dominion.core.enums import Outcome
from dominion.core.snapshot import WorldSnapshot
from dominion.engine.execution import WorldExecutionEngine
from dominion.engine.turn_processor import TurnProcessor
from dominion.engine.worker_pool import WorkerPool
from dominion.systems.rng import DeterministicRNG
from dominion.systems.world_builder import WorldBuilder
from dominion.utils.event_log import SchedulerEvent

if TYPE_CHECKING:
    from dominion.config import SimulationConfig
    from dominion.core.world_state import WorldState
    from dominion.engine.turn_processor import TurnReport
    from dominion.utils.replay import ReplayRecorder

logger = logging.getLogger(__name__)

# Outcomes worth a line in the event feed; executed actions always get one
_FEED_OUTCOMES: dict[Outcome, str] = {
    Outcome.EXECUTED:   "action",
    Outcome.EXHAUSTED:  "dropped",
    Outcome.FATAL:      "dropped",
    Outcome.EVICTED:    "queue",
    Outcome.ELIMINATED: "elimination",
}


class WorldLoop:
    """The heartbeat of the simulation.

    Single-threaded mutation of WorldState; only the Populate phase inside
    the TurnProcessor fans out to worker threads.
    """

    __slots__ = (
        "_config",
        "_world",
        "_processor",
        "_worker_pool",
        "_recorder",
        "_tick_events",
        "_last_report",
    )

    def __init__(
        self,
        config: SimulationConfig,
        world: WorldState,
        processor: TurnProcessor,
        worker_pool: WorkerPool | None = None,
        recorder: ReplayRecorder | None = None,
    ) -> None:
        self._config = config
        self._world = world
        self._processor = processor
        self._worker_pool = worker_pool
        self._recorder = recorder
        self._tick_events: list[SchedulerEvent] = []
        self._last_report: TurnReport | None = None

    @property
    def world(self) -> WorldState:
        return self._world

    @property
    def processor(self) -> TurnProcessor:
        return self._processor

    @property
    def last_report(self) -> TurnReport | None:
        return self._last_report

    @property
    def tick_events(self) -> list[SchedulerEvent]:
        """Feed events emitted during the most recent turn."""
        return self._tick_events

    def create_snapshot(self) -> WorldSnapshot:
        return WorldSnapshot.from_world(self._world)

    def finished(self) -> bool:
        if self._world.turn >= self._config.max_turns:
            return True
        return len(self._world.active_civ_ids()) <= 1

    def tick_once(self) -> bool:
        """Execute a single turn.  Returns False if the simulation should stop."""
        self._tick_events = []
        if self.finished():
            logger.info(
                "Turn %d: simulation over (%d civilizations left)",
                self._world.turn, len(self._world.active_civ_ids()),
            )
            return False
        self._step()
        return True

    def run(self) -> None:
        """Run until max_turns or a single civilization remains."""
        logger.info("=== Simulation started (seed=%d) ===", self._world.seed)
        while self.tick_once():
            if self._world.turn % 25 == 0:
                logger.info(
                    "Turn %d: %d civilizations alive",
                    self._world.turn, len(self._world.active_civ_ids()),
                )
        logger.info("=== Simulation finished at turn %d ===", self._world.turn)
        if self._recorder:
            self._recorder.flush()

    def shutdown(self) -> None:
        if self._worker_pool is not None:
            self._worker_pool.shutdown()

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def _emit(self, category: str, message: str, agent_ids: tuple[int, ...] = ()) -> None:
        self._tick_events.append(SchedulerEvent(self._world.turn, category, message, agent_ids))

    def _step(self) -> None:
        world = self._world

        snapshot = self.create_snapshot()
        report = self._processor.process_turn(snapshot)
        self._last_report = report

        for event in report.events:
            category = _FEED_OUTCOMES.get(event.outcome)
            if category is None:
                continue
            self._emit(
                category,
                f"{event.category.name.lower()} #{event.action_id} {event.outcome.name.lower()}: {event.detail}",
                (event.agent_id,),
            )

        self._upkeep()
        self._eliminate_defeated()
        world.refresh_visibility()

        if self._recorder:
            self._recorder.record_turn(report, world)
        world.turn = self._processor.turn

    def _upkeep(self) -> None:
        for civ_id in self._world.active_civ_ids():
            civ = self._world.civilizations[civ_id]
            civ.gold += civ.income - civ.expenses

    def _eliminate_defeated(self) -> None:
        world = self._world
        for civ_id in world.active_civ_ids():
            if world.cities_of(civ_id) or world.units_of(civ_id):
                continue
            name = world.civilizations[civ_id].name
            world.eliminate(civ_id)
            self._emit("elimination", f"{name} has fallen", (civ_id,))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def build_world_loop(
    config: SimulationConfig,
    recorder: ReplayRecorder | None = None,
) -> WorldLoop:
    """Construct world, coordinator, engine and processor from config."""
    rng = DeterministicRNG(config.world_seed)
    world = WorldBuilder(config, rng).build()

    scheduler = config.scheduler_config()
    coordinator = Coordinator(scheduler, build_layers(config.decision_layers))
    engine = WorldExecutionEngine(world, rng)
    pool = WorkerPool(config.num_workers)
    processor = TurnProcessor(scheduler, coordinator, engine, worker_pool=pool, start_turn=world.turn)

    return WorldLoop(config, world, processor, worker_pool=pool, recorder=recorder)
