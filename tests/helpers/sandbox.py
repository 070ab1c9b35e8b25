"""Sandbox — E2E test fixture for the scheduling pipeline.

Creates a small hand-built world wired into a full WorldLoop (coordinator,
decision layers, execution engine, turn processor), runs turns, and
collects feed events for assertion.

Usage:
    box = Sandbox()
    box.add_civ(0, capital=(4, 4))
    box.add_civ(1, capital=(14, 14))
    box.add_unit(0, (5, 4))
    events = box.run_turns(5)
    assert box.civ(0).gold != 100.0
"""

from __future__ import annotations

import sys
import os
from typing import Callable

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from dominion.ai import AgentView, Coordinator, build_layers
from dominion.config import SimulationConfig
from dominion.core.enums import Terrain, UnitType
from dominion.core.grid import Grid
from dominion.core.models import RING_OFFSETS, City, Civilization, Personality, Unit, Vector2
from dominion.core.snapshot import WorldSnapshot
from dominion.core.world_state import WorldState
from dominion.engine.execution import WorldExecutionEngine
from dominion.engine.turn_processor import TurnProcessor
from dominion.engine.world_loop import WorldLoop
from dominion.systems.rng import DeterministicRNG
from dominion.utils.event_log import SchedulerEvent


class Sandbox:
    """E2E test fixture for the turn pipeline.

    Creates an all-plains world with no civilizations.  Add civilizations,
    cities and units, paint terrain, then take snapshots or run turns.
    """

    def __init__(
        self,
        width: int = 20,
        height: int = 20,
        seed: int = 42,
        **config_overrides,
    ):
        defaults = dict(
            world_seed=seed,
            grid_width=width,
            grid_height=height,
            num_civs=0,
            max_turns=9999,
            num_workers=1,
        )
        defaults.update(config_overrides)
        self.config = SimulationConfig(**defaults)
        self.rng = DeterministicRNG(seed)

        self.world = WorldState(seed=seed, grid=Grid(width, height))
        scheduler = self.config.scheduler_config()
        self.coordinator = Coordinator(scheduler, build_layers(self.config.decision_layers))
        self.engine = WorldExecutionEngine(self.world, self.rng)
        self.processor = TurnProcessor(scheduler, self.coordinator, self.engine)
        self.loop = WorldLoop(self.config, self.world, self.processor)
        self._all_events: list[SchedulerEvent] = []

    # -- World builders --

    def add_civ(
        self,
        civ_id: int,
        capital: tuple[int, int] | None = None,
        *,
        name: str | None = None,
        personality: Personality | None = None,
        claim_ring: bool = True,
        **fields,
    ) -> Civilization:
        """Add a civilization, optionally founding its capital."""
        civ = Civilization(
            civ_id=civ_id,
            name=name or f"Civ{civ_id}",
            personality=personality or Personality(),
            **fields,
        )
        self.world.add_civilization(civ)
        if capital is not None:
            self.add_city(civ_id, capital, name=civ.name, claim_ring=claim_ring)
        return civ

    def add_city(
        self,
        civ_id: int,
        pos: tuple[int, int],
        *,
        name: str | None = None,
        claim_ring: bool = True,
    ) -> City:
        center = Vector2(*pos)
        city = self.world.found_city(civ_id, name or f"City{civ_id}-{len(self.world.cities) + 1}", center)
        if claim_ring:
            for off in RING_OFFSETS:
                tile = center + off
                if self.world.grid.is_walkable(tile) and self.world.grid.owner(tile) is None:
                    self.world.grid.claim(tile, civ_id)
        return city

    def add_unit(
        self,
        civ_id: int,
        pos: tuple[int, int],
        unit_type: UnitType = UnitType.INFANTRY,
    ) -> Unit:
        return self.world.add_unit(civ_id, unit_type, Vector2(*pos))

    def set_relation(self, a: int, b: int, value: float, mutual: bool = True) -> None:
        self.world.civilizations[a].relations[b] = value
        if mutual:
            self.world.civilizations[b].relations[a] = value

    def declare_war(self, a: int, b: int) -> None:
        self.world.civilizations[a].at_war_with.add(b)
        self.world.civilizations[b].at_war_with.add(a)

    # -- Grid manipulation --

    def set_tile(self, x: int, y: int, terrain: Terrain) -> None:
        self.world.grid.set(Vector2(x, y), terrain)

    def set_mountain(self, x: int, y: int) -> None:
        self.set_tile(x, y, Terrain.MOUNTAIN)

    def reveal(self, civ_id: int, center: tuple[int, int], radius: int) -> None:
        """Mark tiles visible to *civ_id* as if a scout had passed by."""
        self.world.fog.get(civ_id).mark_visible(Vector2(*center), radius)

    # -- Snapshots --

    def snapshot(self, refresh: bool = True) -> WorldSnapshot:
        if refresh:
            self.world.refresh_visibility()
        return WorldSnapshot.from_world(self.world)

    def view(self, civ_id: int, refresh: bool = True) -> AgentView:
        return AgentView(self.snapshot(refresh), civ_id)

    # -- Running --

    def run_turns(self, n: int) -> list[SchedulerEvent]:
        """Run n turns and return all feed events emitted during them."""
        events: list[SchedulerEvent] = []
        for _ in range(n):
            if not self.loop.tick_once():
                break
            events.extend(self.loop.tick_events)
        self._all_events.extend(events)
        return events

    def run_until(
        self,
        predicate: Callable[[Sandbox], bool],
        max_turns: int = 100,
    ) -> list[SchedulerEvent]:
        """Run turns until predicate(box) returns True or max_turns reached."""
        events: list[SchedulerEvent] = []
        for _ in range(max_turns):
            if not self.loop.tick_once():
                break
            events.extend(self.loop.tick_events)
            if predicate(self):
                break
        self._all_events.extend(events)
        return events

    # -- Queries --

    def civ(self, civ_id: int) -> Civilization:
        return self.world.civilizations[civ_id]

    def all_events(self) -> list[SchedulerEvent]:
        return list(self._all_events)

    def events_by_category(self, category: str) -> list[SchedulerEvent]:
        return [e for e in self._all_events if e.category == category]

    def events_for_civ(self, civ_id: int) -> list[SchedulerEvent]:
        return [e for e in self._all_events if civ_id in e.agent_ids]
