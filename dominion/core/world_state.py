"""Mutable authoritative world state — only mutated during the Execute phase and upkeep."""

from __future__ import annotations

import logging

from dominion.core.enums import UnitType
from dominion.core.fog_of_war import CITY_VISION_RANGE, UNIT_VISION_RANGE, FogOfWarMaps
from dominion.core.grid import Grid
from dominion.core.models import AgentId, City, Civilization, Unit, Vector2

logger = logging.getLogger(__name__)


class WorldState:
    """The single source of truth for the simulation."""

    __slots__ = (
        "turn", "seed", "grid", "civilizations", "units", "cities", "fog",
        "_next_unit_id", "_next_city_id",
    )

    def __init__(self, seed: int, grid: Grid) -> None:
        self.turn: int = 0
        self.seed: int = seed
        self.grid: Grid = grid
        self.civilizations: dict[AgentId, Civilization] = {}
        self.units: dict[int, Unit] = {}
        self.cities: dict[int, City] = {}
        self.fog: FogOfWarMaps = FogOfWarMaps()
        self._next_unit_id: int = 1
        self._next_city_id: int = 1

    # -- civilizations --

    def add_civilization(self, civ: Civilization) -> None:
        self.civilizations[civ.civ_id] = civ
        self.fog.init_for_civ(civ.civ_id, self.grid.width, self.grid.height)

    def active_civ_ids(self) -> list[AgentId]:
        """Living civilizations in ascending id order."""
        return sorted(cid for cid, c in self.civilizations.items() if c.alive)

    def eliminate(self, civ_id: AgentId) -> None:
        civ = self.civilizations.get(civ_id)
        if civ is None or not civ.alive:
            return
        civ.alive = False
        civ.capital = None
        for uid in [u.unit_id for u in self.units.values() if u.owner == civ_id]:
            del self.units[uid]
        for cid in [c.city_id for c in self.cities.values() if c.owner == civ_id]:
            del self.cities[cid]
        self.grid.release_all(civ_id)
        self.fog.remove(civ_id)
        for other in self.civilizations.values():
            other.at_war_with.discard(civ_id)
            other.alliances.discard(civ_id)
        logger.info("Turn %d: civilization %d (%s) eliminated", self.turn, civ_id, civ.name)

    # -- cities --

    def found_city(self, owner: AgentId, name: str, pos: Vector2) -> City:
        city = City(city_id=self._next_city_id, owner=owner, name=name, pos=pos)
        self._next_city_id += 1
        self.cities[city.city_id] = city
        self.grid.claim(pos, owner)
        civ = self.civilizations[owner]
        if civ.capital is None:
            civ.capital = pos
        return city

    def cities_of(self, civ_id: AgentId) -> list[City]:
        return sorted((c for c in self.cities.values() if c.owner == civ_id), key=lambda c: c.city_id)

    def city_at(self, pos: Vector2) -> City | None:
        for city in self.cities.values():
            if city.pos == pos:
                return city
        return None

    # -- units --

    def add_unit(self, owner: AgentId, unit_type: UnitType, pos: Vector2) -> Unit:
        unit = Unit(unit_id=self._next_unit_id, owner=owner, unit_type=unit_type, pos=pos)
        self._next_unit_id += 1
        self.units[unit.unit_id] = unit
        return unit

    def remove_unit(self, unit_id: int) -> Unit | None:
        return self.units.pop(unit_id, None)

    def units_of(self, civ_id: AgentId) -> list[Unit]:
        return sorted((u for u in self.units.values() if u.owner == civ_id), key=lambda u: u.unit_id)

    def unit_at(self, pos: Vector2) -> Unit | None:
        for unit in self.units.values():
            if unit.pos == pos:
                return unit
        return None

    def occupied(self) -> set[tuple[int, int]]:
        return {(u.pos.x, u.pos.y) for u in self.units.values()}

    def military_strength(self, civ_id: AgentId) -> float:
        return sum(u.strength for u in self.units.values() if u.owner == civ_id)

    # -- fog of war --

    def refresh_visibility(self) -> None:
        """Recompute VISIBLE tiles for every living civilization."""
        for civ_id in self.active_civ_ids():
            vmap = self.fog.get(civ_id)
            if vmap is None:
                continue
            vmap.reset_visibility()
            for city in self.cities_of(civ_id):
                vmap.mark_visible(city.pos, CITY_VISION_RANGE)
            for unit in self.units_of(civ_id):
                vmap.mark_visible(unit.pos, UNIT_VISION_RANGE)
            self.civilizations[civ_id].explored_tiles = vmap.explored_count()
