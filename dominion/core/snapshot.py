"""Immutable snapshot of the world state for planning threads.

Every query that reveals another civilization's data takes the observing
agent and is gated by that agent's fog of war, so a decision layer can only
learn what its civilization could actually see.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from dominion.core.fog_of_war import FogOfWarMaps
from dominion.core.grid import Grid
from dominion.core.models import AgentId, City, Civilization, Unit, Vector2
from dominion.core.world_state import WorldState

HOSTILE_RELATION = -20.0


@dataclass(frozen=True, slots=True)
class WorldSnapshot:
    """Read-only view of the world, safe to share across threads."""

    turn: int
    seed: int
    grid: Grid
    civilizations: Mapping[AgentId, Civilization]
    units: tuple[Unit, ...]
    cities: tuple[City, ...]
    fog: FogOfWarMaps

    @classmethod
    def from_world(cls, world: WorldState) -> WorldSnapshot:
        civs = {cid: c.copy() for cid, c in world.civilizations.items() if c.alive}
        return cls(
            turn=world.turn,
            seed=world.seed,
            grid=world.grid.copy(),
            civilizations=MappingProxyType(civs),
            units=tuple(u.copy() for u in sorted(world.units.values(), key=lambda u: u.unit_id)),
            cities=tuple(c.copy() for c in sorted(world.cities.values(), key=lambda c: c.city_id)),
            fog=world.fog.copy(),
        )

    # -- agents --

    def active_agents(self) -> tuple[AgentId, ...]:
        return tuple(sorted(self.civilizations))

    def civ(self, agent: AgentId) -> Civilization | None:
        """The agent's own civilization record (always fully known to itself)."""
        return self.civilizations.get(agent)

    # -- fog-of-war gates --

    def is_position_visible(self, agent: AgentId, pos: Vector2) -> bool:
        return self.fog.is_visible_to(agent, pos)

    def is_position_explored(self, agent: AgentId, pos: Vector2) -> bool:
        return self.fog.is_explored_by(agent, pos)

    # -- gated queries --

    def own_units(self, agent: AgentId) -> list[Unit]:
        return [u for u in self.units if u.owner == agent]

    def own_cities(self, agent: AgentId) -> list[City]:
        return [c for c in self.cities if c.owner == agent]

    def visible_units(self, agent: AgentId) -> list[tuple[Vector2, Unit]]:
        """Own units plus foreign units standing on currently visible tiles."""
        return [
            (u.pos, u) for u in self.units
            if u.owner == agent or self.is_position_visible(agent, u.pos)
        ]

    def visible_cities(self, agent: AgentId) -> list[tuple[Vector2, City]]:
        """Own cities plus foreign cities on tiles the agent has explored."""
        return [
            (c.pos, c) for c in self.cities
            if c.owner == agent or self.is_position_explored(agent, c.pos)
        ]

    def known_civs(self, agent: AgentId) -> list[AgentId]:
        """Other civilizations the agent has made contact with, ascending."""
        seen: set[AgentId] = set()
        for _pos, city in self.visible_cities(agent):
            seen.add(city.owner)
        for _pos, unit in self.visible_units(agent):
            seen.add(unit.owner)
        seen.discard(agent)
        return sorted(cid for cid in seen if cid in self.civilizations)

    def known_capital(self, agent: AgentId, other: AgentId) -> Vector2 | None:
        civ = self.civilizations.get(other)
        if civ is None or civ.capital is None:
            return None
        if other == agent or self.is_position_explored(agent, civ.capital):
            return civ.capital
        return None

    def visible_strength(self, agent: AgentId, other: AgentId) -> float:
        """Military strength of *other* as far as *agent* can see it."""
        return sum(u.strength for _pos, u in self.visible_units(agent) if u.owner == other)

    def owner_at(self, agent: AgentId, pos: Vector2) -> AgentId | None:
        """Tile owner, or None when unowned or not yet explored by *agent*."""
        if not self.is_position_explored(agent, pos):
            return None
        return self.grid.owner(pos)

    def hostile_units_near(self, agent: AgentId, pos: Vector2, radius: int) -> list[Unit]:
        civ = self.civilizations.get(agent)
        if civ is None:
            return []
        return [
            u for _p, u in self.visible_units(agent)
            if u.owner != agent
            and (u.owner in civ.at_war_with or civ.relations.get(u.owner, 0.0) <= HOSTILE_RELATION)
            and u.pos.manhattan(pos) <= radius
        ]
