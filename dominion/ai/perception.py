"""Perception — what one civilization knows about the world this turn.

An AgentView wraps a WorldSnapshot for a single agent.  Every fact about a
foreign civilization goes through a fog-gated snapshot query, so decision
layers built on top of it cannot see through the fog.
"""

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING

from dominion.core.models import RING_OFFSETS, Vector2

if TYPE_CHECKING:
    from dominion.core.enums import BuildingType
    from dominion.core.models import AgentId, City, Civilization, Personality, Unit
    from dominion.core.snapshot import WorldSnapshot

EARLY_GAME_TURN = 20
MID_GAME_TURN = 50

# Foreign capitals within this distance count towards military threat
THREAT_RADIUS = 20
# Trade partners must have a capital within this distance
MAX_TRADE_DISTANCE = 30
# Hostile units this close to an own city are an immediate threat
DEFENSE_ALERT_RADIUS = 4


class AgentView:
    """Per-agent read-only view over a snapshot.

    Derived facts are cached on first use; a view lives for one ``propose``
    call on one worker thread and is never shared.
    """

    def __init__(self, snapshot: WorldSnapshot, agent: AgentId) -> None:
        self.snapshot = snapshot
        self.agent = agent
        civ = snapshot.civ(agent)
        if civ is None:
            raise KeyError(f"agent {agent} is not active in the snapshot")
        self.civ: Civilization = civ

    # ------------------------------------------------------------------
    # Own state
    # ------------------------------------------------------------------

    @property
    def turn(self) -> int:
        return self.snapshot.turn

    @property
    def personality(self) -> Personality:
        return self.civ.personality

    @property
    def capital(self) -> Vector2 | None:
        return self.civ.capital

    @cached_property
    def cities(self) -> list[City]:
        return self.snapshot.own_cities(self.agent)

    @cached_property
    def units(self) -> list[Unit]:
        return self.snapshot.own_units(self.agent)

    @cached_property
    def strength(self) -> float:
        return sum(u.strength for u in self.units)

    @cached_property
    def territory(self) -> list[Vector2]:
        return self.snapshot.grid.territory_of(self.agent)

    def has_building(self, building: BuildingType) -> bool:
        return any(building in c.buildings for c in self.cities)

    def game_phase_multiplier(self) -> float:
        """Exploration weight by game phase: early 1.5, mid 1.0, late 0.5."""
        if self.turn < EARLY_GAME_TURN:
            return 1.5
        if self.turn < MID_GAME_TURN:
            return 1.0
        return 0.5

    # ------------------------------------------------------------------
    # Land
    # ------------------------------------------------------------------

    def free_tiles_around(self, center: Vector2) -> list[Vector2]:
        """Unowned walkable tiles in the 8-neighbourhood of *center*.

        Tiles the agent has never explored are treated as unknown and skipped.
        """
        snap = self.snapshot
        grid = snap.grid
        result: list[Vector2] = []
        for off in RING_OFFSETS:
            pos = center + off
            if not grid.is_walkable(pos):
                continue
            if not snap.is_position_explored(self.agent, pos):
                continue
            if snap.owner_at(self.agent, pos) is None:
                result.append(pos)
        return result

    @cached_property
    def expansion_sites(self) -> list[Vector2]:
        """Free tiles at Chebyshev distance 2 from any own city, nearest the capital first."""
        snap = self.snapshot
        grid = snap.grid
        anchor = self.capital
        occupied = {c.pos for _p, c in snap.visible_cities(self.agent)}
        occupied.update(u.pos for _p, u in snap.visible_units(self.agent) if u.owner != self.agent)
        seen: set[Vector2] = set()
        sites: list[Vector2] = []
        for city in self.cities:
            for dy in range(-2, 3):
                for dx in range(-2, 3):
                    if max(abs(dx), abs(dy)) != 2:
                        continue
                    pos = Vector2(city.pos.x + dx, city.pos.y + dy)
                    if pos in seen or pos in occupied:
                        continue
                    seen.add(pos)
                    if not grid.is_walkable(pos):
                        continue
                    if not snap.is_position_explored(self.agent, pos):
                        continue
                    if snap.owner_at(self.agent, pos) not in (None, self.agent):
                        continue
                    sites.append(pos)
        if anchor is not None:
            sites.sort(key=lambda p: (p.manhattan(anchor), p.y, p.x))
        return sites

    @cached_property
    def frontier(self) -> list[Vector2]:
        """Explored walkable tiles bordering unexplored land, nearest first."""
        snap = self.snapshot
        grid = snap.grid
        origin = self.capital or (self.units[0].pos if self.units else None)
        if origin is None:
            return []
        result: list[Vector2] = []
        for y in range(grid.height):
            for x in range(grid.width):
                pos = Vector2(x, y)
                if not grid.is_walkable(pos) or not snap.is_position_explored(self.agent, pos):
                    continue
                if any(
                    grid.in_bounds(n) and not snap.is_position_explored(self.agent, n)
                    for n in grid.neighbors(pos)
                ):
                    result.append(pos)
        result.sort(key=lambda p: (p.manhattan(origin), p.y, p.x))
        return result

    @cached_property
    def unexplored_ratio(self) -> float:
        grid = self.snapshot.grid
        total = grid.width * grid.height
        if total == 0:
            return 0.0
        return max(0.0, 1.0 - self.civ.explored_tiles / total)

    # ------------------------------------------------------------------
    # Other civilizations (fog-gated)
    # ------------------------------------------------------------------

    @cached_property
    def known_civs(self) -> list[AgentId]:
        return self.snapshot.known_civs(self.agent)

    def known_capital(self, other: AgentId) -> Vector2 | None:
        return self.snapshot.known_capital(self.agent, other)

    def visible_strength(self, other: AgentId) -> float:
        return self.snapshot.visible_strength(self.agent, other)

    def relation(self, other: AgentId) -> float:
        return self.civ.relations.get(other, 0.0)

    def nearby_threat(self) -> float:
        """Visible foreign strength weighted by capital distance.

        Only civilizations whose capital the agent has explored and which lie
        within THREAT_RADIUS contribute; each adds strength / (distance + 1).
        """
        capital = self.capital
        if capital is None:
            return 0.0
        threat = 0.0
        for other in self.known_civs:
            if other in self.civ.alliances:
                continue
            other_capital = self.known_capital(other)
            if other_capital is None:
                continue
            distance = capital.manhattan(other_capital)
            if distance < THREAT_RADIUS:
                threat += self.visible_strength(other) / (distance + 1.0)
        return threat

    def threat_factor(self) -> float:
        return min(self.nearby_threat() / (self.strength + 1.0), 2.0)

    def nearest_trade_partner(self) -> AgentId | None:
        """Closest known civilization not at war and without a route yet."""
        capital = self.capital
        if capital is None:
            return None
        existing = {r.partner for r in self.civ.trade_routes}
        best: tuple[int, AgentId] | None = None
        for other in self.known_civs:
            if other in existing or other in self.civ.at_war_with:
                continue
            other_capital = self.known_capital(other)
            if other_capital is None:
                continue
            distance = capital.manhattan(other_capital)
            if distance >= MAX_TRADE_DISTANCE:
                continue
            if best is None or (distance, other) < best:
                best = (distance, other)
        return best[1] if best else None

    def weakest_rival(self, ratio: float) -> tuple[AgentId, Vector2] | None:
        """Weakest known non-allied civilization with a known capital whose
        visible strength is below ``own strength * ratio``."""
        best: tuple[float, AgentId, Vector2] | None = None
        for other in self.known_civs:
            if other in self.civ.alliances:
                continue
            other_capital = self.known_capital(other)
            if other_capital is None:
                continue
            s = self.visible_strength(other)
            if s >= self.strength * ratio:
                continue
            if best is None or (s, other) < (best[0], best[1]):
                best = (s, other, other_capital)
        return (best[1], best[2]) if best else None

    def enemies(self) -> list[AgentId]:
        """Known civilizations at war with the agent or with hostile relations."""
        return [
            o for o in self.known_civs
            if o in self.civ.at_war_with or self.relation(o) < 0.0
        ]

    def threatened_city(self) -> tuple[City, float] | None:
        """Own city with the most hostile strength close by, if any."""
        worst: tuple[float, int, City] | None = None
        for city in self.cities:
            hostile = self.snapshot.hostile_units_near(self.agent, city.pos, DEFENSE_ALERT_RADIUS)
            if not hostile:
                continue
            s = sum(u.strength for u in hostile)
            if worst is None or (s, -city.city_id) > (worst[0], -worst[1]):
                worst = (s, city.city_id, city)
        return (worst[2], worst[0]) if worst else None

    def exploring_unit(self) -> Unit | None:
        return self.units[0] if self.units else None
