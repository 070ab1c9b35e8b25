"""Execution engines: apply one action to the authoritative world state.

``ExecutionEngine`` is the narrow boundary the TurnProcessor talks to.
``WorldExecutionEngine`` is the reference implementation over WorldState.
Failures are raised, never returned:

* RecoverableExecutionError — transiently invalid (not enough gold, tile
  occupied, no path right now).  The action may be retried.
* FatalExecutionError — structurally invalid (target civ gone, position
  off the map or impassable, technology already known).  Dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from dominion.actions.kinds import (
    Attack,
    BuildBuilding,
    BuildUnit,
    Defend,
    Diplomacy,
    Expand,
    Explore,
    Research,
    Trade,
)
from dominion.ai.pathfinding import Pathfinder
from dominion.core.enums import BuildingType, DiplomaticAction, Domain
from dominion.core.fog_of_war import UNIT_VISION_RANGE
from dominion.core.models import TradeRoute, Vector2
from dominion.errors import FatalExecutionError, RecoverableExecutionError

if TYPE_CHECKING:
    from dominion.actions.base import ActionKind
    from dominion.core.models import AgentId, City, Civilization, Unit
    from dominion.core.world_state import WorldState
    from dominion.systems.rng import DeterministicRNG

logger = logging.getLogger(__name__)

# Costs in gold
RESEARCH_COST = 50.0
UNIT_COST = 30.0
BUILDING_COST = 25.0
SETTLE_COST = 40.0

TRADE_INCOME_BONUS = 5.0
UNIT_UPKEEP = 1.0
MOVE_RANGE = 3                      # Tiles a unit moves per action
DEFENSIVE_POSITIONING_DISTANCE = 5
WAR_RELATION = -50.0
ALLIANCE_ACCEPT_RELATION = 0.0
CITY_DEFENSE = 8.0
FORTIFICATION_DEFENSE = 2.0

BUILDING_INCOME: dict[BuildingType, float] = {
    BuildingType.MARKET:   3.0,
    BuildingType.WORKSHOP: 2.0,
}


@dataclass(frozen=True, slots=True)
class Effect:
    """What a successful action did, for reports and the event feed."""

    description: str


class ExecutionEngine(Protocol):
    """Applies a single action to the authoritative world state."""

    def apply(self, agent_id: AgentId, kind: ActionKind) -> Effect:
        ...


class WorldExecutionEngine:
    """Reference engine over a mutable WorldState.  Main thread only."""

    __slots__ = ("_world", "_rng")

    def __init__(self, world: WorldState, rng: DeterministicRNG) -> None:
        self._world = world
        self._rng = rng

    @property
    def world(self) -> WorldState:
        return self._world

    def apply(self, agent_id: AgentId, kind: ActionKind) -> Effect:
        civ = self._world.civilizations.get(agent_id)
        if civ is None or not civ.alive:
            raise FatalExecutionError(f"civilization {agent_id} does not exist")

        match kind:
            case Expand(target_position=pos):
                return self._expand(civ, pos)
            case Research(technology=tech):
                return self._research(civ, tech)
            case BuildUnit():
                return self._build_unit(civ, kind)
            case BuildBuilding():
                return self._build_building(civ, kind)
            case Trade(partner=partner):
                return self._trade(civ, partner)
            case Attack(target_civ=target, target_position=pos):
                return self._attack(civ, target, pos)
            case Diplomacy(target_civ=target, action=action):
                return self._diplomacy(civ, target, action)
            case Defend(position=pos):
                return self._defend(civ, pos)
            case Explore(target_position=pos):
                return self._explore(civ, pos)
        raise FatalExecutionError(f"unsupported action {kind!r}")

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _require_walkable(self, pos: Vector2) -> None:
        grid = self._world.grid
        if not grid.in_bounds(pos):
            raise FatalExecutionError(f"{pos} is outside the map")
        if not grid.is_walkable(pos):
            raise FatalExecutionError(f"{pos} is impassable ({grid.get(pos).name})")

    def _require_other_civ(self, civ: Civilization, target: AgentId) -> Civilization:
        if target == civ.civ_id:
            raise FatalExecutionError("cannot target own civilization")
        other = self._world.civilizations.get(target)
        if other is None or not other.alive:
            raise FatalExecutionError(f"civilization {target} does not exist")
        return other

    @staticmethod
    def _spend(civ: Civilization, cost: float, what: str) -> None:
        if civ.gold < cost:
            raise RecoverableExecutionError(
                f"insufficient gold for {what} ({civ.gold:.0f} < {cost:.0f})"
            )
        civ.gold -= cost

    def _own_city_at(self, civ: Civilization, pos: Vector2) -> City:
        city = self._world.city_at(pos)
        if city is None or city.owner != civ.civ_id:
            raise FatalExecutionError(f"no city of civilization {civ.civ_id} at {pos}")
        return city

    def _blocked_for(self, unit: Unit) -> set[tuple[int, int]]:
        occ = self._world.occupied()
        occ.discard((unit.pos.x, unit.pos.y))
        return occ

    def _nearest_unit_path(
        self, civ: Civilization, goal: Vector2,
    ) -> tuple[Unit, list[Vector2]]:
        """Closest own unit with a path to *goal* (ties broken by unit id)."""
        units = self._world.units_of(civ.civ_id)
        if not units:
            raise RecoverableExecutionError("no units available")
        pf = Pathfinder(self._world.grid)
        for unit in sorted(units, key=lambda u: (u.pos.manhattan(goal), u.unit_id)):
            path = pf.find_path(unit.pos, goal, self._blocked_for(unit))
            if path is not None:
                return unit, path
        raise RecoverableExecutionError(f"no path to {goal}")

    def _advance(self, unit: Unit, path: list[Vector2], stop_short: bool = False) -> int:
        """Move *unit* up to MOVE_RANGE steps along *path*; returns steps taken."""
        steps = path[:-1] if stop_short else path
        occupied = self._world.occupied()
        moved = 0
        for pos in steps[:MOVE_RANGE]:
            if (pos.x, pos.y) in occupied:
                break
            unit.pos = pos
            moved += 1
        if moved:
            vmap = self._world.fog.get(unit.owner)
            if vmap is not None:
                vmap.mark_visible(unit.pos, UNIT_VISION_RANGE)
        return moved

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _expand(self, civ: Civilization, pos: Vector2) -> Effect:
        world = self._world
        self._require_walkable(pos)
        city = world.city_at(pos)
        if city is not None:
            if city.owner == civ.civ_id:
                raise FatalExecutionError(f"already settled {pos}")
            raise RecoverableExecutionError(f"{pos} is held by civilization {city.owner}")
        owner = world.grid.owner(pos)
        if owner is not None and owner != civ.civ_id:
            raise RecoverableExecutionError(f"{pos} is claimed by civilization {owner}")
        unit = world.unit_at(pos)
        if unit is not None and unit.owner != civ.civ_id:
            raise RecoverableExecutionError(f"{pos} is occupied")

        origins = [c.pos for c in world.cities_of(civ.civ_id)] or [u.pos for u in world.units_of(civ.civ_id)]
        pf = Pathfinder(world.grid)
        if not any(o == pos or pf.find_path(o, pos) is not None for o in origins):
            raise RecoverableExecutionError(f"no path to {pos}")

        self._spend(civ, SETTLE_COST, "settlers")
        name = f"{civ.name} {len(world.cities_of(civ.civ_id)) + 1}"
        world.found_city(civ.civ_id, name, pos)
        for n in world.grid.neighbors(pos):
            if world.grid.owner(n) is None and world.grid.is_walkable(n):
                world.grid.claim(n, civ.civ_id)
        return Effect(f"founded {name} at {pos}")

    def _research(self, civ: Civilization, tech: str) -> Effect:
        if tech in civ.technologies:
            raise FatalExecutionError(f"{tech} already known")
        self._spend(civ, RESEARCH_COST, f"research of {tech}")
        civ.technologies.add(tech)
        return Effect(f"researched {tech}")

    def _build_unit(self, civ: Civilization, kind: BuildUnit) -> Effect:
        self._require_walkable(kind.position)
        city = self._own_city_at(civ, kind.position)
        if self._world.unit_at(kind.position) is not None:
            raise RecoverableExecutionError(f"{city.name} is occupied by a unit")
        self._spend(civ, UNIT_COST, kind.unit_type.name.lower())
        unit = self._world.add_unit(civ.civ_id, kind.unit_type, kind.position)
        civ.expenses += UNIT_UPKEEP
        return Effect(f"built {kind.unit_type.name.lower()} #{unit.unit_id} in {city.name}")

    def _build_building(self, civ: Civilization, kind: BuildBuilding) -> Effect:
        self._require_walkable(kind.position)
        city = self._own_city_at(civ, kind.position)
        if kind.building_type in city.buildings:
            raise FatalExecutionError(f"{city.name} already has a {kind.building_type.name.lower()}")
        self._spend(civ, BUILDING_COST, kind.building_type.name.lower())
        city.buildings.append(kind.building_type)
        civ.income += BUILDING_INCOME.get(kind.building_type, 0.0)
        if kind.building_type == BuildingType.WALLS:
            civ.fortifications += 1
        return Effect(f"built {kind.building_type.name.lower()} in {city.name}")

    def _trade(self, civ: Civilization, partner: AgentId) -> Effect:
        other = self._require_other_civ(civ, partner)
        if partner in civ.at_war_with:
            raise RecoverableExecutionError(f"at war with civilization {partner}")
        if any(r.partner == partner for r in civ.trade_routes):
            raise FatalExecutionError(f"trade route with civilization {partner} already exists")
        civ.trade_routes.append(TradeRoute(partner=partner))
        civ.income += TRADE_INCOME_BONUS
        civ.relations[partner] = civ.relations.get(partner, 0.0) + 5.0
        other.relations[civ.civ_id] = other.relations.get(civ.civ_id, 0.0) + 5.0
        return Effect(f"established trade with {other.name}")

    def _declare_war(self, civ: Civilization, other: Civilization) -> None:
        civ.at_war_with.add(other.civ_id)
        other.at_war_with.add(civ.civ_id)
        civ.alliances.discard(other.civ_id)
        other.alliances.discard(civ.civ_id)
        civ.relations[other.civ_id] = WAR_RELATION
        other.relations[civ.civ_id] = WAR_RELATION
        civ.trade_routes = [r for r in civ.trade_routes if r.partner != other.civ_id]
        other.trade_routes = [r for r in other.trade_routes if r.partner != civ.civ_id]
        logger.info("Turn %d: %s declared war on %s", self._world.turn, civ.name, other.name)

    def _attack(self, civ: Civilization, target: AgentId, pos: Vector2) -> Effect:
        world = self._world
        other = self._require_other_civ(civ, target)
        self._require_walkable(pos)
        if target in civ.alliances:
            raise FatalExecutionError(f"civilization {target} is an ally")

        unit, path = self._nearest_unit_path(civ, pos)
        if target not in civ.at_war_with:
            self._declare_war(civ, other)

        if unit.pos.manhattan(pos) > 1:
            self._advance(unit, path, stop_short=True)
        if unit.pos.manhattan(pos) > 1:
            return Effect(f"unit #{unit.unit_id} advancing on {pos}")

        defender = world.unit_at(pos)
        city = world.city_at(pos)
        if defender is not None and defender.owner != target:
            raise RecoverableExecutionError(f"{pos} is held by civilization {defender.owner}")
        if defender is None and (city is None or city.owner != target):
            return Effect(f"unit #{unit.unit_id} found no defenders at {pos}")

        attack = unit.strength * (0.75 + 0.5 * self._rng.next_float(Domain.COMBAT, unit.unit_id, world.turn))
        defense = defender.strength if defender is not None else CITY_DEFENSE
        if city is not None:
            defense += FORTIFICATION_DEFENSE * other.fortifications
        defense_id = defender.unit_id if defender is not None else -city.city_id
        defense *= 0.75 + 0.5 * self._rng.next_float(Domain.COMBAT, defense_id, world.turn)

        if attack <= defense:
            world.remove_unit(unit.unit_id)
            civ.expenses = max(0.0, civ.expenses - UNIT_UPKEEP)
            return Effect(f"unit #{unit.unit_id} was destroyed attacking {pos}")

        if defender is not None:
            world.remove_unit(defender.unit_id)
            other.expenses = max(0.0, other.expenses - UNIT_UPKEEP)
            return Effect(f"unit #{unit.unit_id} destroyed {other.name} unit #{defender.unit_id}")

        assert city is not None
        city.owner = civ.civ_id
        unit.pos = pos
        world.grid.claim(pos, civ.civ_id)
        if other.capital == pos:
            remaining = world.cities_of(target)
            other.capital = remaining[0].pos if remaining else None
        return Effect(f"captured {city.name} from {other.name}")

    def _diplomacy(self, civ: Civilization, target: AgentId, action: DiplomaticAction) -> Effect:
        other = self._require_other_civ(civ, target)
        match action:
            case DiplomaticAction.DECLARE_WAR:
                if target in civ.at_war_with:
                    raise FatalExecutionError(f"already at war with civilization {target}")
                self._declare_war(civ, other)
                return Effect(f"declared war on {other.name}")
            case DiplomaticAction.MAKE_PEACE:
                if target not in civ.at_war_with:
                    raise FatalExecutionError(f"not at war with civilization {target}")
                civ.at_war_with.discard(target)
                other.at_war_with.discard(civ.civ_id)
                civ.relations[target] = -10.0
                other.relations[civ.civ_id] = -10.0
                return Effect(f"made peace with {other.name}")
            case DiplomaticAction.PROPOSE_ALLIANCE:
                if target in civ.alliances:
                    raise FatalExecutionError(f"already allied with civilization {target}")
                if target in civ.at_war_with:
                    raise RecoverableExecutionError(f"at war with civilization {target}")
                if other.relations.get(civ.civ_id, 0.0) < ALLIANCE_ACCEPT_RELATION:
                    raise RecoverableExecutionError(f"{other.name} declined the alliance")
                civ.alliances.add(target)
                other.alliances.add(civ.civ_id)
                civ.relations[target] = civ.relations.get(target, 0.0) + 20.0
                other.relations[civ.civ_id] = other.relations.get(civ.civ_id, 0.0) + 20.0
                return Effect(f"formed an alliance with {other.name}")
            case DiplomaticAction.PROPOSE_TRADE_PACT:
                if target in civ.at_war_with:
                    raise RecoverableExecutionError(f"at war with civilization {target}")
                civ.relations[target] = civ.relations.get(target, 0.0) + 10.0
                other.relations[civ.civ_id] = other.relations.get(civ.civ_id, 0.0) + 10.0
                return Effect(f"signed a trade pact with {other.name}")
        raise FatalExecutionError(f"unsupported diplomatic action {action!r}")

    def _defend(self, civ: Civilization, pos: Vector2) -> Effect:
        self._require_walkable(pos)
        if self._world.grid.owner(pos) != civ.civ_id:
            raise FatalExecutionError(f"{pos} is not territory of civilization {civ.civ_id}")
        nearby = [
            u for u in self._world.units_of(civ.civ_id)
            if u.pos.manhattan(pos) <= DEFENSIVE_POSITIONING_DISTANCE
        ]
        if not nearby:
            raise RecoverableExecutionError(f"no units within {DEFENSIVE_POSITIONING_DISTANCE} of {pos}")
        pf = Pathfinder(self._world.grid)
        moved = 0
        for unit in sorted(nearby, key=lambda u: (u.pos.manhattan(pos), u.unit_id)):
            if unit.pos.manhattan(pos) <= 1:
                continue
            path = pf.find_path(unit.pos, pos, self._blocked_for(unit))
            if path:
                moved += self._advance(unit, path, stop_short=self._world.unit_at(pos) is not None)
        civ.fortifications += 1
        return Effect(f"fortified {pos} ({len(nearby)} units, {moved} tiles moved)")

    def _explore(self, civ: Civilization, pos: Vector2) -> Effect:
        self._require_walkable(pos)
        unit, path = self._nearest_unit_path(civ, pos)
        if not path:
            return Effect(f"unit #{unit.unit_id} is already at {pos}")
        moved = self._advance(unit, path)
        if moved == 0:
            raise RecoverableExecutionError(f"unit #{unit.unit_id} is blocked")
        return Effect(f"unit #{unit.unit_id} explored towards {pos}, now at {unit.pos}")
