"""Goal-oriented action planning (GOAP) layer.

Strategic goals are picked from the agent's personality, then a
uniform-cost search over an abstract numeric state finds the cheapest
sequence of GoapActions whose accumulated effects satisfy the goal.  The
first steps of each plan become candidates; step ``n`` is scheduled ``n``
turns ahead so a plan unfolds over consecutive turns.

The abstract state is a handful of counters extracted from what the agent
knows about itself (territory, strength, gold, income, technologies,
cities, capital, trade routes, explored tiles, fortifications).
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Sequence

from dominion.actions.kinds import BuildBuilding, BuildUnit, Expand, Explore, Research, Trade
from dominion.ai.base import DecisionLayer, scaled_bonus
from dominion.ai.perception import AgentView
from dominion.ai.utility import TECHNOLOGIES
from dominion.core.enums import BuildingType, StrategicGoal, UnitType

if TYPE_CHECKING:
    from dominion.actions.base import ActionKind, Candidate
    from dominion.core.models import AgentId
    from dominion.core.snapshot import WorldSnapshot

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 1000
MAX_PLAN_DEPTH = 10
# Gold consumed per unit of action cost while planning
GOLD_PER_COST = 5.0

PERSONALITY_MODERATE = 0.5
PERSONALITY_HIGH = 0.7
EXPLORATION_THRESHOLD = 0.4
EXPLORATION_TURN_LIMIT = 30

PlanState = tuple[tuple[str, float], ...]


# ---------------------------------------------------------------------------
# Abstract state
# ---------------------------------------------------------------------------

def state_of(view: AgentView) -> dict[str, float]:
    civ = view.civ
    return {
        "territory_count": float(len(view.territory)),
        "military_strength": view.strength,
        "gold": civ.gold,
        "income": civ.income,
        "technology_level": float(len(civ.technologies)),
        "city_count": float(len(view.cities)),
        "has_capital": 1.0 if civ.capital is not None else 0.0,
        "trade_routes": float(len(civ.trade_routes)),
        "explored_tiles": float(civ.explored_tiles),
        "fortifications": float(civ.fortifications),
    }


def _freeze(state: Mapping[str, float]) -> PlanState:
    return tuple(sorted(state.items()))


def goal_targets(goal: StrategicGoal, state: Mapping[str, float]) -> dict[str, float]:
    """Minimum values the state must reach for *goal* to count as met."""
    get = state.get
    match goal:
        case StrategicGoal.EXPAND_TERRITORY:
            return {"territory_count": get("territory_count", 0.0) + 3.0}
        case StrategicGoal.ADVANCE_TECHNOLOGY:
            return {"technology_level": get("technology_level", 0.0) + 2.0}
        case StrategicGoal.DEVELOP_ECONOMY:
            return {
                "income": get("income", 0.0) * 1.5,
                "trade_routes": get("trade_routes", 0.0) + 2.0,
            }
        case StrategicGoal.BUILD_MILITARY:
            strength = get("military_strength", 0.0)
            return {"military_strength": max(strength * 1.5, strength + 10.0)}
        case StrategicGoal.DEFEND_TERRITORY:
            strength = get("military_strength", 0.0)
            return {
                "military_strength": max(strength * 1.3, strength + 10.0),
                "fortifications": max(get("fortifications", 0.0), 2.0),
            }
        case StrategicGoal.EXPLORE_TERRITORY:
            return {"explored_tiles": get("explored_tiles", 0.0) + 10.0}
    return {}


def is_satisfied(state: Mapping[str, float], targets: Mapping[str, float]) -> bool:
    return all(state.get(k, 0.0) >= v for k, v in targets.items())


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class GoapAction:
    """Abstract planning step: preconditions are minimums, effects are deltas.

    Every action also consumes ``cost * GOLD_PER_COST`` gold.
    """

    name: str
    cost: float
    preconditions: tuple[tuple[str, float], ...]
    effects: tuple[tuple[str, float], ...]

    def applicable(self, state: Mapping[str, float]) -> bool:
        return all(state.get(k, 0.0) >= v for k, v in self.preconditions)

    def apply(self, state: Mapping[str, float]) -> dict[str, float]:
        new = dict(state)
        for key, delta in self.effects:
            new[key] = new.get(key, 0.0) + delta
        new["gold"] = new.get("gold", 0.0) - self.cost * GOLD_PER_COST
        return new

    @property
    def step_score(self) -> float:
        """Cheaper steps score higher."""
        return 1.0 - self.cost / 10.0


GOAP_ACTIONS: tuple[GoapAction, ...] = (
    GoapAction("expand", 2.0, (("has_capital", 1.0), ("gold", 10.0)), (("territory_count", 1.0),)),
    GoapAction("research", 3.0, (("gold", 50.0),), (("technology_level", 1.0),)),
    GoapAction("build_military", 2.5, (("gold", 30.0), ("city_count", 1.0)), (("military_strength", 10.0),)),
    GoapAction("trade", 1.5, (("city_count", 1.0),), (("trade_routes", 1.0), ("income", 5.0))),
    GoapAction("build_economic", 2.0, (("gold", 25.0), ("city_count", 1.0)), (("income", 3.0),)),
    GoapAction("fortify", 2.0, (("gold", 25.0), ("city_count", 1.0)), (("fortifications", 1.0),)),
    GoapAction("explore", 1.0, (("has_capital", 1.0),), (("explored_tiles", 5.0),)),
)


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------

class GoapPlanner:
    """Uniform-cost search over abstract states.

    Bounded by ``max_iterations`` expansions and ``max_depth`` plan length.
    Ties between equal-cost frontier states resolve in insertion order, so
    a plan depends only on the start state and action order.
    """

    __slots__ = ("_actions", "_max_iterations", "_max_depth")

    def __init__(
        self,
        actions: Sequence[GoapAction] = GOAP_ACTIONS,
        max_iterations: int = MAX_ITERATIONS,
        max_depth: int = MAX_PLAN_DEPTH,
    ) -> None:
        self._actions = tuple(actions)
        self._max_iterations = max_iterations
        self._max_depth = max_depth

    def plan(
        self,
        start: Mapping[str, float],
        targets: Mapping[str, float],
    ) -> list[GoapAction] | None:
        """Cheapest action sequence reaching *targets*, [] if already met,
        or None when no plan exists within the search bounds."""
        if is_satisfied(start, targets):
            return []

        counter = 0
        start_key = _freeze(start)
        frontier: list[tuple[float, int, PlanState, tuple[GoapAction, ...]]] = [
            (0.0, counter, start_key, ())
        ]
        best_cost: dict[PlanState, float] = {start_key: 0.0}
        iterations = 0

        while frontier and iterations < self._max_iterations:
            cost, _, key, path = heapq.heappop(frontier)
            if cost > best_cost.get(key, float("inf")):
                continue
            iterations += 1
            state = dict(key)
            if is_satisfied(state, targets):
                return list(path)
            if len(path) >= self._max_depth:
                continue
            for action in self._actions:
                if not action.applicable(state):
                    continue
                nxt = action.apply(state)
                nkey = _freeze(nxt)
                ncost = cost + action.cost
                if ncost < best_cost.get(nkey, float("inf")):
                    best_cost[nkey] = ncost
                    counter += 1
                    heapq.heappush(frontier, (ncost, counter, nkey, path + (action,)))

        logger.debug("GOAP search gave up after %d iterations", iterations)
        return None


# ---------------------------------------------------------------------------
# Layer
# ---------------------------------------------------------------------------

def strategic_goals(view: AgentView) -> list[StrategicGoal]:
    """Goals for this turn, from personality and circumstance."""
    p = view.personality
    goals: list[StrategicGoal] = []
    if p.militarism > PERSONALITY_MODERATE:
        goals.append(StrategicGoal.BUILD_MILITARY)
    if p.industry_focus > PERSONALITY_HIGH:
        goals.append(StrategicGoal.DEVELOP_ECONOMY)
    if p.tech_focus > PERSONALITY_HIGH:
        goals.append(StrategicGoal.ADVANCE_TECHNOLOGY)
    if p.exploration_drive > EXPLORATION_THRESHOLD and view.turn < EXPLORATION_TURN_LIMIT:
        goals.append(StrategicGoal.EXPLORE_TERRITORY)
    if view.enemies() and view.threat_factor() >= 1.0:
        goals.append(StrategicGoal.DEFEND_TERRITORY)
    if not goals:
        goals.append(StrategicGoal.EXPAND_TERRITORY)
    return goals


class GoapLayer(DecisionLayer):
    """Plans towards personality-driven strategic goals."""

    __slots__ = ("_planner", "_max_steps")

    def __init__(self, planner: GoapPlanner | None = None, max_steps: int = 3) -> None:
        self._planner = planner or GoapPlanner()
        self._max_steps = max_steps

    @property
    def name(self) -> str:
        return "goap"

    def propose(self, snapshot: WorldSnapshot, agent: AgentId) -> list[Candidate]:
        view = AgentView(snapshot, agent)
        start = state_of(view)
        candidates: list[Candidate] = []
        for goal in strategic_goals(view):
            plan = self._planner.plan(start, goal_targets(goal, start))
            if not plan:
                continue
            binder = _StepBinder(view)
            for step, action in enumerate(plan[: self._max_steps]):
                kind = binder.bind(action)
                if kind is None:
                    break
                bonus = scaled_bonus(kind.category, view.personality, action.step_score)
                candidates.append(self.candidate(
                    agent, kind, bonus,
                    reason=f"{goal.name.lower()} step {step + 1}/{len(plan)}",
                    delay_turns=step,
                ))
        return candidates

    def __repr__(self) -> str:
        return f"GoapLayer(max_steps={self._max_steps})"


class _StepBinder:
    """Turns abstract plan steps into concrete, fog-gated ActionKinds.

    Repeated steps of the same kind bind to successive targets (the second
    "expand" settles the second-best site, and so on).
    """

    __slots__ = ("_view", "_used")

    def __init__(self, view: AgentView) -> None:
        self._view = view
        self._used: dict[str, int] = {}

    def _next_index(self, name: str) -> int:
        index = self._used.get(name, 0)
        self._used[name] = index + 1
        return index

    def bind(self, action: GoapAction) -> ActionKind | None:
        view = self._view
        index = self._next_index(action.name)
        capital = view.capital
        match action.name:
            case "expand":
                sites = view.expansion_sites
                return Expand(target_position=sites[index]) if index < len(sites) else None
            case "research":
                unknown = [t for t in TECHNOLOGIES if t not in view.civ.technologies]
                return Research(technology=unknown[index]) if index < len(unknown) else None
            case "build_military":
                if not view.cities:
                    return None
                city = view.cities[index % len(view.cities)]
                unit_type = UnitType.INFANTRY if len(view.units) + index < 2 else UnitType.ARCHER
                return BuildUnit(unit_type=unit_type, position=city.pos)
            case "trade":
                partner = view.nearest_trade_partner()
                return Trade(partner=partner) if partner is not None and index == 0 else None
            case "build_economic":
                city = next((c for c in view.cities if c.pos == capital), None)
                if city is None:
                    return None
                missing = [
                    b for b in (BuildingType.MARKET, BuildingType.WORKSHOP, BuildingType.LIBRARY)
                    if b not in city.buildings
                ]
                return BuildBuilding(building_type=missing[index], position=capital) if index < len(missing) else None
            case "fortify":
                city = next((c for c in view.cities if c.pos == capital), None)
                if city is None or BuildingType.WALLS in city.buildings or index > 0:
                    return None
                return BuildBuilding(building_type=BuildingType.WALLS, position=capital)
            case "explore":
                frontier = view.frontier
                spaced = frontier[index * 4] if index * 4 < len(frontier) else None
                return Explore(target_position=spaced) if spaced is not None and view.units else None
        logger.warning("No binding for GOAP action %r", action.name)
        return None
