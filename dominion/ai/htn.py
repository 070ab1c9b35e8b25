"""Hierarchical task network (HTN) layer.

A compound task holds an ordered list of methods.  The first method whose
conditions all hold is decomposed: primitive subtasks become concrete
actions, compound subtasks recurse.  Recursion is bounded by
``max_depth`` so a cyclic network cannot hang a worker.

Built-in network:

    ConquestCampaign
      aggressive_conquest  (strength >= 50, gold >= 100)
          BuildArmy, ResearchTechnology, DeclareWar
      preparation_phase    (cities >= 1)
          BuildArmy, BuildInfrastructure, EconomicDevelopment*
    DiplomaticCampaign     (turn > 10)
          EstablishTrade, FormAlliance
    EconomicDevelopment    (cities >= 1)
          BuildInfrastructure, EstablishTrade, ExpandTerritory
    TechnologicalAdvancement (gold >= 50)
          ResearchTechnology, BuildInfrastructure
    DefensivePreparation   (has enemies)
          BuildArmy, DefendTerritory, FormAlliance

    * compound subtask
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum, unique
from typing import TYPE_CHECKING, Callable, Mapping

from dominion.actions.kinds import (
    Attack,
    BuildBuilding,
    BuildUnit,
    Defend,
    Diplomacy,
    Expand,
    Research,
    Trade,
)
from dominion.ai.base import DecisionLayer, scaled_bonus
from dominion.ai.perception import AgentView
from dominion.ai.utility import TECHNOLOGIES
from dominion.core.enums import BuildingType, DiplomaticAction, UnitType

if TYPE_CHECKING:
    from dominion.actions.base import ActionKind, Candidate
    from dominion.core.models import AgentId
    from dominion.core.snapshot import WorldSnapshot

logger = logging.getLogger(__name__)

MAX_DECOMPOSITION_DEPTH = 5

ALLIANCE_RELATION = 20.0
WAR_STRENGTH_RATIO = 0.7

PERSONALITY_MODERATE = 0.5
CONQUEST_LAND_HUNGER = 0.7
ECONOMY_INDUSTRY_FOCUS = 0.7
TECHNOLOGY_FOCUS = 0.7


@unique
class HtnTask(IntEnum):
    CONQUEST_CAMPAIGN = 0
    DIPLOMATIC_CAMPAIGN = 1
    ECONOMIC_DEVELOPMENT = 2
    TECHNOLOGICAL_ADVANCEMENT = 3
    DEFENSIVE_PREPARATION = 4


@unique
class Primitive(IntEnum):
    BUILD_ARMY = 0
    EXPAND_TERRITORY = 1
    RESEARCH_TECHNOLOGY = 2
    ESTABLISH_TRADE = 3
    BUILD_INFRASTRUCTURE = 4
    FORM_ALLIANCE = 5
    DECLARE_WAR = 6
    DEFEND_TERRITORY = 7


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

class Condition(ABC):
    """A method precondition evaluated against the agent's view."""

    __slots__ = ()

    @abstractmethod
    def holds(self, view: AgentView) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class HasGold(Condition):
    amount: float

    def holds(self, view: AgentView) -> bool:
        return view.civ.gold >= self.amount


@dataclass(frozen=True, slots=True)
class HasMilitaryStrength(Condition):
    strength: float

    def holds(self, view: AgentView) -> bool:
        return view.strength >= self.strength


@dataclass(frozen=True, slots=True)
class HasCities(Condition):
    count: int

    def holds(self, view: AgentView) -> bool:
        return len(view.cities) >= self.count


@dataclass(frozen=True, slots=True)
class HasTechnology(Condition):
    technology: str

    def holds(self, view: AgentView) -> bool:
        return self.technology in view.civ.technologies


@dataclass(frozen=True, slots=True)
class HasEnemies(Condition):

    def holds(self, view: AgentView) -> bool:
        return bool(view.enemies())


@dataclass(frozen=True, slots=True)
class HasAllies(Condition):

    def holds(self, view: AgentView) -> bool:
        return bool(view.civ.alliances)


@dataclass(frozen=True, slots=True)
class TurnGreaterThan(Condition):
    turn: int

    def holds(self, view: AgentView) -> bool:
        return view.turn > self.turn


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------

Subtask = HtnTask | Primitive


@dataclass(frozen=True, slots=True)
class Method:
    name: str
    conditions: tuple[Condition, ...]
    subtasks: tuple[Subtask, ...]

    def applicable(self, view: AgentView) -> bool:
        return all(c.holds(view) for c in self.conditions)


TASK_NETWORK: dict[HtnTask, tuple[Method, ...]] = {
    HtnTask.CONQUEST_CAMPAIGN: (
        Method(
            "aggressive_conquest",
            (HasMilitaryStrength(50.0), HasGold(100.0)),
            (Primitive.BUILD_ARMY, Primitive.RESEARCH_TECHNOLOGY, Primitive.DECLARE_WAR),
        ),
        Method(
            "preparation_phase",
            (HasCities(1),),
            (Primitive.BUILD_ARMY, Primitive.BUILD_INFRASTRUCTURE, HtnTask.ECONOMIC_DEVELOPMENT),
        ),
    ),
    HtnTask.DIPLOMATIC_CAMPAIGN: (
        Method(
            "peaceful_relations",
            (TurnGreaterThan(10),),
            (Primitive.ESTABLISH_TRADE, Primitive.FORM_ALLIANCE),
        ),
    ),
    HtnTask.ECONOMIC_DEVELOPMENT: (
        Method(
            "infrastructure_focus",
            (HasCities(1),),
            (Primitive.BUILD_INFRASTRUCTURE, Primitive.ESTABLISH_TRADE, Primitive.EXPAND_TERRITORY),
        ),
    ),
    HtnTask.TECHNOLOGICAL_ADVANCEMENT: (
        Method(
            "research_focus",
            (HasGold(50.0),),
            (Primitive.RESEARCH_TECHNOLOGY, Primitive.BUILD_INFRASTRUCTURE),
        ),
    ),
    HtnTask.DEFENSIVE_PREPARATION: (
        Method(
            "fortify_borders",
            (HasEnemies(),),
            (Primitive.BUILD_ARMY, Primitive.DEFEND_TERRITORY, Primitive.FORM_ALLIANCE),
        ),
    ),
}


# ---------------------------------------------------------------------------
# Primitive actions
# ---------------------------------------------------------------------------

# A primitive binds to (kind, base score) or None when it has no valid target
PrimitiveBinder = Callable[[AgentView], "tuple[ActionKind, float] | None"]


def _build_army(view: AgentView) -> tuple[ActionKind, float] | None:
    if view.capital is None:
        return None
    unit_type = UnitType.INFANTRY if len(view.units) < 2 else UnitType.ARCHER
    return BuildUnit(unit_type=unit_type, position=view.capital), 0.8


def _expand_territory(view: AgentView) -> tuple[ActionKind, float] | None:
    sites = view.expansion_sites
    if not sites:
        return None
    return Expand(target_position=sites[0]), 0.7


def _research_technology(view: AgentView) -> tuple[ActionKind, float] | None:
    known = view.civ.technologies
    if "Iron Working" not in known:
        return Research(technology="Iron Working"), 0.6
    unknown = [t for t in TECHNOLOGIES if t not in known]
    if not unknown:
        return None
    return Research(technology=unknown[0]), 0.6


def _establish_trade(view: AgentView) -> tuple[ActionKind, float] | None:
    partner = view.nearest_trade_partner()
    if partner is None:
        return None
    return Trade(partner=partner), 0.5


def _build_infrastructure(view: AgentView) -> tuple[ActionKind, float] | None:
    capital = view.capital
    city = next((c for c in view.cities if c.pos == capital), None)
    if city is None:
        return None
    for building in (BuildingType.WORKSHOP, BuildingType.MARKET, BuildingType.LIBRARY):
        if building not in city.buildings:
            return BuildBuilding(building_type=building, position=city.pos), 0.6
    return None


def _form_alliance(view: AgentView) -> tuple[ActionKind, float] | None:
    civ = view.civ
    friendly = [
        o for o in view.known_civs
        if o not in civ.alliances and o not in civ.at_war_with
    ]
    if not friendly:
        return None
    best = max(friendly, key=lambda o: (view.relation(o), -o))
    if view.relation(best) > ALLIANCE_RELATION:
        return Diplomacy(target_civ=best, action=DiplomaticAction.PROPOSE_ALLIANCE), 0.7
    # Not yet friendly enough: warm relations first
    return Diplomacy(target_civ=best, action=DiplomaticAction.PROPOSE_TRADE_PACT), 0.5


def _declare_war(view: AgentView) -> tuple[ActionKind, float] | None:
    rival = view.weakest_rival(WAR_STRENGTH_RATIO)
    if rival is None:
        return None
    target, capital = rival
    return Attack(target_civ=target, target_position=capital), 0.9


def _defend_territory(view: AgentView) -> tuple[ActionKind, float] | None:
    threatened = view.threatened_city()
    if threatened is not None:
        return Defend(position=threatened[0].pos), 1.0
    if view.capital is None:
        return None
    return Defend(position=view.capital), 1.0


PRIMITIVE_BINDERS: dict[Primitive, PrimitiveBinder] = {
    Primitive.BUILD_ARMY:           _build_army,
    Primitive.EXPAND_TERRITORY:     _expand_territory,
    Primitive.RESEARCH_TECHNOLOGY:  _research_technology,
    Primitive.ESTABLISH_TRADE:      _establish_trade,
    Primitive.BUILD_INFRASTRUCTURE: _build_infrastructure,
    Primitive.FORM_ALLIANCE:        _form_alliance,
    Primitive.DECLARE_WAR:          _declare_war,
    Primitive.DEFEND_TERRITORY:     _defend_territory,
}


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class PlanStep:
    task: HtnTask
    method: str
    primitive: Primitive
    kind: ActionKind
    score: float


class HtnPlanner:
    """Decomposes compound tasks into PlanSteps for one agent view."""

    __slots__ = ("_network", "_binders", "_max_depth")

    def __init__(
        self,
        network: Mapping[HtnTask, tuple[Method, ...]] | None = None,
        binders: Mapping[Primitive, PrimitiveBinder] | None = None,
        max_depth: int = MAX_DECOMPOSITION_DEPTH,
    ) -> None:
        self._network = dict(TASK_NETWORK if network is None else network)
        self._binders = dict(PRIMITIVE_BINDERS if binders is None else binders)
        self._max_depth = max_depth

    def decompose(self, task: HtnTask, view: AgentView, depth: int = 0) -> list[PlanStep]:
        """Primitive steps for *task*, or [] when no method applies."""
        if depth >= self._max_depth:
            logger.warning(
                "HTN decomposition of %s for agent %d exceeded depth %d",
                task.name, view.agent, self._max_depth,
            )
            return []
        method = next((m for m in self._network.get(task, ()) if m.applicable(view)), None)
        if method is None:
            return []

        steps: list[PlanStep] = []
        for sub in method.subtasks:
            if isinstance(sub, HtnTask):
                steps.extend(self.decompose(sub, view, depth + 1))
                continue
            binder = self._binders.get(sub)
            bound = binder(view) if binder is not None else None
            if bound is None:
                continue
            kind, score = bound
            steps.append(PlanStep(task=task, method=method.name, primitive=sub, kind=kind, score=score))
        return steps


def htn_tasks(view: AgentView) -> list[HtnTask]:
    """Top-level tasks for this turn, from personality and circumstance."""
    p = view.personality
    tasks: list[HtnTask] = []
    if p.interventionism > PERSONALITY_MODERATE:
        tasks.append(HtnTask.DIPLOMATIC_CAMPAIGN)
    if p.land_hunger > CONQUEST_LAND_HUNGER and p.militarism > PERSONALITY_MODERATE:
        tasks.append(HtnTask.CONQUEST_CAMPAIGN)
    if p.industry_focus > ECONOMY_INDUSTRY_FOCUS:
        tasks.append(HtnTask.ECONOMIC_DEVELOPMENT)
    if p.tech_focus > TECHNOLOGY_FOCUS:
        tasks.append(HtnTask.TECHNOLOGICAL_ADVANCEMENT)
    if view.threatened_city() is not None:
        tasks.append(HtnTask.DEFENSIVE_PREPARATION)
    return tasks


class HtnLayer(DecisionLayer):
    """Proposes the primitive steps of every active top-level task."""

    __slots__ = ("_planner",)

    def __init__(self, planner: HtnPlanner | None = None) -> None:
        self._planner = planner or HtnPlanner()

    @property
    def name(self) -> str:
        return "htn"

    def propose(self, snapshot: WorldSnapshot, agent: AgentId) -> list[Candidate]:
        view = AgentView(snapshot, agent)
        candidates: list[Candidate] = []
        for task in htn_tasks(view):
            for step in self._planner.decompose(task, view):
                bonus = scaled_bonus(step.kind.category, view.personality, step.score)
                candidates.append(self.candidate(
                    agent, step.kind, bonus,
                    reason=f"{task.name.lower()}/{step.method}",
                ))
        return candidates
