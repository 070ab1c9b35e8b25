"""Utility-scoring decision layer.

Each UtilityScorer rates one line of action for an agent in [0, ~1.5].  A
scorer at or above the consideration threshold turns into exactly one
candidate.  To add a scorer:
  1. Subclass UtilityScorer below (or in your own module).
  2. Pass it to ``register_scorer()``, or hand UtilityLayer an explicit list.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

from dominion.actions.kinds import BuildBuilding, BuildUnit, Defend, Expand, Explore, Research, Trade
from dominion.ai.base import DecisionLayer, scaled_bonus
from dominion.ai.perception import AgentView
from dominion.core.enums import BuildingType, Domain, UnitType
from dominion.systems.rng import DeterministicRNG

if TYPE_CHECKING:
    from dominion.actions.base import ActionKind, Candidate
    from dominion.core.models import AgentId
    from dominion.core.snapshot import WorldSnapshot

logger = logging.getLogger(__name__)

CONSIDERATION_THRESHOLD = 0.3

TECHNOLOGIES: tuple[str, ...] = (
    "Agriculture", "Bronze Working", "Writing", "Mathematics", "Iron Working",
)

# Salt mixed into the RNG key so each scorer draws an independent value
_RESEARCH_SALT = 1 << 16
_EXPLORE_SALT = 2 << 16


# ---------------------------------------------------------------------------
# Abstract scorer
# ---------------------------------------------------------------------------

class UtilityScorer(ABC):
    """Base class for utility scorers.

    Subclass this and implement:
      - name:              unique scorer identifier
      - score(view):       utility in [0, ~1.5]; below the threshold is ignored
      - action(view, rng): the concrete ActionKind, or None when there is
                           nothing sensible to do despite a high score
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique scorer identifier (e.g. 'expand', 'research')."""

    @abstractmethod
    def score(self, view: AgentView) -> float:
        """Utility of this line of action for the viewing agent."""

    @abstractmethod
    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        """Concrete action to propose when the score clears the threshold."""


# ---------------------------------------------------------------------------
# Expand: settle free land
# ---------------------------------------------------------------------------

class ExpandScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "expand"

    def score(self, view: AgentView) -> float:
        if view.capital is None:
            return 0.0
        free = len(view.free_tiles_around(view.capital))
        return view.personality.land_hunger * min(free / 8.0, 1.0)

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        sites = view.expansion_sites
        if not sites:
            return None
        return Expand(target_position=sites[0])


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------

class ResearchScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "research"

    def score(self, view: AgentView) -> float:
        return view.personality.tech_focus * min(view.civ.gold / 100.0, 1.0)

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        unknown = [t for t in TECHNOLOGIES if t not in view.civ.technologies]
        if not unknown:
            return None
        # Pick between the next two technologies on the ladder
        tech = rng.choice(Domain.AI_DECISION, view.agent + _RESEARCH_SALT, view.turn, unknown[:2])
        return Research(technology=tech)


# ---------------------------------------------------------------------------
# Military: raise units, more so under threat
# ---------------------------------------------------------------------------

class MilitaryScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "military"

    def score(self, view: AgentView) -> float:
        if view.capital is None:
            return 0.0
        return view.personality.militarism * (0.5 + 0.5 * view.threat_factor())

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        if view.capital is None:
            return None
        unit_type = UnitType.INFANTRY if len(view.units) < 2 else UnitType.ARCHER
        return BuildUnit(unit_type=unit_type, position=view.capital)


# ---------------------------------------------------------------------------
# Economy: buildings when expenses press on income
# ---------------------------------------------------------------------------

class EconomyScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "economy"

    def score(self, view: AgentView) -> float:
        civ = view.civ
        pressure = min(civ.expenses / civ.income, 2.0) if civ.income > 0 else 2.0
        return view.personality.industry_focus * (0.3 + 0.7 * pressure)

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        capital = view.capital
        if capital is None:
            return None
        city = next((c for c in view.cities if c.pos == capital), None)
        if city is None:
            return None
        for building in (BuildingType.MARKET, BuildingType.WORKSHOP):
            if building not in city.buildings:
                return BuildBuilding(building_type=building, position=capital)
        return None


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------

class TradeScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "trade"

    def score(self, view: AgentView) -> float:
        if view.nearest_trade_partner() is None:
            return 0.0
        saturation = min(len(view.civ.trade_routes) / 5.0, 1.0)
        return view.personality.industry_focus * (1.0 - saturation) * 0.8

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        partner = view.nearest_trade_partner()
        if partner is None:
            return None
        return Trade(partner=partner)


# ---------------------------------------------------------------------------
# Defend: hostile units next to an own city
# ---------------------------------------------------------------------------

class DefendScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "defend"

    def score(self, view: AgentView) -> float:
        threatened = view.threatened_city()
        if threatened is None or not view.units:
            return 0.0
        _city, hostile = threatened
        return 0.4 + 0.6 * min(hostile / (view.strength + 1.0), 1.0)

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        threatened = view.threatened_city()
        if threatened is None:
            return None
        return Defend(position=threatened[0].pos)


# ---------------------------------------------------------------------------
# Explore: push units into the fog
# ---------------------------------------------------------------------------

class ExploreScorer(UtilityScorer):

    @property
    def name(self) -> str:
        return "explore"

    def score(self, view: AgentView) -> float:
        if not view.units:
            return 0.0
        return (
            view.personality.exploration_drive
            * view.unexplored_ratio
            * view.game_phase_multiplier()
        )

    def action(self, view: AgentView, rng: DeterministicRNG) -> ActionKind | None:
        frontier = view.frontier
        if not frontier or not view.units:
            return None
        target = rng.choice(Domain.AI_DECISION, view.agent + _EXPLORE_SALT, view.turn, frontier[:3])
        return Explore(target_position=target)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

UTILITY_SCORERS: list[UtilityScorer] = [
    ExpandScorer(),
    ResearchScorer(),
    MilitaryScorer(),
    EconomyScorer(),
    TradeScorer(),
    DefendScorer(),
    ExploreScorer(),
]


def register_scorer(scorer: UtilityScorer) -> UtilityScorer:
    """Add *scorer* to the default set used by new UtilityLayers."""
    UTILITY_SCORERS.append(scorer)
    return scorer


# ---------------------------------------------------------------------------
# Layer
# ---------------------------------------------------------------------------

class UtilityLayer(DecisionLayer):
    """Scores every registered scorer and proposes the ones above threshold."""

    __slots__ = ("_scorers", "_threshold")

    def __init__(
        self,
        scorers: Sequence[UtilityScorer] | None = None,
        threshold: float = CONSIDERATION_THRESHOLD,
    ) -> None:
        self._scorers: tuple[UtilityScorer, ...] = tuple(UTILITY_SCORERS if scorers is None else scorers)
        self._threshold = threshold

    @property
    def name(self) -> str:
        return "utility"

    @property
    def scorers(self) -> tuple[UtilityScorer, ...]:
        return self._scorers

    def evaluate(self, view: AgentView) -> list[tuple[str, float]]:
        """(scorer name, score) for every scorer, highest first."""
        scores = [(s.name, s.score(view)) for s in self._scorers]
        scores.sort(key=lambda item: item[1], reverse=True)
        return scores

    def propose(self, snapshot: WorldSnapshot, agent: AgentId) -> list[Candidate]:
        view = AgentView(snapshot, agent)
        rng = DeterministicRNG(snapshot.seed)
        candidates: list[Candidate] = []
        for scorer in self._scorers:
            score = scorer.score(view)
            if score < self._threshold:
                continue
            kind = scorer.action(view, rng)
            if kind is None:
                continue
            bonus = scaled_bonus(kind.category, view.personality, score)
            candidates.append(
                self.candidate(agent, kind, bonus, reason=f"{scorer.name} utility {score:.2f}")
            )
        logger.debug("Agent %d utility: %d candidates", agent, len(candidates))
        return candidates

    def __repr__(self) -> str:
        return f"UtilityLayer(scorers={[s.name for s in self._scorers]})"
