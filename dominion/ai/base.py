"""Decision layer interface.

A DecisionLayer is one interchangeable planning strategy.  The coordinator
holds a fixed, ordered tuple of them and calls each once per agent per turn
with the same snapshot.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from dominion.actions.base import Candidate
from dominion.core.enums import ActionCategory

if TYPE_CHECKING:
    from dominion.actions.base import ActionKind
    from dominion.core.models import AgentId, Personality
    from dominion.core.snapshot import WorldSnapshot


class DecisionLayer(ABC):
    """Base class for planning strategies.

    Subclass this and implement:
      - name:                     unique layer identifier ("utility", "goap", ...)
      - propose(snapshot, agent): zero or more Candidates for *agent*

    ``propose`` runs on worker threads: it must only read the snapshot, and
    must only use snapshot queries that take the agent (fog-gated) when
    looking at other civilizations.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique layer identifier."""

    @abstractmethod
    def propose(self, snapshot: WorldSnapshot, agent: AgentId) -> list[Candidate]:
        """Return candidate actions for *agent* (unordered)."""

    def candidate(
        self,
        agent: AgentId,
        kind: ActionKind,
        bonus: float,
        reason: str = "",
        delay_turns: int = 0,
    ) -> Candidate:
        return Candidate(
            agent_id=agent, kind=kind, bonus=bonus,
            source=self.name, reason=reason, delay_turns=delay_turns,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# ---------------------------------------------------------------------------
# Personality weighting shared by all layers
# ---------------------------------------------------------------------------

# Multiplier turning a personality-weighted score into a priority bonus
BONUS_SCALE = 2.0

DEFEND_WEIGHT = 1.5


def personality_weight(category: ActionCategory, personality: Personality) -> float:
    """How strongly *personality* favours actions of *category*."""
    p = personality
    match category:
        case ActionCategory.EXPAND:
            return p.land_hunger * 1.3
        case ActionCategory.RESEARCH:
            return p.tech_focus * 1.2
        case ActionCategory.BUILD_UNIT:
            return p.militarism * 1.1
        case ActionCategory.BUILD_BUILDING:
            return p.industry_focus * 1.0
        case ActionCategory.TRADE:
            return p.industry_focus * 0.9
        case ActionCategory.ATTACK:
            return p.militarism * p.risk_tolerance * 1.4
        case ActionCategory.DIPLOMACY:
            return (1.0 - p.isolationism) * 0.8
        case ActionCategory.DEFEND:
            return DEFEND_WEIGHT
        case ActionCategory.EXPLORE:
            return p.exploration_drive * 1.15
    return 1.0


def scaled_bonus(category: ActionCategory, personality: Personality, score: float) -> float:
    return score * personality_weight(category, personality) * BONUS_SCALE
