"""Core data models and world representation."""

from dominion.core.enums import ActionCategory, Domain, Outcome, Terrain, TurnPhase, VisibilityState
from dominion.core.models import AgentId, City, Civilization, Personality, Unit, Vector2
from dominion.core.grid import Grid
from dominion.core.fog_of_war import FogOfWarMaps, VisibilityMap
from dominion.core.world_state import WorldState
from dominion.core.snapshot import WorldSnapshot

__all__ = [
    "ActionCategory",
    "AgentId",
    "City",
    "Civilization",
    "Domain",
    "FogOfWarMaps",
    "Grid",
    "Outcome",
    "Personality",
    "Terrain",
    "TurnPhase",
    "Unit",
    "Vector2",
    "VisibilityMap",
    "VisibilityState",
    "WorldSnapshot",
    "WorldState",
]
