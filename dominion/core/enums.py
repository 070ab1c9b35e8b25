"""Enumerations used throughout the scheduler."""

from __future__ import annotations

from enum import IntEnum, unique


@unique
class ActionCategory(IntEnum):
    """Discriminant of every ActionKind variant."""

    EXPAND = 0
    RESEARCH = 1
    BUILD_UNIT = 2
    BUILD_BUILDING = 3
    TRADE = 4
    ATTACK = 5
    DIPLOMACY = 6
    DEFEND = 7
    EXPLORE = 8


@unique
class TurnPhase(IntEnum):
    """States of the per-turn scheduling state machine."""

    IDLE = 0
    POPULATING = 1
    SELECTING = 2
    EXECUTING = 3
    ADVANCING = 4


@unique
class Outcome(IntEnum):
    """What happened to a candidate or queued action during a turn."""

    EXECUTED = 0
    RETRIED = 1
    EXHAUSTED = 2       # Recoverable failure with no retries left
    FATAL = 3           # Structurally invalid, dropped without retry
    REJECTED = 4        # Lost the capacity contest at enqueue
    EVICTED = 5         # Pushed out by a higher-priority newcomer
    ELIMINATED = 6      # Discarded because the owning agent was eliminated
    MERGED = 7          # Same intent already pending in the queue; not re-added


@unique
class EnqueueStatus(IntEnum):
    """Result of an ActionQueue.enqueue call."""

    ACCEPTED = 0
    EVICTED = 1         # Accepted, an existing entry was evicted to make room
    REJECTED = 2


@unique
class Domain(IntEnum):
    """RNG domains for deterministic randomness isolation."""

    AI_DECISION = 0
    COMBAT = 1
    MAP_GEN = 2
    SPAWN = 3
    PERSONALITY = 4


@unique
class Terrain(IntEnum):
    """Tile terrain on the world grid."""

    PLAINS = 0
    GRASSLAND = 1
    FOREST = 2
    HILLS = 3
    DESERT = 4
    MOUNTAIN = 5
    OCEAN = 6
    COAST = 7


@unique
class VisibilityState(IntEnum):
    """Fog-of-war state of a tile for one civilization."""

    UNEXPLORED = 0
    EXPLORED = 1
    VISIBLE = 2


@unique
class UnitType(IntEnum):
    INFANTRY = 0
    ARCHER = 1
    CAVALRY = 2
    SIEGE = 3


@unique
class BuildingType(IntEnum):
    MARKET = 0
    WORKSHOP = 1
    BARRACKS = 2
    LIBRARY = 3
    WALLS = 4


@unique
class Resource(IntEnum):
    GOLD = 0
    FOOD = 1
    IRON = 2
    WOOD = 3


@unique
class DiplomaticAction(IntEnum):
    PROPOSE_TRADE_PACT = 0
    PROPOSE_ALLIANCE = 1
    DECLARE_WAR = 2
    MAKE_PEACE = 3


@unique
class StrategicGoal(IntEnum):
    """Long-horizon objectives the GOAP layer plans towards."""

    EXPAND_TERRITORY = 0
    ADVANCE_TECHNOLOGY = 1
    DEVELOP_ECONOMY = 2
    BUILD_MILITARY = 3
    DEFEND_TERRITORY = 4
    EXPLORE_TERRITORY = 5
