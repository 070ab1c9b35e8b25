"""Action vocabulary shared by the decision layers, queues and execution engine."""

from dominion.actions.base import ActionKind, Candidate
from dominion.actions.kinds import (
    KIND_TYPES,
    Attack,
    BuildBuilding,
    BuildUnit,
    Defend,
    Diplomacy,
    Expand,
    Explore,
    Research,
    Trade,
    kind_from_dict,
)

__all__ = [
    "KIND_TYPES",
    "ActionKind",
    "Attack",
    "BuildBuilding",
    "BuildUnit",
    "Candidate",
    "Defend",
    "Diplomacy",
    "Expand",
    "Explore",
    "Research",
    "Trade",
    "kind_from_dict",
]
