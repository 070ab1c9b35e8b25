"""Decision layers, the coordinator and pathfinding."""

from __future__ import annotations

from typing import Iterable

from dominion.ai.base import DecisionLayer
from dominion.ai.coordinator import Coordinator, PlannedAction, Submission
from dominion.ai.goap import GoapLayer
from dominion.ai.htn import HtnLayer
from dominion.ai.pathfinding import Pathfinder
from dominion.ai.perception import AgentView
from dominion.ai.utility import UtilityLayer

LAYER_TYPES: dict[str, type[DecisionLayer]] = {
    "utility": UtilityLayer,
    "goap": GoapLayer,
    "htn": HtnLayer,
}


def build_layers(names: Iterable[str]) -> tuple[DecisionLayer, ...]:
    """Instantiate layers by name, in the given order.

    Raises ValueError on an unknown or repeated name.
    """
    layers: list[DecisionLayer] = []
    seen: set[str] = set()
    for name in names:
        cls = LAYER_TYPES.get(name)
        if cls is None:
            raise ValueError(f"Unknown decision layer {name!r}; expected one of {sorted(LAYER_TYPES)}")
        if name in seen:
            raise ValueError(f"Decision layer {name!r} listed twice")
        seen.add(name)
        layers.append(cls())
    return tuple(layers)


__all__ = [
    "LAYER_TYPES",
    "AgentView",
    "Coordinator",
    "DecisionLayer",
    "GoapLayer",
    "HtnLayer",
    "Pathfinder",
    "PlannedAction",
    "Submission",
    "UtilityLayer",
    "build_layers",
]
