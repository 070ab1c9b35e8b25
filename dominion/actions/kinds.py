"""The closed ActionKind vocabulary.

Add a variant by subclassing ActionKind, setting ``category``, defining
``target``, and listing the class in ``KIND_TYPES``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Hashable

from dominion.actions.base import ActionKind
from dominion.core.enums import (
    ActionCategory,
    BuildingType,
    DiplomaticAction,
    Resource,
    UnitType,
)
from dominion.core.models import Vector2


@dataclass(frozen=True, slots=True, repr=False)
class Expand(ActionKind):
    category = ActionCategory.EXPAND
    target_position: Vector2

    @property
    def target(self) -> Hashable:
        return self.target_position


@dataclass(frozen=True, slots=True, repr=False)
class Research(ActionKind):
    category = ActionCategory.RESEARCH
    technology: str

    @property
    def target(self) -> Hashable:
        return self.technology


@dataclass(frozen=True, slots=True, repr=False)
class BuildUnit(ActionKind):
    category = ActionCategory.BUILD_UNIT
    unit_type: UnitType
    position: Vector2

    @property
    def target(self) -> Hashable:
        return self.position


@dataclass(frozen=True, slots=True, repr=False)
class BuildBuilding(ActionKind):
    category = ActionCategory.BUILD_BUILDING
    building_type: BuildingType
    position: Vector2

    @property
    def target(self) -> Hashable:
        return (self.position, self.building_type)


@dataclass(frozen=True, slots=True, repr=False)
class Trade(ActionKind):
    category = ActionCategory.TRADE
    partner: int
    resource: Resource = Resource.GOLD

    @property
    def target(self) -> Hashable:
        return self.partner


@dataclass(frozen=True, slots=True, repr=False)
class Attack(ActionKind):
    category = ActionCategory.ATTACK
    target_civ: int
    target_position: Vector2

    @property
    def target(self) -> Hashable:
        return self.target_civ


@dataclass(frozen=True, slots=True, repr=False)
class Diplomacy(ActionKind):
    category = ActionCategory.DIPLOMACY
    target_civ: int
    action: DiplomaticAction

    @property
    def target(self) -> Hashable:
        return self.target_civ


@dataclass(frozen=True, slots=True, repr=False)
class Defend(ActionKind):
    category = ActionCategory.DEFEND
    position: Vector2

    @property
    def target(self) -> Hashable:
        return self.position


@dataclass(frozen=True, slots=True, repr=False)
class Explore(ActionKind):
    category = ActionCategory.EXPLORE
    target_position: Vector2

    @property
    def target(self) -> Hashable:
        return self.target_position


KIND_TYPES: dict[ActionCategory, type[ActionKind]] = {
    ActionCategory.EXPAND:         Expand,
    ActionCategory.RESEARCH:       Research,
    ActionCategory.BUILD_UNIT:     BuildUnit,
    ActionCategory.BUILD_BUILDING: BuildBuilding,
    ActionCategory.TRADE:          Trade,
    ActionCategory.ATTACK:         Attack,
    ActionCategory.DIPLOMACY:      Diplomacy,
    ActionCategory.DEFEND:         Defend,
    ActionCategory.EXPLORE:        Explore,
}

# Field name -> decoder for the JSON form produced by ActionKind.to_dict()
_FIELD_DECODERS: dict[str, Callable[[Any], Any]] = {
    "target_position": lambda v: Vector2(int(v[0]), int(v[1])),
    "position":        lambda v: Vector2(int(v[0]), int(v[1])),
    "technology":      str,
    "unit_type":       lambda v: UnitType[v],
    "building_type":   lambda v: BuildingType[v],
    "resource":        lambda v: Resource[v],
    "action":          lambda v: DiplomaticAction[v],
    "partner":         int,
    "target_civ":      int,
}


def kind_from_dict(data: dict[str, Any]) -> ActionKind:
    """Rebuild an ActionKind from its ``to_dict()`` form.

    Raises ValueError on an unknown type or a malformed payload.
    """
    try:
        category = ActionCategory[data["type"]]
    except KeyError as exc:
        raise ValueError(f"Unknown action type in {data!r}") from exc
    cls = KIND_TYPES[category]
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key == "type":
            continue
        decoder = _FIELD_DECODERS.get(key)
        if decoder is None:
            raise ValueError(f"Unknown field {key!r} for {category.name}")
        try:
            kwargs[key] = decoder(value)
        except (KeyError, TypeError, IndexError, ValueError) as exc:
            raise ValueError(f"Bad value for {category.name}.{key}: {value!r}") from exc
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ValueError(f"Malformed {category.name} payload: {data!r}") from exc
