"""Core data models: Vector2, Personality, Unit, City, Civilization."""

from __future__ import annotations

from dataclasses import dataclass, field

from dominion.core.enums import BuildingType, UnitType

AgentId = int


@dataclass(frozen=True, slots=True)
class Vector2:
    """Immutable 2D integer coordinate."""

    x: int = 0
    y: int = 0

    def __add__(self, other: Vector2) -> Vector2:
        return Vector2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Vector2) -> Vector2:
        return Vector2(self.x - other.x, self.y - other.y)

    def manhattan(self, other: Vector2) -> int:
        return abs(self.x - other.x) + abs(self.y - other.y)

    def chebyshev(self, other: Vector2) -> int:
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def __repr__(self) -> str:
        return f"({self.x}, {self.y})"


# Cardinal offsets, no diagonals
CARDINAL_OFFSETS: tuple[Vector2, ...] = (
    Vector2(1, 0), Vector2(-1, 0), Vector2(0, 1), Vector2(0, -1),
)

# 8-neighbourhood, used for city claims and free-land checks
RING_OFFSETS: tuple[Vector2, ...] = tuple(
    Vector2(dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if dx or dy
)


@dataclass(frozen=True, slots=True)
class Personality:
    """Personality weights in [0, 1] that bias a civilization's planning."""

    land_hunger: float = 0.5
    tech_focus: float = 0.5
    militarism: float = 0.5
    industry_focus: float = 0.5
    risk_tolerance: float = 0.5
    isolationism: float = 0.5
    interventionism: float = 0.5
    exploration_drive: float = 0.5


UNIT_STRENGTH: dict[UnitType, float] = {
    UnitType.INFANTRY: 10.0,
    UnitType.ARCHER:   8.0,
    UnitType.CAVALRY:  12.0,
    UnitType.SIEGE:    14.0,
}


@dataclass(slots=True)
class Unit:
    """A military unit owned by a civilization."""

    unit_id: int
    owner: AgentId
    unit_type: UnitType
    pos: Vector2

    @property
    def strength(self) -> float:
        return UNIT_STRENGTH.get(self.unit_type, 10.0)

    def copy(self) -> Unit:
        return Unit(unit_id=self.unit_id, owner=self.owner, unit_type=self.unit_type, pos=self.pos)


@dataclass(slots=True)
class City:
    """A settlement; the first city founded is the capital."""

    city_id: int
    owner: AgentId
    name: str
    pos: Vector2
    buildings: list[BuildingType] = field(default_factory=list)

    def copy(self) -> City:
        return City(
            city_id=self.city_id, owner=self.owner, name=self.name,
            pos=self.pos, buildings=list(self.buildings),
        )


@dataclass(frozen=True, slots=True)
class TradeRoute:
    partner: AgentId
    value: float = 10.0
    security: float = 0.8


@dataclass(slots=True)
class Civilization:
    """Mutable per-civilization state owned by the WorldState."""

    civ_id: AgentId
    name: str
    personality: Personality = field(default_factory=Personality)
    gold: float = 100.0
    income: float = 10.0
    expenses: float = 5.0
    capital: Vector2 | None = None
    technologies: set[str] = field(default_factory=set)
    trade_routes: list[TradeRoute] = field(default_factory=list)
    # Relation score per other civ: < 0 hostile, > 0 friendly
    relations: dict[AgentId, float] = field(default_factory=dict)
    at_war_with: set[AgentId] = field(default_factory=set)
    alliances: set[AgentId] = field(default_factory=set)
    explored_tiles: int = 0
    fortifications: int = 0
    alive: bool = True

    def copy(self) -> Civilization:
        return Civilization(
            civ_id=self.civ_id, name=self.name, personality=self.personality,
            gold=self.gold, income=self.income, expenses=self.expenses,
            capital=self.capital, technologies=set(self.technologies),
            trade_routes=list(self.trade_routes), relations=dict(self.relations),
            at_war_with=set(self.at_war_with), alliances=set(self.alliances),
            explored_tiles=self.explored_tiles, fortifications=self.fortifications,
            alive=self.alive,
        )
