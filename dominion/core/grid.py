"""Grid / map system."""

from __future__ import annotations

from dominion.core.enums import Terrain
from dominion.core.models import CARDINAL_OFFSETS, Vector2

# Cost 1.0 = baseline.  Impassable terrain has no entry.
TERRAIN_MOVE_COST: dict[Terrain, float] = {
    Terrain.PLAINS:    1.0,
    Terrain.GRASSLAND: 1.0,
    Terrain.COAST:     1.0,
    Terrain.DESERT:    1.2,
    Terrain.FOREST:    1.5,
    Terrain.HILLS:     2.0,
}

IMPASSABLE: frozenset[Terrain] = frozenset({Terrain.OCEAN, Terrain.MOUNTAIN})


class Grid:
    """2D terrain grid backed by a flat list, plus tile ownership."""

    __slots__ = ("width", "height", "_tiles", "_owners")

    def __init__(self, width: int, height: int, default: Terrain = Terrain.PLAINS) -> None:
        self.width = width
        self.height = height
        self._tiles: list[Terrain] = [default] * (width * height)
        self._owners: dict[tuple[int, int], int] = {}

    # -- access --

    def _idx(self, x: int, y: int) -> int:
        return y * self.width + x

    def in_bounds(self, pos: Vector2) -> bool:
        return 0 <= pos.x < self.width and 0 <= pos.y < self.height

    def get(self, pos: Vector2) -> Terrain:
        if not self.in_bounds(pos):
            return Terrain.OCEAN
        return self._tiles[self._idx(pos.x, pos.y)]

    def set(self, pos: Vector2, terrain: Terrain) -> None:
        if self.in_bounds(pos):
            self._tiles[self._idx(pos.x, pos.y)] = terrain

    def is_walkable(self, pos: Vector2) -> bool:
        return self.in_bounds(pos) and self.get(pos) not in IMPASSABLE

    def move_cost(self, pos: Vector2) -> float:
        return TERRAIN_MOVE_COST.get(self.get(pos), 1.0)

    def neighbors(self, pos: Vector2) -> list[Vector2]:
        """In-bounds cardinal neighbours of *pos*."""
        result: list[Vector2] = []
        for d in CARDINAL_OFFSETS:
            n = pos + d
            if self.in_bounds(n):
                result.append(n)
        return result

    # -- ownership --

    def owner(self, pos: Vector2) -> int | None:
        return self._owners.get((pos.x, pos.y))

    def claim(self, pos: Vector2, civ_id: int) -> None:
        if self.in_bounds(pos):
            self._owners[(pos.x, pos.y)] = civ_id

    def release_all(self, civ_id: int) -> None:
        self._owners = {k: v for k, v in self._owners.items() if v != civ_id}

    def territory_of(self, civ_id: int) -> list[Vector2]:
        return sorted(
            (Vector2(x, y) for (x, y), owner in self._owners.items() if owner == civ_id),
            key=lambda p: (p.y, p.x),
        )

    # -- copy --

    def copy(self) -> Grid:
        new = Grid.__new__(Grid)
        new.width = self.width
        new.height = self.height
        new._tiles = list(self._tiles)
        new._owners = dict(self._owners)
        return new
