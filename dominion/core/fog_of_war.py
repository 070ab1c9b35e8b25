"""Per-civilization fog of war.

Every tile starts UNEXPLORED.  Units and cities mark tiles within their
vision range (Chebyshev distance) VISIBLE; at the next refresh those tiles
decay to EXPLORED unless something still sees them.
"""

from __future__ import annotations

from dominion.core.enums import VisibilityState
from dominion.core.models import AgentId, Vector2

UNIT_VISION_RANGE = 2
CITY_VISION_RANGE = 3


class VisibilityMap:
    """Visibility state of every tile for one civilization."""

    __slots__ = ("width", "height", "_tiles")

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self._tiles: list[VisibilityState] = [VisibilityState.UNEXPLORED] * (width * height)

    def _in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, pos: Vector2) -> VisibilityState | None:
        if not self._in_bounds(pos.x, pos.y):
            return None
        return self._tiles[pos.y * self.width + pos.x]

    def set(self, pos: Vector2, state: VisibilityState) -> None:
        if self._in_bounds(pos.x, pos.y):
            self._tiles[pos.y * self.width + pos.x] = state

    def is_visible(self, pos: Vector2) -> bool:
        return self.get(pos) == VisibilityState.VISIBLE

    def is_explored(self, pos: Vector2) -> bool:
        return self.get(pos) in (VisibilityState.VISIBLE, VisibilityState.EXPLORED)

    def reset_visibility(self) -> None:
        """Demote every VISIBLE tile to EXPLORED (start of a refresh)."""
        self._tiles = [
            VisibilityState.EXPLORED if t == VisibilityState.VISIBLE else t
            for t in self._tiles
        ]

    def mark_visible(self, center: Vector2, vision_range: int) -> None:
        for dy in range(-vision_range, vision_range + 1):
            for dx in range(-vision_range, vision_range + 1):
                x, y = center.x + dx, center.y + dy
                if self._in_bounds(x, y):
                    self._tiles[y * self.width + x] = VisibilityState.VISIBLE

    def explored_count(self) -> int:
        return sum(1 for t in self._tiles if t != VisibilityState.UNEXPLORED)

    def copy(self) -> VisibilityMap:
        new = VisibilityMap.__new__(VisibilityMap)
        new.width = self.width
        new.height = self.height
        new._tiles = list(self._tiles)
        return new


class FogOfWarMaps:
    """Visibility maps for all civilizations, keyed by AgentId."""

    __slots__ = ("_maps",)

    def __init__(self) -> None:
        self._maps: dict[AgentId, VisibilityMap] = {}

    def init_for_civ(self, civ_id: AgentId, width: int, height: int) -> None:
        self._maps[civ_id] = VisibilityMap(width, height)

    def get(self, civ_id: AgentId) -> VisibilityMap | None:
        return self._maps.get(civ_id)

    def remove(self, civ_id: AgentId) -> None:
        self._maps.pop(civ_id, None)

    def is_visible_to(self, civ_id: AgentId, pos: Vector2) -> bool:
        vmap = self._maps.get(civ_id)
        return vmap.is_visible(pos) if vmap else False

    def is_explored_by(self, civ_id: AgentId, pos: Vector2) -> bool:
        vmap = self._maps.get(civ_id)
        return vmap.is_explored(pos) if vmap else False

    def copy(self) -> FogOfWarMaps:
        new = FogOfWarMaps()
        new._maps = {cid: m.copy() for cid, m in self._maps.items()}
        return new
