"""A* pathfinding over the terrain grid.

Usage:
    pf = Pathfinder(grid)
    path = pf.find_path(start, goal)          # list[Vector2] or None
    next_step = pf.next_step(start, goal)     # Vector2 or None
    area = pf.reachable_within(start, 5.0)    # {Vector2: cost}
"""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING, AbstractSet

from dominion.core.models import CARDINAL_OFFSETS, Vector2

if TYPE_CHECKING:
    from dominion.core.grid import Grid

Blocked = AbstractSet[tuple[int, int]]


class Pathfinder:
    """4-directional A* with a Manhattan heuristic.

    Thread-safe: reads only from the grid it was given (a snapshot copy
    during planning).  Performance-bounded: explores at most ``max_nodes``
    before giving up.
    """

    __slots__ = ("_grid", "_max_nodes")

    def __init__(self, grid: Grid, max_nodes: int = 2000) -> None:
        self._grid = grid
        self._max_nodes = max_nodes

    def find_path(
        self,
        start: Vector2,
        goal: Vector2,
        blocked: Blocked | None = None,
    ) -> list[Vector2] | None:
        """Compute a path from *start* to *goal*.

        Returns the positions stepped on (excluding *start*, including
        *goal*), or None when the goal is unreachable or the node budget
        runs out.  *blocked* tiles are impassable except the goal itself.
        """
        if start == goal:
            return []

        grid = self._grid
        if not grid.is_walkable(goal):
            return None

        blk = blocked or frozenset()

        # Open set: (f_score, counter, x, y)
        counter = 0
        open_heap: list[tuple[float, int, int, int]] = []
        heapq.heappush(open_heap, (0.0, counter, start.x, start.y))

        g_score: dict[tuple[int, int], float] = {(start.x, start.y): 0.0}
        came_from: dict[tuple[int, int], tuple[int, int]] = {}
        closed: set[tuple[int, int]] = set()
        nodes_explored = 0

        gx, gy = goal.x, goal.y

        while open_heap and nodes_explored < self._max_nodes:
            _, _, cx, cy = heapq.heappop(open_heap)
            ckey = (cx, cy)

            if cx == gx and cy == gy:
                return self._reconstruct(came_from, ckey)

            if ckey in closed:
                continue
            closed.add(ckey)
            nodes_explored += 1

            current_g = g_score[ckey]

            for d in CARDINAL_OFFSETS:
                nx, ny = cx + d.x, cy + d.y
                nkey = (nx, ny)
                if nkey in closed:
                    continue

                npos = Vector2(nx, ny)
                if not grid.is_walkable(npos):
                    continue
                if nkey in blk and not (nx == gx and ny == gy):
                    continue

                tentative_g = current_g + grid.move_cost(npos)
                if tentative_g < g_score.get(nkey, float("inf")):
                    g_score[nkey] = tentative_g
                    came_from[nkey] = ckey
                    h = abs(nx - gx) + abs(ny - gy)
                    counter += 1
                    heapq.heappush(open_heap, (tentative_g + h, counter, nx, ny))

        return None

    def next_step(
        self,
        start: Vector2,
        goal: Vector2,
        blocked: Blocked | None = None,
    ) -> Vector2 | None:
        """Return the first step of the path, or None if no path exists."""
        path = self.find_path(start, goal, blocked)
        if path:
            return path[0]
        return None

    def path_cost(self, path: list[Vector2]) -> float:
        return sum(self._grid.move_cost(p) for p in path)

    def reachable_within(
        self,
        start: Vector2,
        budget: float,
        blocked: Blocked | None = None,
    ) -> dict[Vector2, float]:
        """Every tile reachable from *start* with total move cost <= *budget*.

        Dijkstra flood fill; the result maps position -> cheapest cost and
        includes *start* at cost 0.
        """
        grid = self._grid
        blk = blocked or frozenset()
        best: dict[tuple[int, int], float] = {(start.x, start.y): 0.0}
        heap: list[tuple[float, int, int]] = [(0.0, start.x, start.y)]

        while heap:
            cost, cx, cy = heapq.heappop(heap)
            if cost > best.get((cx, cy), float("inf")):
                continue
            for d in CARDINAL_OFFSETS:
                nx, ny = cx + d.x, cy + d.y
                npos = Vector2(nx, ny)
                if not grid.is_walkable(npos) or (nx, ny) in blk:
                    continue
                ncost = cost + grid.move_cost(npos)
                if ncost <= budget and ncost < best.get((nx, ny), float("inf")):
                    best[(nx, ny)] = ncost
                    heapq.heappush(heap, (ncost, nx, ny))

        return {Vector2(x, y): c for (x, y), c in best.items()}

    @staticmethod
    def _reconstruct(
        came_from: dict[tuple[int, int], tuple[int, int]],
        current: tuple[int, int],
    ) -> list[Vector2]:
        path: list[Vector2] = []
        while current in came_from:
            path.append(Vector2(current[0], current[1]))
            current = came_from[current]
        path.reverse()
        return path
