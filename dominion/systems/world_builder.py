"""World builder: terrain, civilizations and starting positions from a seed."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dominion.core.enums import Domain, Terrain, UnitType
from dominion.core.grid import Grid
from dominion.core.models import RING_OFFSETS, Civilization, Personality, Vector2
from dominion.core.world_state import WorldState

if TYPE_CHECKING:
    from dominion.config import SimulationConfig
    from dominion.systems.rng import DeterministicRNG

logger = logging.getLogger(__name__)

CIV_NAMES: tuple[str, ...] = (
    "Rome", "Egypt", "Persia", "China", "Maya", "Norse", "Inca", "Mali",
)

# Coarse lattice spacing for the terrain value noise
NOISE_CELL = 5
CAPITAL_ATTEMPTS = 200

_PERSONALITY_TRAITS: tuple[str, ...] = (
    "land_hunger", "tech_focus", "militarism", "industry_focus",
    "risk_tolerance", "isolationism", "interventionism", "exploration_drive",
)


class WorldBuilder:
    """Builds the initial WorldState deterministically from config + seed."""

    __slots__ = ("_config", "_rng")

    def __init__(self, config: SimulationConfig, rng: DeterministicRNG) -> None:
        self._config = config
        self._rng = rng

    def build(self) -> WorldState:
        cfg = self._config
        grid = Grid(cfg.grid_width, cfg.grid_height)
        self._paint_terrain(grid)
        world = WorldState(seed=cfg.world_seed, grid=grid)

        capitals = self._place_capitals(grid)
        for civ_id, capital in enumerate(capitals):
            civ = Civilization(
                civ_id=civ_id,
                name=CIV_NAMES[civ_id] if civ_id < len(CIV_NAMES) else f"Civilization {civ_id}",
                personality=self._personality(civ_id),
                gold=cfg.starting_gold,
            )
            world.add_civilization(civ)
            world.found_city(civ_id, civ.name, capital)
            for off in RING_OFFSETS:
                pos = capital + off
                if grid.is_walkable(pos) and grid.owner(pos) is None:
                    grid.claim(pos, civ_id)
            start = self._unit_start(world, capital)
            if start is not None:
                world.add_unit(civ_id, UnitType.INFANTRY, start)

        ids = world.active_civ_ids()
        for civ_id in ids:
            civ = world.civilizations[civ_id]
            civ.relations = {other: 0.0 for other in ids if other != civ_id}

        world.refresh_visibility()
        logger.info(
            "Built %dx%d world (seed=%d) with %d civilizations",
            grid.width, grid.height, cfg.world_seed, len(capitals),
        )
        return world

    # ------------------------------------------------------------------
    # Terrain
    # ------------------------------------------------------------------

    def _lattice(self, salt: int, gx: int, gy: int) -> float:
        key = salt * 1_000_003 + gy * 1009 + gx
        return self._rng.next_float(Domain.MAP_GEN, key, 0)

    def _noise(self, salt: int, x: int, y: int) -> float:
        """Bilinear value noise in [0, 1)."""
        gx, fx = divmod(x, NOISE_CELL)
        gy, fy = divmod(y, NOISE_CELL)
        tx = fx / NOISE_CELL
        ty = fy / NOISE_CELL
        a = self._lattice(salt, gx, gy)
        b = self._lattice(salt, gx + 1, gy)
        c = self._lattice(salt, gx, gy + 1)
        d = self._lattice(salt, gx + 1, gy + 1)
        top = a + (b - a) * tx
        bottom = c + (d - c) * tx
        return top + (bottom - top) * ty

    def _paint_terrain(self, grid: Grid) -> None:
        cfg = self._config
        cells = [(x, y) for y in range(grid.height) for x in range(grid.width)]
        elevation = {(x, y): self._noise(1, x, y) for x, y in cells}
        moisture = {(x, y): self._noise(2, x, y) for x, y in cells}

        ranked = sorted(cells, key=lambda c: (elevation[c], c[1], c[0]))
        n = len(ranked)
        n_ocean = int(n * cfg.ocean_ratio)
        n_mountain = int(n * cfg.mountain_ratio)
        n_coast = n_ocean // 3
        n_hills = n_mountain

        for rank, (x, y) in enumerate(ranked):
            pos = Vector2(x, y)
            if rank < n_ocean:
                terrain = Terrain.OCEAN
            elif rank < n_ocean + n_coast:
                terrain = Terrain.COAST
            elif rank >= n - n_mountain:
                terrain = Terrain.MOUNTAIN
            elif rank >= n - n_mountain - n_hills:
                terrain = Terrain.HILLS
            else:
                m = moisture[(x, y)]
                if m < 0.25:
                    terrain = Terrain.DESERT
                elif m < 0.5:
                    terrain = Terrain.PLAINS
                elif m < 0.75:
                    terrain = Terrain.GRASSLAND
                else:
                    terrain = Terrain.FOREST
            grid.set(pos, terrain)

    # ------------------------------------------------------------------
    # Civilizations
    # ------------------------------------------------------------------

    def _personality(self, civ_id: int) -> Personality:
        values = {
            trait: round(0.1 + 0.8 * self._rng.next_float(Domain.PERSONALITY, civ_id * 16 + i, 0), 2)
            for i, trait in enumerate(_PERSONALITY_TRAITS)
        }
        return Personality(**values)

    def _good_capital_site(self, grid: Grid, pos: Vector2) -> bool:
        if not grid.is_walkable(pos) or grid.get(pos) == Terrain.COAST:
            return False
        walkable_ring = sum(1 for off in RING_OFFSETS if grid.is_walkable(pos + off))
        return walkable_ring >= 6

    def _place_capitals(self, grid: Grid) -> list[Vector2]:
        cfg = self._config
        capitals: list[Vector2] = []
        for civ_id in range(cfg.num_civs):
            min_dist = cfg.min_capital_distance
            placed: Vector2 | None = None
            while placed is None and min_dist >= 1:
                for attempt in range(CAPITAL_ATTEMPTS):
                    x = self._rng.next_int(Domain.SPAWN, civ_id * 2, attempt + min_dist * 1000, 2, grid.width - 3)
                    y = self._rng.next_int(Domain.SPAWN, civ_id * 2 + 1, attempt + min_dist * 1000, 2, grid.height - 3)
                    pos = Vector2(x, y)
                    if not self._good_capital_site(grid, pos):
                        continue
                    if any(pos.manhattan(c) < min_dist for c in capitals):
                        continue
                    placed = pos
                    break
                else:
                    logger.warning(
                        "No capital site for civilization %d at distance %d, relaxing",
                        civ_id, min_dist,
                    )
                    min_dist //= 2
            if placed is None:
                logger.error("Could not place civilization %d; skipping", civ_id)
                continue
            capitals.append(placed)
        return capitals

    @staticmethod
    def _unit_start(world: WorldState, capital: Vector2) -> Vector2 | None:
        for off in RING_OFFSETS:
            pos = capital + off
            if world.grid.is_walkable(pos) and world.unit_at(pos) is None:
                return pos
        return None
