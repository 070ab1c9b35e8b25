"""Tests for seeded world generation."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dominion.config import SimulationConfig
from dominion.core.enums import Terrain, UnitType
from dominion.core.models import RING_OFFSETS, Vector2
from dominion.systems.rng import DeterministicRNG
from dominion.systems.world_builder import CIV_NAMES, WorldBuilder


def _build(seed: int = 42, **overrides):
    cfg = SimulationConfig(world_seed=seed, **overrides)
    return WorldBuilder(cfg, DeterministicRNG(seed)).build()


def _terrain(world) -> list[Terrain]:
    g = world.grid
    return [g.get(Vector2(x, y)) for y in range(g.height) for x in range(g.width)]


class TestDeterminism:
    def test_same_seed_same_world(self):
        a = _build(7)
        b = _build(7)
        assert _terrain(a) == _terrain(b)
        assert [c.pos for c in a.cities.values()] == [c.pos for c in b.cities.values()]
        assert [c.personality for c in a.civilizations.values()] == [
            c.personality for c in b.civilizations.values()
        ]

    def test_different_seed_different_terrain(self):
        assert _terrain(_build(1)) != _terrain(_build(2))


class TestTerrain:
    def test_ratios_follow_config(self):
        world = _build(grid_width=30, grid_height=20, ocean_ratio=0.1, mountain_ratio=0.05)
        tiles = _terrain(world)
        assert tiles.count(Terrain.OCEAN) == int(600 * 0.1)
        assert tiles.count(Terrain.MOUNTAIN) == int(600 * 0.05)


class TestCivilizations:
    def test_every_civ_starts_with_capital_and_unit(self):
        world = _build(num_civs=4)
        assert world.active_civ_ids() == [0, 1, 2, 3]
        for civ_id in world.active_civ_ids():
            civ = world.civilizations[civ_id]
            assert civ.name == CIV_NAMES[civ_id]
            (city,) = world.cities_of(civ_id)
            assert civ.capital == city.pos
            assert world.grid.is_walkable(city.pos)
            (unit,) = world.units_of(civ_id)
            assert unit.unit_type == UnitType.INFANTRY
            assert unit.pos.chebyshev(city.pos) == 1

    def test_capitals_distinct(self):
        world = _build(num_civs=4)
        capitals = [world.civilizations[c].capital for c in world.active_civ_ids()]
        assert len(set(capitals)) == 4

    def test_ring_claimed_around_capital(self):
        world = _build(num_civs=2)
        capital = world.civilizations[0].capital
        for off in RING_OFFSETS:
            pos = capital + off
            if world.grid.is_walkable(pos) and world.grid.owner(pos) != 1:
                assert world.grid.owner(pos) == 0

    def test_relations_start_neutral(self):
        world = _build(num_civs=3)
        assert world.civilizations[0].relations == {1: 0.0, 2: 0.0}

    def test_personality_in_range(self):
        world = _build(num_civs=4)
        for civ in world.civilizations.values():
            p = civ.personality
            values = [p.land_hunger, p.tech_focus, p.militarism, p.industry_focus,
                      p.risk_tolerance, p.isolationism, p.interventionism, p.exploration_drive]
            assert all(0.1 <= v <= 0.9 for v in values)

    def test_visibility_initialised(self):
        world = _build(num_civs=2)
        civ = world.civilizations[0]
        assert civ.explored_tiles > 0
        assert world.fog.is_visible_to(0, civ.capital)

    def test_starting_gold_from_config(self):
        world = _build(num_civs=2, starting_gold=250.0)
        assert all(c.gold == 250.0 for c in world.civilizations.values())
