"""Tests for fog of war and fog-gated snapshot queries."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dominion.core.enums import VisibilityState
from dominion.core.fog_of_war import CITY_VISION_RANGE, FogOfWarMaps, VisibilityMap
from dominion.core.models import Vector2
from dominion.core.snapshot import HOSTILE_RELATION
from tests.helpers.sandbox import Sandbox


def _two_civs() -> Sandbox:
    box = Sandbox()
    box.add_civ(0, capital=(3, 3))
    box.add_civ(1, capital=(16, 16))
    return box


# ---------------------------------------------------------------------------
# VisibilityMap
# ---------------------------------------------------------------------------

class TestVisibilityMap:
    def test_starts_unexplored(self):
        vmap = VisibilityMap(5, 5)
        assert vmap.get(Vector2(2, 2)) == VisibilityState.UNEXPLORED
        assert vmap.explored_count() == 0

    def test_mark_visible_uses_chebyshev_range(self):
        vmap = VisibilityMap(10, 10)
        vmap.mark_visible(Vector2(5, 5), 2)
        assert vmap.is_visible(Vector2(7, 7))
        assert vmap.is_visible(Vector2(3, 5))
        assert not vmap.is_visible(Vector2(8, 5))
        assert vmap.explored_count() == 25

    def test_reset_demotes_visible_to_explored(self):
        vmap = VisibilityMap(10, 10)
        vmap.mark_visible(Vector2(5, 5), 1)
        vmap.reset_visibility()
        assert not vmap.is_visible(Vector2(5, 5))
        assert vmap.is_explored(Vector2(5, 5))
        assert vmap.get(Vector2(0, 0)) == VisibilityState.UNEXPLORED

    def test_out_of_bounds(self):
        vmap = VisibilityMap(4, 4)
        vmap.mark_visible(Vector2(0, 0), 3)
        assert vmap.get(Vector2(-1, 0)) is None
        assert not vmap.is_explored(Vector2(9, 9))
        assert vmap.explored_count() == 16

    def test_copy_is_independent(self):
        vmap = VisibilityMap(5, 5)
        clone = vmap.copy()
        vmap.mark_visible(Vector2(2, 2), 1)
        assert clone.explored_count() == 0

    def test_unknown_civ_sees_nothing(self):
        maps = FogOfWarMaps()
        assert not maps.is_visible_to(7, Vector2(0, 0))
        assert not maps.is_explored_by(7, Vector2(0, 0))


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

class TestRefresh:
    def test_city_vision_range(self):
        box = _two_civs()
        box.world.refresh_visibility()
        vmap = box.world.fog.get(0)
        assert vmap.is_visible(Vector2(3 + CITY_VISION_RANGE, 3))
        assert not vmap.is_explored(Vector2(3 + CITY_VISION_RANGE + 1, 3))

    def test_tiles_decay_when_unit_leaves(self):
        box = _two_civs()
        unit = box.add_unit(0, (10, 10))
        box.world.refresh_visibility()
        assert box.world.fog.get(0).is_visible(Vector2(11, 11))

        unit.pos = Vector2(3, 4)
        box.world.refresh_visibility()
        vmap = box.world.fog.get(0)
        assert not vmap.is_visible(Vector2(11, 11))
        assert vmap.is_explored(Vector2(11, 11))

    def test_explored_tiles_counted_on_civ(self):
        box = _two_civs()
        box.world.refresh_visibility()
        assert box.civ(0).explored_tiles == (2 * CITY_VISION_RANGE + 1) ** 2


# ---------------------------------------------------------------------------
# Snapshot gates
# ---------------------------------------------------------------------------

class TestSnapshotGates:
    def test_unexplored_rival_is_unknown(self):
        box = _two_civs()
        box.add_unit(1, (15, 16))
        snap = box.snapshot()
        assert snap.known_civs(0) == []
        assert snap.known_capital(0, 1) is None
        assert snap.visible_strength(0, 1) == 0.0
        assert [c.owner for _p, c in snap.visible_cities(0)] == [0]

    def test_owner_hidden_until_explored(self):
        box = _two_civs()
        snap = box.snapshot()
        assert snap.grid.owner(Vector2(16, 16)) == 1
        assert snap.owner_at(0, Vector2(16, 16)) is None
        assert snap.owner_at(1, Vector2(16, 16)) == 1

    def test_scout_reveals_rival(self):
        box = _two_civs()
        box.add_unit(1, (16, 15))
        box.add_unit(0, (14, 16))
        snap = box.snapshot()
        assert snap.known_civs(0) == [1]
        assert snap.known_capital(0, 1) == Vector2(16, 16)
        assert snap.visible_strength(0, 1) == 10.0

    def test_remembered_city_but_not_units(self):
        box = _two_civs()
        box.add_unit(1, (16, 15))
        scout = box.add_unit(0, (14, 16))
        box.world.refresh_visibility()
        scout.pos = Vector2(4, 4)
        snap = box.snapshot()
        # City tile stays explored; the unit beside it is no longer visible
        assert snap.known_capital(0, 1) == Vector2(16, 16)
        assert snap.visible_strength(0, 1) == 0.0

    def test_own_units_always_visible(self):
        box = _two_civs()
        box.add_unit(0, (19, 0))
        snap = box.snapshot(refresh=False)
        assert [u.pos for _p, u in snap.visible_units(0)] == [Vector2(19, 0)]

    def test_hostile_units_need_war_or_bad_relations(self):
        box = _two_civs()
        box.add_unit(1, (5, 3))
        snap = box.snapshot()
        assert snap.hostile_units_near(0, Vector2(3, 3), 4) == []

        box.set_relation(0, 1, HOSTILE_RELATION)
        assert len(box.snapshot().hostile_units_near(0, Vector2(3, 3), 4)) == 1

        box.set_relation(0, 1, 0.0)
        box.declare_war(0, 1)
        assert len(box.snapshot().hostile_units_near(0, Vector2(3, 3), 4)) == 1


class TestSnapshotIsolation:
    def test_world_mutation_does_not_leak(self):
        box = _two_civs()
        snap = box.snapshot()
        box.civ(0).gold = 999.0
        box.world.grid.claim(Vector2(10, 10), 0)
        box.add_unit(0, (10, 10))
        assert snap.civ(0).gold == 100.0
        assert snap.grid.owner(Vector2(10, 10)) is None
        assert snap.own_units(0) == []

    def test_dead_civs_excluded(self):
        box = _two_civs()
        box.add_civ(2, capital=(10, 3))
        box.world.eliminate(1)
        snap = box.snapshot()
        assert snap.active_agents() == (0, 2)
        assert snap.civ(1) is None
