"""Tests for the reference WorldExecutionEngine.

Each action kind is applied directly to a hand-built world; the checks
cover the world mutation and the recoverable / fatal classification of
every failure.
"""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dominion.actions.kinds import (
    Attack,
    BuildBuilding,
    BuildUnit,
    Defend,
    Diplomacy,
    Expand,
    Explore,
    Research,
    Trade,
)
from dominion.core.enums import BuildingType, DiplomaticAction, UnitType
from dominion.core.models import Vector2
from dominion.engine.execution import (
    BUILDING_COST,
    MOVE_RANGE,
    RESEARCH_COST,
    SETTLE_COST,
    TRADE_INCOME_BONUS,
    UNIT_COST,
)
from dominion.errors import FatalExecutionError, RecoverableExecutionError
from tests.helpers.sandbox import Sandbox


def _box(**civ_fields) -> Sandbox:
    box = Sandbox()
    box.add_civ(0, capital=(5, 5), **civ_fields)
    box.add_civ(1, capital=(14, 14))
    return box


# ---------------------------------------------------------------------------
# Economy
# ---------------------------------------------------------------------------

class TestResearch:
    def test_research_spends_gold(self):
        box = _box()
        effect = box.engine.apply(0, Research(technology="Writing"))
        assert "Writing" in box.civ(0).technologies
        assert box.civ(0).gold == 100.0 - RESEARCH_COST
        assert "researched Writing" == effect.description

    def test_insufficient_gold_is_recoverable(self):
        box = _box(gold=10.0)
        with pytest.raises(RecoverableExecutionError) as exc_info:
            box.engine.apply(0, Research(technology="Writing"))
        assert "insufficient gold" in exc_info.value.reason
        assert box.civ(0).gold == 10.0

    def test_known_technology_is_fatal(self):
        box = _box()
        box.civ(0).technologies.add("Writing")
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Research(technology="Writing"))

    def test_unknown_civ_is_fatal(self):
        box = _box()
        with pytest.raises(FatalExecutionError):
            box.engine.apply(9, Research(technology="Writing"))

    def test_eliminated_civ_is_fatal(self):
        box = _box()
        box.world.eliminate(0)
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Research(technology="Writing"))


class TestBuild:
    def test_unit_in_own_city(self):
        box = _box()
        box.engine.apply(0, BuildUnit(unit_type=UnitType.ARCHER, position=Vector2(5, 5)))
        (unit,) = box.world.units_of(0)
        assert unit.unit_type == UnitType.ARCHER
        assert box.civ(0).gold == 100.0 - UNIT_COST
        assert box.civ(0).expenses == 6.0

    def test_unit_in_foreign_city_is_fatal(self):
        box = _box()
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, BuildUnit(unit_type=UnitType.INFANTRY, position=Vector2(14, 14)))

    def test_occupied_city_is_recoverable(self):
        box = _box()
        box.add_unit(0, (5, 5))
        with pytest.raises(RecoverableExecutionError):
            box.engine.apply(0, BuildUnit(unit_type=UnitType.INFANTRY, position=Vector2(5, 5)))

    def test_building_raises_income(self):
        box = _box()
        box.engine.apply(0, BuildBuilding(building_type=BuildingType.MARKET, position=Vector2(5, 5)))
        assert box.world.city_at(Vector2(5, 5)).buildings == [BuildingType.MARKET]
        assert box.civ(0).income == 13.0
        assert box.civ(0).gold == 100.0 - BUILDING_COST

    def test_duplicate_building_is_fatal(self):
        box = _box()
        kind = BuildBuilding(building_type=BuildingType.WALLS, position=Vector2(5, 5))
        box.engine.apply(0, kind)
        assert box.civ(0).fortifications == 1
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, kind)


# ---------------------------------------------------------------------------
# Land
# ---------------------------------------------------------------------------

class TestExpand:
    def test_founds_city_and_claims_neighbours(self):
        box = _box()
        box.engine.apply(0, Expand(target_position=Vector2(5, 8)))
        city = box.world.city_at(Vector2(5, 8))
        assert city is not None and city.owner == 0
        assert box.world.grid.owner(Vector2(5, 9)) == 0
        assert box.civ(0).gold == 100.0 - SETTLE_COST
        assert box.civ(0).capital == Vector2(5, 5)

    def test_impassable_target_is_fatal(self):
        box = _box()
        box.set_mountain(5, 8)
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Expand(target_position=Vector2(5, 8)))

    def test_off_map_is_fatal(self):
        box = _box()
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Expand(target_position=Vector2(-1, 3)))

    def test_foreign_claim_is_recoverable(self):
        box = _box()
        with pytest.raises(RecoverableExecutionError):
            box.engine.apply(0, Expand(target_position=Vector2(13, 14)))

    def test_unreachable_is_recoverable(self):
        box = _box()
        for x in range(20):
            box.set_mountain(x, 10)
        with pytest.raises(RecoverableExecutionError):
            box.engine.apply(0, Expand(target_position=Vector2(5, 12)))


# ---------------------------------------------------------------------------
# Diplomacy / trade
# ---------------------------------------------------------------------------

class TestTrade:
    def test_route_adds_income_and_relations(self):
        box = _box()
        box.engine.apply(0, Trade(partner=1))
        assert [r.partner for r in box.civ(0).trade_routes] == [1]
        assert box.civ(0).income == 10.0 + TRADE_INCOME_BONUS
        assert box.civ(1).relations[0] == 5.0

    def test_existing_route_is_fatal(self):
        box = _box()
        box.engine.apply(0, Trade(partner=1))
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Trade(partner=1))

    def test_at_war_is_recoverable(self):
        box = _box()
        box.declare_war(0, 1)
        with pytest.raises(RecoverableExecutionError):
            box.engine.apply(0, Trade(partner=1))

    def test_self_trade_is_fatal(self):
        box = _box()
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Trade(partner=0))


class TestDiplomacy:
    def test_declare_war_is_mutual(self):
        box = _box()
        box.engine.apply(0, Diplomacy(target_civ=1, action=DiplomaticAction.DECLARE_WAR))
        assert 1 in box.civ(0).at_war_with
        assert 0 in box.civ(1).at_war_with

    def test_alliance_declined_when_cold(self):
        box = _box()
        box.set_relation(1, 0, -5.0, mutual=False)
        with pytest.raises(RecoverableExecutionError):
            box.engine.apply(0, Diplomacy(target_civ=1, action=DiplomaticAction.PROPOSE_ALLIANCE))

    def test_alliance_formed(self):
        box = _box()
        box.engine.apply(0, Diplomacy(target_civ=1, action=DiplomaticAction.PROPOSE_ALLIANCE))
        assert box.civ(0).alliances == {1}
        assert box.civ(1).alliances == {0}

    def test_peace_requires_war(self):
        box = _box()
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Diplomacy(target_civ=1, action=DiplomaticAction.MAKE_PEACE))

    def test_trade_pact_warms_relations(self):
        box = _box()
        box.engine.apply(0, Diplomacy(target_civ=1, action=DiplomaticAction.PROPOSE_TRADE_PACT))
        assert box.civ(0).relations[1] == 10.0


# ---------------------------------------------------------------------------
# Military
# ---------------------------------------------------------------------------

class TestMilitary:
    def test_explore_moves_up_to_range(self):
        box = _box()
        unit = box.add_unit(0, (0, 0))
        box.engine.apply(0, Explore(target_position=Vector2(0, 10)))
        assert unit.pos == Vector2(0, MOVE_RANGE)
        assert box.world.fog.get(0).is_visible(Vector2(0, MOVE_RANGE + 2))

    def test_explore_without_units_is_recoverable(self):
        box = _box()
        with pytest.raises(RecoverableExecutionError):
            box.engine.apply(0, Explore(target_position=Vector2(0, 10)))

    def test_defend_outside_territory_is_fatal(self):
        box = _box()
        box.add_unit(0, (5, 6))
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Defend(position=Vector2(10, 10)))

    def test_defend_fortifies(self):
        box = _box()
        box.add_unit(0, (5, 8))
        box.engine.apply(0, Defend(position=Vector2(5, 5)))
        assert box.civ(0).fortifications == 1

    def test_attack_declares_war_and_advances(self):
        box = _box()
        unit = box.add_unit(0, (5, 6))
        effect = box.engine.apply(0, Attack(target_civ=1, target_position=Vector2(14, 14)))
        assert 1 in box.civ(0).at_war_with
        assert unit.pos.manhattan(Vector2(5, 6)) == MOVE_RANGE
        assert "advancing" in effect.description

    def test_attack_ally_is_fatal(self):
        box = _box()
        box.add_unit(0, (5, 6))
        box.civ(0).alliances.add(1)
        with pytest.raises(FatalExecutionError):
            box.engine.apply(0, Attack(target_civ=1, target_position=Vector2(14, 14)))

    def test_adjacent_attack_resolves_combat(self):
        box = _box()
        box.add_unit(0, (14, 13), UnitType.SIEGE)
        box.add_unit(1, (14, 14))
        before = len(box.world.units)
        box.engine.apply(0, Attack(target_civ=1, target_position=Vector2(14, 14)))
        assert len(box.world.units) == before - 1
