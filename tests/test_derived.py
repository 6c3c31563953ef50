import math

import pytest
from dndcombat.engine.derived import (
    ac_breakdown, armor_class, attack_bonus, base_save, flat_footed_ac, grapple_bonus,
    initiative_bonus, modifier, save_bonus, touch_ac,
)
from dndcombat.engine.errors import InvalidSaveType
from dndcombat.engine.rules import SaveProgression


@pytest.mark.parametrize("score,expected", [(10, 0), (9, -1), (25, 7), (1, -5), (11, 0), (18, 4)])
def test_modifier_boundaries(score, expected):
    assert modifier(score) == expected


def test_modifier_is_floor_division_everywhere():
    for s in range(0, 40):
        assert modifier(s) == math.floor((s - 10) / 2)


@pytest.fixture
def fighter(make_combatant):
    return make_combatant(
        "c", level=4, abilities={"str": 16, "dex": 14, "con": 14, "wis": 10},
        base_attack_bonus=3, armor_class={"armor": 4, "shield": 1},
        saves={"fort": "good"},
    )


def test_armor_class_components(fighter):
    assert ac_breakdown(fighter)["ability"] == 2
    assert armor_class(fighter) == 17
    assert touch_ac(fighter) == 12
    assert flat_footed_ac(fighter) == 15


def test_stunned_drops_dex_and_takes_penalty(fighter, conditions):
    parts = ac_breakdown(fighter)
    conditions.apply(fighter, "Stunned")
    assert armor_class(fighter) == 10 + sum(parts.values()) - parts["ability"] - 2
    assert armor_class(fighter) == 13


def test_negative_dex_is_kept_when_flat_footed(make_combatant, conditions):
    clumsy = make_combatant("z", abilities={"dex": 6})
    conditions.apply(clumsy, "Flat-Footed")
    assert armor_class(clumsy) == 8


def test_max_dex_bonus_caps_ability_component(make_combatant):
    c = make_combatant("m", abilities={"dex": 18}, armor_class={"armor": 8, "max_dex_bonus": 1})
    assert ac_breakdown(c)["ability"] == 1
    assert armor_class(c) == 19


def test_size_modifies_ac_and_attack(make_combatant):
    goblin = make_combatant("g", size="Small", base_attack_bonus=1)
    assert armor_class(goblin) == 11
    assert attack_bonus(goblin) == 2
    assert grapple_bonus(goblin) == 1 - 4


def test_prone_ac_depends_on_attack_kind(fighter, conditions):
    conditions.apply(fighter, "Prone")
    assert armor_class(fighter, "melee") == 13
    assert armor_class(fighter, "ranged") == 21
    assert armor_class(fighter) == 17


def test_attack_bonus_melee_and_ranged(fighter, conditions):
    assert attack_bonus(fighter) == 6
    assert attack_bonus(fighter, is_ranged=True) == 5
    assert attack_bonus(fighter, weapon_enhancement=1, situational=2) == 9
    assert attack_bonus(fighter, size_modifier=-1, condition_delta=0) == 5

    conditions.apply(fighter, "Prone")
    assert attack_bonus(fighter) == 2
    assert attack_bonus(fighter, is_ranged=True) == 5

    conditions.apply(fighter, "Shaken")
    assert attack_bonus(fighter) == 0
    assert attack_bonus(fighter, is_ranged=True) == 3


def test_ability_penalties_flow_into_modifiers(fighter, conditions):
    conditions.apply(fighter, "Fatigued")
    assert fighter.ability_score("str") == 14
    assert attack_bonus(fighter) == 5


def test_base_save_progressions():
    assert base_save(1, SaveProgression.GOOD) == 2
    assert base_save(4, "good") == 4
    assert base_save(4, "poor") == 1
    assert base_save(2, "poor") == 0


def test_save_bonus(fighter, conditions):
    assert save_bonus(fighter, "fortitude") == 4 + 2
    assert save_bonus(fighter, "ref") == 1 + 2
    assert save_bonus(fighter, "will") == 1
    assert save_bonus(fighter, "will", progression="good") == 4

    conditions.apply(fighter, "Hasted")
    assert save_bonus(fighter, "reflex") == 4
    conditions.apply(fighter, "Frightened")
    assert save_bonus(fighter, "reflex") == 2
    assert save_bonus(fighter, "will") == -1


def test_unknown_save_type(fighter):
    with pytest.raises(InvalidSaveType):
        save_bonus(fighter, "charisma")
    with pytest.raises(ValueError):
        save_bonus(fighter, "")


def test_initiative_bonus(make_combatant):
    c = make_combatant("i", abilities={"dex": 14}, initiative_bonus=4)
    assert initiative_bonus(c) == 6
    assert initiative_bonus(c, 2) == 8
