import random

import pytest
from dndcombat.engine.dice import DiceExpr, FixedRolls, d20, parse_dice, roll_dice


def test_parse_dice_forms():
    assert parse_dice("1d8+2") == DiceExpr(1, 8, 2)
    assert parse_dice("d6") == DiceExpr(1, 6, 0)
    assert parse_dice(" 2d4 - 1 ") == DiceExpr(2, 4, -1)
    assert str(parse_dice("3d6+1")) == "3d6+1"


@pytest.mark.parametrize("text", ["abc", "", "0d6", "2d0", "1d8+", "d"])
def test_parse_dice_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_dice(text)


def test_roll_dice_uses_one_roll_per_die():
    rng = FixedRolls([3, 4, 19])
    assert roll_dice(rng, "2d6+1") == 8
    assert rng.remaining == 1
    assert d20(rng) == 19


def test_fixed_rolls_exhaustion_is_a_value_error():
    rng = FixedRolls([5])
    rng.randint(1, 20)
    with pytest.raises(ValueError, match="exhausted"):
        rng.randint(1, 20)


def test_fixed_rolls_rejects_impossible_die():
    with pytest.raises(ValueError, match="outside"):
        FixedRolls([7]).randint(1, 6)


def test_seeded_random_is_a_roll_source():
    a = [roll_dice(random.Random(42), "3d6") for _ in range(5)]
    b = [roll_dice(random.Random(42), "3d6") for _ in range(5)]
    assert a == b
    assert all(3 <= x <= 18 for x in a)
