from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterable, List, Protocol

_DICE_RE = re.compile(r"\s*(\d*)d(\d+)\s*([+-]\s*\d+)?\s*")


class RollSource(Protocol):
    """Anything that can produce an inclusive random integer; random.Random qualifies."""

    def randint(self, a: int, b: int) -> int: ...


class FixedRolls:
    """Replays a fixed sequence of die results, in order. For tests and replays."""

    def __init__(self, values: Iterable[int]):
        self._values: List[int] = list(values)
        self._pos = 0

    def randint(self, a: int, b: int) -> int:
        if self._pos >= len(self._values):
            raise ValueError(f"FixedRolls exhausted after {self._pos} rolls")
        v = self._values[self._pos]
        if not a <= v <= b:
            raise ValueError(f"FixedRolls value {v} at position {self._pos} is outside {a}..{b}")
        self._pos += 1
        return v

    @property
    def remaining(self) -> int:
        return len(self._values) - self._pos


@dataclass(frozen=True)
class DiceExpr:
    count: int
    sides: int
    bonus: int = 0

    def __str__(self) -> str:
        s = f"{self.count}d{self.sides}"
        if self.bonus:
            s += f"{self.bonus:+d}"
        return s


def parse_dice(text: str) -> DiceExpr:  # e.g., "1d8+2", "d6", "2d4-1"
    m = _DICE_RE.fullmatch(text)
    if not m:
        raise ValueError(f"Invalid dice notation: {text!r}")
    n = int(m.group(1) or 1)
    d = int(m.group(2))
    if n < 1 or d < 1:
        raise ValueError(f"Invalid dice notation: {text!r}")
    bonus = int((m.group(3) or "0").replace(" ", ""))
    return DiceExpr(n, d, bonus)


def d20(rng: RollSource) -> int:
    return rng.randint(1, 20)


def roll_dice(rng: RollSource, text: str) -> int:
    expr = parse_dice(text)
    return sum(rng.randint(1, expr.sides) for _ in range(expr.count)) + expr.bonus
