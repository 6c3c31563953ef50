from __future__ import annotations
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from .derived import initiative_bonus
from .dice import RollSource, d20
from .models import Combatant

logger = logging.getLogger(__name__)


class InitiativeRoll(BaseModel):
    combatant_id: str
    roll: int
    bonus: int
    dex_modifier: int
    total: int


def roll_initiative(c: Combatant, rng: RollSource, bonus: int = 0) -> InitiativeRoll:
    """`bonus` is an extra caller-supplied feat/equipment bonus on top of the stat snapshot's."""
    b = initiative_bonus(c, bonus)
    roll = d20(rng)
    return InitiativeRoll(combatant_id=c.id, roll=roll, bonus=b,
                          dex_modifier=c.ability_mod("dex"), total=roll + b)


def build_order(rolls: Iterable[InitiativeRoll]) -> List[InitiativeRoll]:
    """Highest total first; ties go to the higher Dex modifier, then to submission order."""
    return sorted(rolls, key=lambda r: (-r.total, -r.dex_modifier))


class TurnTracker:
    """Cursor over a fixed initiative order. Rounds start at 1."""

    def __init__(self, order: Sequence[str]):
        if not order:
            raise ValueError("turn order must not be empty")
        self.order: List[str] = list(order)
        self.index = 0
        self.round = 1

    @property
    def current(self) -> str:
        return self.order[self.index]

    def advance(self, is_active: Callable[[str], bool],
                on_round_end: Optional[Callable[[int], None]] = None) -> Tuple[Optional[str], int]:
        """
        Step to the next active combatant. `on_round_end(finished_round)` runs at every wrap,
        before the new round's first turn. Returns (combatant id or None, rounds completed).
        """
        completed = 0
        for _ in range(len(self.order) + 1):
            self.index += 1
            if self.index >= len(self.order):
                self.index = 0
                self.round += 1
                completed += 1
                logger.debug("round %s complete", self.round - 1)
                if on_round_end:
                    on_round_end(self.round - 1)
            if is_active(self.current):
                return self.current, completed
        return None, completed
