from __future__ import annotations
import logging
from typing import List, Optional

from .derived import save_bonus
from .dice import RollSource, d20
from .models import Combatant
from .results import SaveResult
from .rules import SaveType, normalize_save_type

logger = logging.getLogger(__name__)


def resolve_save(c: Combatant, save_type: SaveType | str, dc: int, rng: RollSource, *,
                 bonus: int = 0, logs: Optional[List[str]] = None) -> SaveResult:
    """
    d20 + save bonus against a fixed DC. A natural 20 always succeeds and a natural 1 always
    fails, whatever the totals say. Consequences of the outcome belong to the caller.
    """
    st = normalize_save_type(save_type)
    total_bonus = save_bonus(c, st) + bonus
    roll = d20(rng)
    total = roll + total_bonus
    numeric = total >= dc
    success = numeric
    if roll == 20:
        success = True
    elif roll == 1:
        success = False
    result = SaveResult(combatant_id=c.id, save_type=st, roll=roll, bonus=total_bonus, total=total,
                        dc=dc, success=success, natural_override=success != numeric)
    if logs is not None:
        logs.append(f"[Save] {c.name} {st.value}: {roll} + {total_bonus} = {total} vs DC {dc} "
                    f"{'SUCCESS' if success else 'FAILURE'}")
    logger.debug("save %s %s roll=%s total=%s dc=%s success=%s", c.id, st.value, roll, total, dc, success)
    return result
