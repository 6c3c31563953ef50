from __future__ import annotations
import logging
from typing import Iterable, List, Optional

from .conditions import ConditionInstance, ConditionRegistry, DurationValue
from .expr import eval_rounds
from .models import Combatant
from .results import ConditionChange

logger = logging.getLogger(__name__)


class ConditionsEngine:
    """
    Apply/remove/decay condition instances on combatants.
    Duration policy:
      - An explicit duration wins; otherwise the definition's default_duration; None means indefinite.
      - Formula durations are evaluated against the source combatant (the target when no source is given)
        and last at least one round; `ability_mod(x, target)` reads the condition's target.
      - Re-applying a condition already present refreshes its duration to the longer of old/new
        (indefinite beats any count); instances never stack.
    """

    def __init__(self, registry: ConditionRegistry):
        self.registry = registry

    def _resolve_rounds(self, duration: DurationValue, source: Optional[Combatant], target: Combatant) -> Optional[int]:
        if duration is None:
            return None
        if isinstance(duration, str):
            return max(1, eval_rounds(duration, source or target, target))
        if duration <= 0:
            raise ValueError(f"condition duration must be > 0 rounds, got {duration}")
        return int(duration)

    def apply(
        self,
        target: Combatant,
        name: str,
        duration: DurationValue = None,
        *,
        source: Optional[str] = None,
        source_combatant: Optional[Combatant] = None,
        round_number: int = 0,
        logs: Optional[List[str]] = None,
    ) -> ConditionChange:
        cd = self.registry.get(name)
        rounds = self._resolve_rounds(duration if duration is not None else cd.default_duration,
                                      source_combatant, target)
        logs = logs if logs is not None else []

        existing = target.condition(cd.name)
        if existing is not None:
            if existing.remaining_rounds is not None:
                if rounds is None or rounds > existing.remaining_rounds:
                    existing.remaining_rounds = rounds
            logs.append(f"[Cond] Refreshed {cd.name} on {target.name} ({_describe(existing.remaining_rounds)})")
            return ConditionChange(combatant_id=target.id, condition=cd.name, change="refreshed",
                                   remaining_rounds=existing.remaining_rounds, source=source)

        target.conditions.append(ConditionInstance(
            definition=cd, remaining_rounds=rounds, source=source, applied_at_round=round_number,
        ))
        logs.append(f"[Cond] {cd.name} applied to {target.name} ({_describe(rounds)})")
        logger.debug("condition %s -> %s rounds=%s source=%s", cd.name, target.id, rounds, source)
        return ConditionChange(combatant_id=target.id, condition=cd.name, change="applied",
                               remaining_rounds=rounds, source=source)

    def remove(self, target: Combatant, name: str, *, logs: Optional[List[str]] = None) -> Optional[ConditionChange]:
        cd = self.registry.get(name)
        inst = target.condition(cd.name)
        if inst is None:
            if logs is not None:
                logs.append(f"[Cond] {cd.name} not present on {target.name}")
            return None
        target.conditions.remove(inst)
        if logs is not None:
            logs.append(f"[Cond] Removed {cd.name} from {target.name}")
        return ConditionChange(combatant_id=target.id, condition=cd.name, change="removed", source=inst.source)

    def tick_round(self, combatants: Iterable[Combatant], *, logs: Optional[List[str]] = None) -> List[ConditionChange]:
        changes: List[ConditionChange] = []
        for c in combatants:
            keep: List[ConditionInstance] = []
            for inst in c.conditions:
                if inst.remaining_rounds is not None:
                    inst.remaining_rounds -= 1
                    if inst.remaining_rounds <= 0:
                        if logs is not None:
                            logs.append(f"[Cond] {c.name}'s {inst.name} expired")
                        changes.append(ConditionChange(combatant_id=c.id, condition=inst.name,
                                                       change="expired", remaining_rounds=0, source=inst.source))
                        continue
                keep.append(inst)
            c.conditions = keep
        return changes


def _describe(rounds: Optional[int]) -> str:
    return "indefinite" if rounds is None else f"{rounds} rounds"
