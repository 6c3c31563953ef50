from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from .conditions_runtime import ConditionsEngine
from .dice import RollSource, roll_dice
from .models import PHYSICAL_TYPES, Combatant, WeaponProfile
from .results import ConditionChange, DamageResult
from .settings import EngineSettings

logger = logging.getLogger(__name__)


@dataclass
class DamagePacket:
    amount: int                 # full pre-reduction total (already multiplied on a critical)
    dtype: str
    dice: str
    dice_roll: int
    base: int
    multiplier: int = 1
    bypass: Set[str] = field(default_factory=set)


def strength_damage_bonus(str_mod: int, grip: str) -> int:
    if grip == "two-handed":
        return (str_mod * 3) // 2
    if grip == "off-hand":
        return str_mod // 2
    return str_mod


class DamageEngine:
    """
    Pipeline for one packet:
      1) Roll dice once and add ability/enhancement/power-attack/caller bonuses
      2) Multiply the entire total on a confirmed critical
      3) Damage reduction (physical only, unless a weapon quality bypasses it)
      4) Energy resistance (matching energy type)
      5) Temporary HP absorbs first, then HP (which may go negative)
      6) Defeat check: Dead at or below the death threshold, otherwise Unconscious at <= 0
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def weapon_packet(
        self,
        attacker: Combatant,
        weapon: WeaponProfile,
        rng: RollSource,
        *,
        grip: str = "one-handed",
        power_attack: int = 0,
        bonus: int = 0,
        multiplier: int = 1,
    ) -> DamagePacket:
        rolled = roll_dice(rng, weapon.damage)
        if weapon.is_ranged:
            ability = attacker.ability_mod("dex") if weapon.composite else 0
            pa = 0
        else:
            ability = strength_damage_bonus(attacker.ability_mod("str"), grip)
            pa = power_attack * (2 if grip == "two-handed" else 1)
        base = rolled + ability + weapon.enhancement_bonus + pa + bonus
        return DamagePacket(amount=base * multiplier, dtype=weapon.damage_type, dice=weapon.damage,
                            dice_roll=rolled, base=base, multiplier=multiplier, bypass=set(weapon.bypass_tags))

    def spell_packet(self, dice: str, dtype: str, rng: RollSource) -> DamagePacket:
        rolled = roll_dice(rng, dice)
        return DamagePacket(amount=rolled, dtype=dtype, dice=dice, dice_roll=rolled, base=rolled)

    def scaled(self, packet: DamagePacket, numerator: int, denominator: int) -> DamagePacket:
        """Copy of a packet with its amount scaled and floored (half damage on a save)."""
        return DamagePacket(amount=(packet.amount * numerator) // denominator, dtype=packet.dtype,
                            dice=packet.dice, dice_roll=packet.dice_roll, base=packet.base,
                            multiplier=packet.multiplier, bypass=set(packet.bypass))

    def apply(self, target: Combatant, packet: DamagePacket, *, logs: Optional[List[str]] = None) -> DamageResult:
        logs = logs if logs is not None else []
        raw = packet.amount
        amount = max(0, raw)

        reduction = 0
        dr = target.stats.damage_reduction
        if dr > 0 and packet.dtype in PHYSICAL_TYPES and amount > 0:
            bypassed = {b.lower() for b in target.stats.dr_bypass} & {b.lower() for b in packet.bypass}
            if bypassed:
                logs.append(f"[Dmg] DR {dr} on {target.name} bypassed ({', '.join(sorted(bypassed))})")
            else:
                reduction = min(dr, amount)
                amount -= reduction
                logs.append(f"[Dmg] DR {dr} reduces {raw} by {reduction}")

        resisted = 0
        resist = int(target.stats.energy_resistance.get(packet.dtype, 0) or 0)
        if resist > 0 and amount > 0:
            resisted = min(resist, amount)
            amount -= resisted
            logs.append(f"[Dmg] Resist {packet.dtype} {resist} absorbs {resisted}")

        absorbed = min(target.hp_temp, amount)
        if absorbed:
            target.hp_temp -= absorbed
            logs.append(f"[Dmg] Temporary HP absorbed {absorbed} ({target.hp_temp} left)")

        before = target.hp_current
        target.hp_current = before - (amount - absorbed)
        logs.append(f"[Dmg] {target.name} takes {amount} {packet.dtype} (HP {target.hp_current}/{target.hp_max})")
        logger.debug("damage %s: raw=%s dr=%s resist=%s temp=%s hp %s->%s",
                     target.id, raw, reduction, resisted, absorbed, before, target.hp_current)
        return DamageResult(
            target_id=target.id, dice=packet.dice, dice_roll=packet.dice_roll, base=packet.base,
            critical_multiplier=packet.multiplier, total_before_reduction=raw,
            reduction=reduction, resisted=resisted, temp_absorbed=absorbed, total=amount,
            type=packet.dtype, hp_before=before, hp_after=target.hp_current,
        )

    def check_defeat(self, target: Combatant, conditions: ConditionsEngine, *,
                     round_number: int = 0, logs: Optional[List[str]] = None) -> List[ConditionChange]:
        changes: List[ConditionChange] = []
        if target.hp_current > 0:
            return changes
        if target.hp_current <= target.death_threshold:
            if not target.has_condition("dead"):
                changes.append(conditions.apply(target, "dead", None, source="damage",
                                                round_number=round_number, logs=logs))
                logger.info("%s is dead", target.id)
        elif not target.has_condition("unconscious"):
            changes.append(conditions.apply(target, "unconscious", None, source="damage",
                                            round_number=round_number, logs=logs))
        return changes
