"""
Ability and derived-stat calculator.

Pure functions over a Combatant; nothing here mutates state. Condition modifiers are
read from the combatant's active instances on every call, so results are never stale.
"""
from __future__ import annotations
from typing import Dict, Literal, Optional

from .conditions import effective_delta, has_flag
from .models import SIZE_TO_GRAPPLE, SIZE_TO_MOD, Combatant
from .rules import SAVE_ABILITY, SaveProgression, SaveType, normalize_save_type

AttackKind = Literal["melee", "ranged"]


def modifier(score: int) -> int:
    return (score - 10) // 2


def size_mod(c: Combatant) -> int:
    return SIZE_TO_MOD.get(c.stats.size, 0)


def loses_dex_bonus(c: Combatant) -> bool:
    return has_flag(c.conditions, "loses_dex_to_ac") or has_flag(c.conditions, "helpless")


def ac_breakdown(c: Combatant) -> Dict[str, int]:
    """Stored component breakdown; total AC is always 10 + the sum of these plus condition deltas."""
    ac = c.stats.armor_class
    dex = c.ability_mod("dex")
    if ac.max_dex_bonus is not None:
        dex = min(dex, ac.max_dex_bonus)
    return {
        "base": ac.base,
        "armor": ac.armor,
        "shield": ac.shield,
        "ability": dex,
        "size": size_mod(c),
        "natural": ac.natural,
        "deflection": ac.deflection,
        "misc": ac.misc,
    }


def _condition_ac(c: Combatant, attack_kind: Optional[AttackKind]) -> int:
    delta = effective_delta(c.conditions, "ac")
    if attack_kind:
        delta += effective_delta(c.conditions, f"ac:{attack_kind}")
    return delta


def _total(parts: Dict[str, int], c: Combatant, attack_kind: Optional[AttackKind], deny_dex: bool = False) -> int:
    if parts.get("ability", 0) > 0 and (deny_dex or loses_dex_bonus(c)):
        parts["ability"] = 0
    # no clamping: negative AC is legal, only displays clamp
    return 10 + sum(parts.values()) + _condition_ac(c, attack_kind)


def armor_class(c: Combatant, attack_kind: Optional[AttackKind] = None, deny_dex: bool = False) -> int:
    return _total(ac_breakdown(c), c, attack_kind, deny_dex)


def touch_ac(c: Combatant, attack_kind: Optional[AttackKind] = None, deny_dex: bool = False) -> int:
    parts = ac_breakdown(c)
    for k in ("armor", "shield", "natural"):
        parts.pop(k)
    return _total(parts, c, attack_kind, deny_dex)


def flat_footed_ac(c: Combatant, attack_kind: Optional[AttackKind] = None) -> int:
    parts = ac_breakdown(c)
    if parts["ability"] > 0:
        parts["ability"] = 0
    return _total(parts, c, attack_kind)


def attack_condition_delta(c: Combatant, melee: bool = True) -> int:
    delta = effective_delta(c.conditions, "attack") + effective_delta(c.conditions, "all-rolls")
    if melee:
        delta += effective_delta(c.conditions, "attack:melee")
    return delta


def attack_bonus(
    c: Combatant,
    is_ranged: bool = False,
    weapon_enhancement: int = 0,
    size_modifier: Optional[int] = None,
    condition_delta: Optional[int] = None,
    situational: int = 0,
) -> int:
    """
    BAB + (Dex if ranged else Str) + size + enhancement + conditions + situational.
    `situational` carries flanking/charge (+2 each), a power-attack penalty and any
    precomputed feat bonus; feat interpretation belongs to the caller.
    """
    ability = c.ability_mod("dex" if is_ranged else "str")
    size = size_mod(c) if size_modifier is None else size_modifier
    cond = attack_condition_delta(c, melee=not is_ranged) if condition_delta is None else condition_delta
    return c.stats.base_attack_bonus + ability + size + weapon_enhancement + cond + situational


def base_save(level: int, progression: SaveProgression | str) -> int:
    if SaveProgression(progression) == SaveProgression.GOOD:
        return 2 + level // 2
    return level // 3


def save_bonus(c: Combatant, save_type: SaveType | str,
               progression: Optional[SaveProgression | str] = None) -> int:
    st = normalize_save_type(save_type)
    prog = progression if progression is not None else c.stats.save_progression(st)
    return (
        base_save(c.stats.level, prog)
        + c.ability_mod(SAVE_ABILITY[st])
        + effective_delta(c.conditions, f"save:{st.value}")
        + effective_delta(c.conditions, "all-rolls")
    )


def initiative_bonus(c: Combatant, extra: int = 0) -> int:
    return c.ability_mod("dex") + c.stats.initiative_bonus + extra


def grapple_bonus(c: Combatant) -> int:
    return (c.stats.base_attack_bonus + c.ability_mod("str")
            + SIZE_TO_GRAPPLE.get(c.stats.size, 0) + effective_delta(c.conditions, "all-rolls"))
