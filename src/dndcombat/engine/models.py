from __future__ import annotations
from enum import Enum
from typing import Dict, List, Literal, Optional, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from .conditions import ConditionInstance, effective_delta
from .dice import parse_dice
from .rules import ActionSlot, SaveProgression, SaveType, normalize_ability, normalize_key, normalize_save_type


class Size(str, Enum):
    FINE = "Fine"
    DIMINUTIVE = "Diminutive"
    TINY = "Tiny"
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"
    HUGE = "Huge"
    GARGANTUAN = "Gargantuan"
    COLOSSAL = "Colossal"

# attack roll and AC
SIZE_TO_MOD = {
    Size.FINE: +8, Size.DIMINUTIVE: +4, Size.TINY: +2, Size.SMALL: +1, Size.MEDIUM: 0,
    Size.LARGE: -1, Size.HUGE: -2, Size.GARGANTUAN: -4, Size.COLOSSAL: -8,
}

SIZE_TO_GRAPPLE = {
    Size.FINE: -16, Size.DIMINUTIVE: -12, Size.TINY: -8, Size.SMALL: -4, Size.MEDIUM: 0,
    Size.LARGE: +4, Size.HUGE: +8, Size.GARGANTUAN: +12, Size.COLOSSAL: +16,
}


class WeaponKind(str, Enum):
    MELEE = "melee"
    RANGED = "ranged"
    NATURAL = "natural"

DamageType = Literal[
    "bludgeoning", "piercing", "slashing",
    "fire", "cold", "acid", "electricity", "sonic", "force",
    "negative", "positive", "untyped",
]
PHYSICAL_TYPES = frozenset({"bludgeoning", "piercing", "slashing"})


class AbilityScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    str_: int = Field(10, validation_alias=AliasChoices("str", "str_", "strength"))
    dex: int = Field(10, validation_alias=AliasChoices("dex", "dexterity"))
    con: int = Field(10, validation_alias=AliasChoices("con", "constitution"))
    int_: int = Field(10, validation_alias=AliasChoices("int", "int_", "intelligence"))
    wis: int = Field(10, validation_alias=AliasChoices("wis", "wisdom"))
    cha: int = Field(10, validation_alias=AliasChoices("cha", "charisma"))

    def get(self, name: str) -> int:
        key = normalize_ability(name)
        key = "str_" if key == "str" else ("int_" if key == "int" else key)
        return getattr(self, key)


class ArmorClassComponents(BaseModel):
    """Stored AC parts. The ability (Dex) and size parts are derived, see derived.ac_breakdown."""
    model_config = ConfigDict(frozen=True)

    base: int = 0
    armor: int = 0
    shield: int = 0
    natural: int = 0
    deflection: int = 0
    misc: int = 0
    max_dex_bonus: Optional[int] = None  # equipment cap on the Dex component


class WeaponProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = "unarmed"
    name: str = "Unarmed strike"
    damage: str = "1d3"
    damage_type: DamageType = "bludgeoning"
    kind: WeaponKind = WeaponKind.MELEE
    crit_range: int = Field(20, ge=2, le=20)  # lowest natural roll that threatens
    crit_mult: int = Field(2, ge=2)
    enhancement_bonus: int = 0
    composite: bool = False
    qualities: Set[str] = Field(default_factory=set)  # material/alignment tags that bypass DR

    @field_validator("damage")
    @classmethod
    def _valid_dice(cls, v: str) -> str:
        parse_dice(v)
        return v

    @property
    def is_ranged(self) -> bool:
        return self.kind == WeaponKind.RANGED

    @computed_field
    @property
    def bypass_tags(self) -> Set[str]:
        tags = {q.lower() for q in self.qualities}
        if self.enhancement_bonus > 0:
            tags.add("magic")
        return tags


UNARMED = WeaponProfile()


class CombatantStats(BaseModel):
    """Read-only snapshot handed over by the character collaborator."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    side: str
    level: int = 1
    size: Size = Size.MEDIUM
    abilities: AbilityScores = Field(default_factory=AbilityScores)
    hp_max: int = Field(8, ge=1)
    hp_current: Optional[int] = None
    hp_temp: int = Field(0, ge=0)
    base_attack_bonus: int = 0
    armor_class: ArmorClassComponents = Field(default_factory=ArmorClassComponents)
    saves: Dict[SaveType, SaveProgression] = Field(default_factory=dict)
    initiative_bonus: int = 0     # precomputed feat/equipment bonus
    attack_bonus_misc: int = 0    # precomputed feat bonus to attack rolls
    damage_reduction: int = Field(0, ge=0)
    dr_bypass: Set[str] = Field(default_factory=set)
    energy_resistance: Dict[str, int] = Field(default_factory=dict)
    speed_ft: int = 30
    death_threshold: Optional[int] = None
    weapons: List[WeaponProfile] = Field(default_factory=list)

    @field_validator("id", "name", "side")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("saves", mode="before")
    @classmethod
    def _norm_save_keys(cls, v):
        return {normalize_save_type(k): p for k, p in dict(v or {}).items()}

    def save_progression(self, save_type: SaveType) -> SaveProgression:
        return self.saves.get(save_type, SaveProgression.POOR)


class ActionEconomy(BaseModel):
    move: bool = True
    standard: bool = True
    swift: bool = True
    reaction: bool = True

    def reset(self) -> None:
        self.move = self.standard = self.swift = self.reaction = True

    def available(self, slot: ActionSlot | str) -> bool:
        return bool(getattr(self, ActionSlot(slot).value))

    def spend(self, slot: ActionSlot | str) -> None:
        setattr(self, ActionSlot(slot).value, False)


class Combatant(BaseModel):
    stats: CombatantStats
    hp_current: int
    hp_temp: int = 0
    death_threshold: int = -10
    conditions: List[ConditionInstance] = Field(default_factory=list)
    actions: ActionEconomy = Field(default_factory=ActionEconomy)
    initiative: Optional[int] = None

    @model_validator(mode="after")
    def _hp_cap(self):
        if self.hp_current > self.stats.hp_max:
            self.hp_current = self.stats.hp_max
        return self

    @classmethod
    def from_stats(cls, stats: CombatantStats, death_threshold: int = -10,
                   threshold_from_constitution: bool = False) -> "Combatant":
        snap = stats.model_copy(deep=True)
        if snap.death_threshold is not None:
            threshold = snap.death_threshold
        elif threshold_from_constitution:
            threshold = -snap.abilities.con
        else:
            threshold = death_threshold
        hp = snap.hp_max if snap.hp_current is None else snap.hp_current
        return cls(stats=snap, hp_current=hp, hp_temp=snap.hp_temp, death_threshold=threshold)

    @property
    def id(self) -> str:
        return self.stats.id

    @property
    def name(self) -> str:
        return self.stats.name

    @property
    def side(self) -> str:
        return self.stats.side

    @property
    def hp_max(self) -> int:
        return self.stats.hp_max

    def condition(self, name: str) -> Optional[ConditionInstance]:
        key = normalize_key(name)
        for inst in self.conditions:
            if inst.key == key:
                return inst
        return None

    def has_condition(self, name: str) -> bool:
        return self.condition(name) is not None

    @property
    def is_dead(self) -> bool:
        return self.hp_current <= self.death_threshold or self.has_condition("dead")

    def ability_score(self, name: str) -> int:
        ab = normalize_ability(name)
        return max(0, self.stats.abilities.get(ab) + effective_delta(self.conditions, f"ability:{ab}"))

    def ability_mod(self, name: str) -> int:
        return (self.ability_score(name) - 10) // 2

    def weapon(self, weapon_id: Optional[str] = None) -> WeaponProfile:
        if weapon_id is None:
            return self.stats.weapons[0] if self.stats.weapons else UNARMED
        for w in self.stats.weapons:
            if w.id == weapon_id:
                return w
        if weapon_id == UNARMED.id:
            return UNARMED
        raise LookupError(f"{self.name} has no weapon {weapon_id!r}")
