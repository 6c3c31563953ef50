from __future__ import annotations
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Literal, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConditionNotFound
from .rules import SaveType, normalize_ability, normalize_key, normalize_save_type

ConditionFlag = Literal["loses_dex_to_ac", "cannot_act", "helpless", "must_flee", "move_only", "single_action",
                        "denies_target_dex"]
CONDITION_FLAGS = ("loses_dex_to_ac", "cannot_act", "helpless", "must_flee", "move_only", "single_action",
                   "denies_target_dex")

# int rounds, a formula evaluated against the source, or None for indefinite
DurationValue = Union[int, str, None]


class ConditionEffects(BaseModel):
    model_config = ConfigDict(frozen=True)

    attack: int = 0
    melee_attack: int = 0
    ac: int = 0
    ac_vs_melee: int = 0
    ac_vs_ranged: int = 0
    all_rolls: int = 0
    saves: Dict[SaveType, int] = Field(default_factory=dict)
    abilities: Dict[str, int] = Field(default_factory=dict)
    movement_multiplier: float = 1.0

    loses_dex_to_ac: bool = False
    cannot_act: bool = False
    helpless: bool = False
    must_flee: bool = False
    # only the move slot may be spent
    move_only: bool = False
    # one move or standard action per turn, not both
    single_action: bool = False
    # attacker-side: targets lose their Dex bonus to AC against this combatant
    denies_target_dex: bool = False

    @field_validator("saves", mode="before")
    @classmethod
    def _norm_saves(cls, v):
        if not v:
            return {}
        return {normalize_save_type(k): int(x) for k, x in dict(v).items()}

    @field_validator("abilities", mode="before")
    @classmethod
    def _norm_abilities(cls, v):
        if not v:
            return {}
        return {normalize_ability(k): int(x) for k, x in dict(v).items()}

    @field_validator("movement_multiplier")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("movement_multiplier must be >= 0")
        return v


class ConditionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    effects: ConditionEffects = Field(default_factory=ConditionEffects)
    default_duration: DurationValue = None

    @field_validator("default_duration")
    @classmethod
    def _positive_rounds(cls, v: DurationValue) -> DurationValue:
        if isinstance(v, int) and v <= 0:
            raise ValueError("default_duration must be > 0 rounds when given as a number")
        return v

    @property
    def key(self) -> str:
        return normalize_key(self.name)


class ConditionInstance(BaseModel):
    instance_id: str = Field(default_factory=lambda: uuid4().hex)
    definition: ConditionDefinition
    remaining_rounds: Optional[int] = None
    source: Optional[str] = None
    applied_at_round: int = 0

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def key(self) -> str:
        return self.definition.key


class ConditionRegistry:
    """
    Fixed rule table mapping condition names to effect descriptors.
    Seeded once (from content files or explicit definitions) and never mutated afterwards;
    lookups are case-insensitive.
    """

    def __init__(self, definitions: Iterable[ConditionDefinition]):
        table: Dict[str, ConditionDefinition] = {}
        for cd in definitions:
            if cd.key in table:
                raise RuntimeError(f"Duplicate condition name {cd.name}")
            table[cd.key] = cd
        self._table: Mapping[str, ConditionDefinition] = MappingProxyType(table)

    @classmethod
    def from_definitions(cls, definitions: Iterable[ConditionDefinition | dict]) -> "ConditionRegistry":
        return cls(d if isinstance(d, ConditionDefinition) else ConditionDefinition.model_validate(d)
                   for d in definitions)

    def get(self, name: str) -> ConditionDefinition:
        cd = self._table.get(normalize_key(name))
        if cd is None:
            raise ConditionNotFound(name)
        return cd

    def names(self) -> List[str]:
        return [cd.name for cd in self._table.values()]

    def definitions(self) -> List[ConditionDefinition]:
        return list(self._table.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_key(name) in self._table

    def __iter__(self) -> Iterator[ConditionDefinition]:
        return iter(self._table.values())

    def __len__(self) -> int:
        return len(self._table)

    def effective_delta(self, conditions: Iterable[ConditionInstance], axis: str) -> int:
        return effective_delta(conditions, axis)

    def has_flag(self, conditions: Iterable[ConditionInstance], flag: str) -> bool:
        return has_flag(conditions, flag)


def _axis_value(fx: ConditionEffects, axis: str) -> int:
    head, _, tail = axis.partition(":")
    if head == "attack":
        if not tail:
            return fx.attack
        if tail == "melee":
            return fx.melee_attack
        if tail == "ranged":
            return 0
    elif head == "ac":
        if not tail:
            return fx.ac
        if tail == "melee":
            return fx.ac_vs_melee
        if tail == "ranged":
            return fx.ac_vs_ranged
    elif head in ("all-rolls", "all_rolls") and not tail:
        return fx.all_rolls
    elif head == "save" and tail:
        return fx.saves.get(normalize_save_type(tail), 0)
    elif head == "ability" and tail:
        return fx.abilities.get(normalize_ability(tail), 0)
    raise ValueError(f"Unknown modifier axis: {axis!r}")


def effective_delta(conditions: Iterable[ConditionInstance], axis: str) -> int:
    """Sum one numeric axis across all active instances. Modifiers stack additively."""
    insts = list(conditions)
    if not insts:
        # still validate the axis so typos fail even on a clean combatant
        _axis_value(ConditionEffects(), axis)
        return 0
    return sum(_axis_value(inst.definition.effects, axis) for inst in insts)


def has_flag(conditions: Iterable[ConditionInstance], flag: str) -> bool:
    f = flag.strip().lower().replace("-", "_")
    if f == "loses_dexterity_to_ac":
        f = "loses_dex_to_ac"
    if f not in CONDITION_FLAGS:
        raise ValueError(f"Unknown condition flag: {flag!r}")
    return any(getattr(inst.definition.effects, f) for inst in conditions)


def movement_multiplier(conditions: Iterable[ConditionInstance]) -> float:
    """Most restrictive multiplier wins; speed reductions do not compound."""
    return min((inst.definition.effects.movement_multiplier for inst in conditions), default=1.0)
