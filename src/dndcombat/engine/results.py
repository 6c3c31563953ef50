from __future__ import annotations
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from .actions import Action
from .rules import SaveType

ChangeKind = Literal["applied", "refreshed", "removed", "expired"]


class ConditionChange(BaseModel):
    combatant_id: str
    condition: str
    change: ChangeKind
    remaining_rounds: Optional[int] = None
    source: Optional[str] = None


class DamageResult(BaseModel):
    target_id: str
    dice: str
    dice_roll: int
    base: int                        # dice + modifiers, before critical multiplication
    critical_multiplier: int = 1
    total_before_reduction: int
    reduction: int = 0               # damage reduction actually subtracted
    resisted: int = 0                # energy resistance actually subtracted
    temp_absorbed: int = 0
    total: int                       # after reduction/resistance, never negative
    type: str
    hp_before: int
    hp_after: int


class AttackResult(BaseModel):
    kind: Literal["attack"] = "attack"
    attacker_id: str
    target_id: str
    weapon: str
    roll: int
    bonus: int
    total: int
    target_ac: int
    touch: bool = False
    hit: bool
    critical: bool = False           # threat
    critical_confirmed: bool = False
    fumble: bool = False
    confirmation_roll: Optional[int] = None
    confirmation_total: Optional[int] = None
    damage: Optional[DamageResult] = None
    condition_changes: List[ConditionChange] = Field(default_factory=list)


class SaveResult(BaseModel):
    combatant_id: str
    save_type: SaveType
    roll: int
    bonus: int
    total: int
    dc: int
    success: bool
    natural_override: bool = False   # natural 20/1 decided against the numeric comparison


class SavingThrowResult(BaseModel):
    kind: Literal["saving-throw"] = "saving-throw"
    saves: List[SaveResult] = Field(default_factory=list)


class TargetOutcome(BaseModel):
    target_id: str
    affected: bool
    attack: Optional[AttackResult] = None
    save: Optional[SaveResult] = None
    damage: Optional[DamageResult] = None
    condition_changes: List[ConditionChange] = Field(default_factory=list)


class CastResult(BaseModel):
    kind: Literal["cast"] = "cast"
    spell: str
    damage_roll: Optional[int] = None
    outcomes: List[TargetOutcome] = Field(default_factory=list)


class MoveResult(BaseModel):
    kind: Literal["move"] = "move"
    combatant_id: str
    distance_ft: int
    speed_ft: int


class DefendResult(BaseModel):
    kind: Literal["defend"] = "defend"
    combatant_id: str


Result = Annotated[
    Union[AttackResult, SavingThrowResult, CastResult, MoveResult, DefendResult],
    Field(discriminator="kind"),
]


class ActionRecord(BaseModel):
    sequence: int
    round: int
    turn: int
    actor_id: str
    action: Action
    result: Result
    logs: List[str] = Field(default_factory=list)
