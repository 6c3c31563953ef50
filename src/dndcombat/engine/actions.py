from __future__ import annotations
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from typing_extensions import Annotated

from .conditions import DurationValue
from .dice import parse_dice
from .models import DamageType, WeaponProfile
from .rules import ActionSlot

Grip = Literal["one-handed", "light", "two-handed", "off-hand"]
SpellAttack = Literal["none", "melee_touch", "ranged_touch"]


class AttackAction(BaseModel):
    kind: Literal["attack"] = "attack"
    actor_id: str
    target_id: str
    weapon: Optional[WeaponProfile] = None   # inline descriptor wins over weapon_id
    weapon_id: Optional[str] = None          # one of the actor's weapons; None = primary or unarmed
    grip: Grip = "one-handed"
    touch: bool = False
    flanking: bool = False
    charge: bool = False
    power_attack: int = Field(0, ge=0)
    attack_bonus: int = 0                    # precomputed feat/situational bonus
    damage_bonus: int = 0
    slot: ActionSlot = ActionSlot.STANDARD


class SavingThrowAction(BaseModel):
    kind: Literal["saving-throw"] = "saving-throw"
    actor_id: str
    target_ids: List[str] = Field(min_length=1)
    save_type: str                           # normalized at resolution time
    dc: int
    bonus: int = 0
    slot: Optional[ActionSlot] = None        # triggers normally cost the trigger nothing
    source: Optional[str] = None


class ConditionGrant(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    duration: DurationValue = None


class SpellEffect(BaseModel):
    """Structured effect descriptor from the spell collaborator; no spell text lives here."""
    model_config = ConfigDict(frozen=True)

    name: str
    attack: SpellAttack = "none"
    save_type: Optional[str] = None
    dc: Optional[int] = None
    damage: Optional[str] = None
    damage_type: DamageType = "untyped"
    half_on_save: bool = True
    conditions: List[ConditionGrant] = Field(default_factory=list)

    @field_validator("damage")
    @classmethod
    def _valid_dice(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_dice(v)
        return v

    @model_validator(mode="after")
    def _save_needs_dc(self):
        if self.save_type is not None and self.dc is None:
            raise ValueError("spell save_type requires dc")
        return self


class CastAction(BaseModel):
    kind: Literal["cast"] = "cast"
    actor_id: str
    target_ids: List[str] = Field(min_length=1)
    spell: SpellEffect
    slot: ActionSlot = ActionSlot.STANDARD


class MoveAction(BaseModel):
    kind: Literal["move"] = "move"
    actor_id: str
    distance_ft: Optional[int] = Field(None, ge=0)
    slot: ActionSlot = ActionSlot.MOVE


class DefendAction(BaseModel):
    kind: Literal["defend"] = "defend"
    actor_id: str
    slot: ActionSlot = ActionSlot.STANDARD


Action = Annotated[
    Union[AttackAction, SavingThrowAction, CastAction, MoveAction, DefendAction],
    Field(discriminator="kind"),
]
ActionAdapter = TypeAdapter(Action)


def target_ids(action: BaseModel) -> List[str]:
    if isinstance(action, AttackAction):
        return [action.target_id]
    return list(getattr(action, "target_ids", []))
