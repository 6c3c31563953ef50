from __future__ import annotations
from enum import Enum
from typing import Dict

from .errors import InvalidSaveType


class SaveType(str, Enum):
    FORTITUDE = "fortitude"
    REFLEX = "reflex"
    WILL = "will"


class SaveProgression(str, Enum):
    GOOD = "good"
    POOR = "poor"


class ActionSlot(str, Enum):
    MOVE = "move"
    STANDARD = "standard"
    SWIFT = "swift"
    REACTION = "reaction"


ABILITIES = ("str", "dex", "con", "int", "wis", "cha")

_ABILITY_ALIASES: Dict[str, str] = {
    "strength": "str", "str_": "str",
    "dexterity": "dex",
    "constitution": "con",
    "intelligence": "int", "int_": "int",
    "wisdom": "wis",
    "charisma": "cha",
}

_SAVE_ALIASES: Dict[str, SaveType] = {
    "fortitude": SaveType.FORTITUDE, "fort": SaveType.FORTITUDE,
    "reflex": SaveType.REFLEX, "ref": SaveType.REFLEX,
    "will": SaveType.WILL,
}

# fortitude->constitution, reflex->dexterity, will->wisdom
SAVE_ABILITY: Dict[SaveType, str] = {
    SaveType.FORTITUDE: "con",
    SaveType.REFLEX: "dex",
    SaveType.WILL: "wis",
}


def normalize_ability(name: object) -> str:
    s = str(name).strip().lower()
    s = _ABILITY_ALIASES.get(s, s)
    if s not in ABILITIES:
        raise ValueError(f"Unknown ability: {name!r}")
    return s


def normalize_save_type(save_type: object) -> SaveType:
    if isinstance(save_type, SaveType):
        return save_type
    st = _SAVE_ALIASES.get(str(save_type).strip().lower())
    if st is None:
        raise InvalidSaveType(save_type)
    return st


def normalize_key(name: str) -> str:
    """Registry key form: case-insensitive, spaces/underscores folded to hyphens."""
    return "-".join(str(name).strip().lower().replace("_", " ").split())
