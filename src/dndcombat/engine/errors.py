from __future__ import annotations
from typing import Optional


class CombatError(Exception):
    """Base class for every caller-contract violation raised by the engine."""


class InvalidSaveType(CombatError, ValueError):
    def __init__(self, save_type: object):
        self.save_type = save_type
        super().__init__(f"Unknown save type: {save_type!r} (expected fortitude, reflex or will)")


class ConditionNotFound(CombatError, LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown condition: {name!r}")


class CombatantNotFound(CombatError, LookupError):
    role = "combatant"

    def __init__(self, combatant_id: str):
        self.combatant_id = combatant_id
        super().__init__(f"{self.role.capitalize()} not found in session: {combatant_id!r}")


class ActorNotFound(CombatantNotFound):
    role = "actor"


class TargetNotFound(CombatantNotFound):
    role = "target"


class ActionAlreadyUsed(CombatError):
    def __init__(self, combatant_id: str, slot: str):
        self.combatant_id = combatant_id
        self.slot = slot
        super().__init__(f"{combatant_id} has already used its {slot} action this turn")


class ActionNotAllowed(CombatError):
    def __init__(self, combatant_id: str, reason: str):
        self.combatant_id = combatant_id
        self.reason = reason
        super().__init__(f"{combatant_id} cannot act: {reason}")


class CombatAlreadyEnded(CombatError):
    def __init__(self, outcome: Optional[str] = None):
        self.outcome = outcome
        msg = "Combat has already ended"
        if outcome:
            msg += f" ({outcome})"
        super().__init__(msg)


class SessionStateError(CombatError):
    """Operation is not valid in the session's current lifecycle state."""
