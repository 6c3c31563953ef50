"""
Combat session: the encounter lifecycle.

    setup --roll_initiative_for_all--> active --(one side left standing)--> ended

The session owns its combatants (copies of the stat snapshots it was given), the roll
source and the ordered action log. End conditions are checked after every resolved
action and every condition change, so a victory never waits for the next advance.
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, computed_field

from .actions import ActionAdapter
from .conditions import ConditionRegistry, DurationValue, has_flag
from .derived import armor_class
from .dice import RollSource
from .errors import ActionNotAllowed, CombatAlreadyEnded, CombatantNotFound, SessionStateError
from .initiative import InitiativeRoll, TurnTracker, build_order, roll_initiative
from .loader import default_registry
from .models import Combatant, CombatantStats
from .resolution import CHARGING, ActionResolver
from .results import ActionRecord, ConditionChange, Result
from .rules import ActionSlot
from .settings import EngineSettings

logger = logging.getLogger(__name__)

REQUIRED_CONDITIONS = ("dead", "unconscious")


class SessionState(str, Enum):
    SETUP = "setup"
    ACTIVE = "active"
    ENDED = "ended"


class Outcome(BaseModel):
    kind: Literal["victory", "draw"]
    side: Optional[str] = None

    def __str__(self) -> str:
        return f"victory({self.side})" if self.kind == "victory" else "draw"


class TurnInfo(BaseModel):
    kind: Literal["turn"] = "turn"
    round: int
    turn: int
    combatant_id: str
    rounds_completed: int = 0
    condition_changes: List[ConditionChange] = Field(default_factory=list)


class CombatEnded(BaseModel):
    kind: Literal["ended"] = "ended"
    round: int
    outcome: Outcome


class ConditionStatus(BaseModel):
    name: str
    remaining_rounds: Optional[int] = None
    source: Optional[str] = None


class CombatantStatus(BaseModel):
    id: str
    name: str
    side: str
    hp_current: int
    hp_max: int
    hp_temp: int
    armor_class: int
    initiative: Optional[int] = None
    dead: bool
    defeated: bool
    conditions: List[ConditionStatus] = Field(default_factory=list)


class CombatStatus(BaseModel):
    state: SessionState
    round: int
    turn: int
    current: Optional[str] = None
    outcome: Optional[Outcome] = None
    combatants: List[CombatantStatus] = Field(default_factory=list)

    @computed_field
    @property
    def ended(self) -> bool:
        return self.state == SessionState.ENDED


def is_defeated(c: Combatant) -> bool:
    """Dead, or down at 0 HP or less while helpless."""
    return c.is_dead or (c.hp_current <= 0 and has_flag(c.conditions, "helpless"))


class CombatSession:
    def __init__(self, registry: Optional[ConditionRegistry] = None, rng: Optional[RollSource] = None,
                 settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.registry = registry if registry is not None else default_registry()
        for name in REQUIRED_CONDITIONS:
            self.registry.get(name)
        self.rng: RollSource = rng if rng is not None else self.settings.make_rng()
        self.resolver = ActionResolver(self.registry, self.rng, self.settings)
        self.state = SessionState.SETUP
        self.combatants: Dict[str, Combatant] = {}
        self.initiative: List[InitiativeRoll] = []
        self.tracker: Optional[TurnTracker] = None
        self.turn = 0
        self.outcome: Optional[Outcome] = None
        self.records: List[ActionRecord] = []
        self.events: List[str] = []

    # ------- setup -------
    def add_combatant(self, stats: Union[CombatantStats, Mapping[str, Any]]) -> Combatant:
        if self.state != SessionState.SETUP:
            raise SessionStateError(f"cannot add combatants once the session is {self.state.value}")
        if not isinstance(stats, CombatantStats):
            stats = CombatantStats.model_validate(stats)
        if stats.id in self.combatants:
            raise SessionStateError(f"duplicate combatant id {stats.id!r}")
        c = Combatant.from_stats(stats, self.settings.death_threshold,
                                 self.settings.death_threshold_from_constitution)
        self.combatants[c.id] = c
        logger.debug("added %s (%s) hp=%s", c.id, c.side, c.hp_current)
        return c

    def roll_initiative_for_all(self, bonuses: Optional[Mapping[str, int]] = None) -> List[InitiativeRoll]:
        """Roll once for everyone in registration order and start the first round."""
        if self.state != SessionState.SETUP:
            raise SessionStateError("initiative has already been rolled")
        if len(self.sides()) < 2:
            raise SessionStateError("combat needs combatants on at least two sides")
        bonuses = dict(bonuses or {})
        for cid in bonuses:
            if cid not in self.combatants:
                raise CombatantNotFound(cid)

        rolls = [roll_initiative(c, self.rng, bonuses.get(c.id, 0)) for c in self.combatants.values()]
        self.initiative = build_order(rolls)
        for r in self.initiative:
            c = self.combatants[r.combatant_id]
            c.initiative = r.total
            self.events.append(f"[Init] {c.name}: {r.roll} + {r.bonus} = {r.total}")

        self.tracker = TurnTracker([r.combatant_id for r in self.initiative])
        self.state = SessionState.ACTIVE
        logger.info("combat started with %d combatants", len(self.combatants))
        if self._check_end():
            return self.initiative
        # the order is fixed even for combatants already down; they are skipped
        while not self._is_active(self.tracker.current):
            self.tracker.index += 1
        self._start_turn()
        return self.initiative

    # ------- queries -------
    def sides(self) -> List[str]:
        out: List[str] = []
        for c in self.combatants.values():
            if c.side not in out:
                out.append(c.side)
        return out

    @property
    def round(self) -> int:
        return self.tracker.round if self.tracker else 0

    @property
    def current_combatant(self) -> Optional[Combatant]:
        if self.tracker is None or self.state != SessionState.ACTIVE:
            return None
        return self.combatants[self.tracker.current]

    def combatant(self, combatant_id: str) -> Combatant:
        c = self.combatants.get(combatant_id)
        if c is None:
            raise CombatantNotFound(combatant_id)
        return c

    def get_status(self) -> CombatStatus:
        current = self.current_combatant
        return CombatStatus(
            state=self.state,
            round=self.round,
            turn=self.turn,
            current=current.id if current else None,
            outcome=self.outcome,
            combatants=[_status_of(c) for c in self._in_order()],
        )

    def get_log(self) -> List[ActionRecord]:
        return list(self.records)

    # ------- active -------
    def resolve_action(self, action: Any, on_resolved: Optional[Callable[[ActionRecord], None]] = None) -> Result:
        """
        Resolve one action (model instance or plain dict). Either the action resolves fully and is
        appended to the log, or a CombatError is raised and nothing changes.
        """
        self._require_active()
        if isinstance(action, Mapping):
            action = ActionAdapter.validate_python(action)
        assert self.tracker is not None
        if (action.slot not in (None, ActionSlot.REACTION) and action.actor_id in self.combatants
                and action.actor_id != self.tracker.current):
            raise ActionNotAllowed(action.actor_id, f"not their turn ({self.tracker.current} is acting)")
        result, logs = self.resolver.resolve(action, self.combatants, self.round)
        record = ActionRecord(sequence=len(self.records) + 1, round=self.round, turn=self.turn,
                              actor_id=action.actor_id, action=action, result=result, logs=logs)
        self.records.append(record)
        self.events.extend(logs)
        self._check_end()
        if on_resolved is not None:
            on_resolved(record)
        return result

    def advance_turn(self) -> Union[TurnInfo, CombatEnded]:
        if self.state == SessionState.SETUP:
            raise SessionStateError("roll initiative before advancing turns")
        if self.state == SessionState.ENDED or self._check_end():
            return self._ended()
        assert self.tracker is not None

        changes: List[ConditionChange] = []

        def on_round_end(finished: int) -> None:
            self.events.append(f"[Round] Round {finished} ends")
            changes.extend(self.resolver.conditions.tick_round(self.combatants.values(), logs=self.events))

        nxt, completed = self.tracker.advance(self._is_active, on_round_end)
        if self._check_end() or nxt is None:
            if self.outcome is None:
                self._end(Outcome(kind="draw"))
            return self._ended()
        self._start_turn()
        return TurnInfo(round=self.round, turn=self.turn, combatant_id=nxt,
                        rounds_completed=completed, condition_changes=changes)

    def apply_condition(self, combatant_id: str, name: str, duration: DurationValue = None, *,
                        source: Optional[str] = None) -> ConditionChange:
        if self.state == SessionState.ENDED:
            raise CombatAlreadyEnded(str(self.outcome))
        target = self.combatant(combatant_id)
        change = self.resolver.conditions.apply(target, name, duration, source=source,
                                                round_number=self.round, logs=self.events)
        self._check_end()
        return change

    def remove_condition(self, combatant_id: str, name: str) -> Optional[ConditionChange]:
        if self.state == SessionState.ENDED:
            raise CombatAlreadyEnded(str(self.outcome))
        target = self.combatant(combatant_id)
        change = self.resolver.conditions.remove(target, name, logs=self.events)
        self._check_end()
        return change

    # ------- internals -------
    def _require_active(self) -> None:
        if self.state == SessionState.ENDED:
            raise CombatAlreadyEnded(str(self.outcome))
        if self.state == SessionState.SETUP:
            raise SessionStateError("roll initiative before resolving actions")

    def _is_active(self, combatant_id: str) -> bool:
        return not is_defeated(self.combatants[combatant_id])

    def _start_turn(self) -> None:
        assert self.tracker is not None
        c = self.combatants[self.tracker.current]
        c.actions.reset()
        self.turn += 1
        self.events.append(f"[Turn] Round {self.round}, turn {self.turn}: {c.name}")
        if c.has_condition(CHARGING):
            self.resolver.conditions.remove(c, CHARGING, logs=self.events)

    def _in_order(self) -> Iterable[Combatant]:
        if self.tracker is None:
            return list(self.combatants.values())
        return [self.combatants[cid] for cid in self.tracker.order]

    def _check_end(self) -> bool:
        if self.state == SessionState.ENDED:
            return True
        if self.state != SessionState.ACTIVE:
            return False
        standing = [side for side in self.sides()
                    if any(not is_defeated(c) for c in self.combatants.values() if c.side == side)]
        if len(standing) > 1:
            return False
        self._end(Outcome(kind="victory", side=standing[0]) if standing else Outcome(kind="draw"))
        return True

    def _end(self, outcome: Outcome) -> None:
        self.state = SessionState.ENDED
        self.outcome = outcome
        self.events.append(f"[End] Combat over in round {self.round}: {outcome}")
        logger.info("combat ended round=%s outcome=%s", self.round, outcome)

    def _ended(self) -> CombatEnded:
        assert self.outcome is not None
        return CombatEnded(round=self.round, outcome=self.outcome)


def _status_of(c: Combatant) -> CombatantStatus:
    return CombatantStatus(
        id=c.id, name=c.name, side=c.side,
        hp_current=c.hp_current, hp_max=c.hp_max, hp_temp=c.hp_temp,
        armor_class=armor_class(c),
        initiative=c.initiative,
        dead=c.is_dead,
        defeated=is_defeated(c),
        conditions=[ConditionStatus(name=i.name, remaining_rounds=i.remaining_rounds, source=i.source)
                    for i in c.conditions],
    )


def create_session(stats: Iterable[Union[CombatantStats, Mapping[str, Any]]],
                   registry: Optional[ConditionRegistry] = None,
                   rng: Optional[RollSource] = None,
                   settings: Optional[EngineSettings] = None) -> CombatSession:
    """New session in the setup state holding a copy of every snapshot."""
    session = CombatSession(registry=registry, rng=rng, settings=settings)
    for s in stats:
        session.add_combatant(s)
    return session
