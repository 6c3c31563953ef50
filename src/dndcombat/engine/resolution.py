"""
Action resolution engine.

`ActionResolver.resolve` turns one validated action into a result, mutating only the
combatants it touches. Every precondition is checked before the first die is rolled, so a
rejected action leaves HP, conditions, action economy and the roll source untouched.
"""
from __future__ import annotations
import logging
from typing import List, Mapping, Optional, Tuple

from typing_extensions import assert_never

from .actions import Action, AttackAction, CastAction, DefendAction, MoveAction, SavingThrowAction, target_ids
from .conditions import ConditionRegistry, has_flag, movement_multiplier
from .conditions_runtime import ConditionsEngine
from .damage_runtime import DamageEngine
from .derived import AttackKind, armor_class, attack_bonus, touch_ac
from .dice import RollSource, d20
from .errors import ActionAlreadyUsed, ActionNotAllowed, ActorNotFound, TargetNotFound
from .expr import eval_rounds
from .models import Combatant, WeaponProfile
from .results import (
    AttackResult, CastResult, DefendResult, MoveResult, Result, SavingThrowResult, TargetOutcome,
)
from .rules import ActionSlot, normalize_save_type
from .saves import resolve_save
from .settings import EngineSettings

logger = logging.getLogger(__name__)

FLANKING_BONUS = 2
CHARGE_BONUS = 2
# applied to the charger, cleared when its next turn starts
CHARGING = "Charging"
_SINGLE_ACTION_SLOTS = (ActionSlot.MOVE, ActionSlot.STANDARD)


class ActionResolver:
    def __init__(self, registry: ConditionRegistry, rng: RollSource, settings: Optional[EngineSettings] = None):
        self.registry = registry
        self.rng = rng
        self.settings = settings or EngineSettings()
        self.conditions = ConditionsEngine(registry)
        self.damage = DamageEngine(self.settings)

    # ------- validation -------
    def validate(self, action: Action, combatants: Mapping[str, Combatant]) -> None:
        actor = combatants.get(action.actor_id)
        if actor is None:
            raise ActorNotFound(action.actor_id)
        for tid in target_ids(action):
            if tid not in combatants:
                raise TargetNotFound(tid)

        if action.slot is not None:
            if actor.is_dead:
                raise ActionNotAllowed(actor.id, "dead")
            if has_flag(actor.conditions, "cannot_act"):
                blocking = [c.name for c in actor.conditions if c.definition.effects.cannot_act]
                raise ActionNotAllowed(actor.id, ", ".join(blocking))
            if has_flag(actor.conditions, "move_only") and action.slot != ActionSlot.MOVE:
                blocking = [c.name for c in actor.conditions if c.definition.effects.move_only]
                raise ActionNotAllowed(actor.id, f"{', '.join(blocking)}: only a move action is allowed")
            if not actor.actions.available(action.slot):
                raise ActionAlreadyUsed(actor.id, action.slot.value)
            if action.slot in _SINGLE_ACTION_SLOTS and has_flag(actor.conditions, "single_action"):
                for slot in _SINGLE_ACTION_SLOTS:
                    if not actor.actions.available(slot):
                        raise ActionAlreadyUsed(actor.id, slot.value)

        if isinstance(action, AttackAction):
            self._weapon_for(actor, action)
            if action.charge:
                self.registry.get(CHARGING)
        elif isinstance(action, SavingThrowAction):
            normalize_save_type(action.save_type)
        elif isinstance(action, CastAction):
            if action.spell.save_type is not None:
                normalize_save_type(action.spell.save_type)
            for grant in action.spell.conditions:
                self.registry.get(grant.name)
                if isinstance(grant.duration, str):
                    for tid in action.target_ids:
                        eval_rounds(grant.duration, actor, combatants[tid])
        elif isinstance(action, MoveAction):
            speed = self._speed(actor)
            if action.distance_ft is not None and action.distance_ft > speed:
                raise ActionNotAllowed(actor.id, f"cannot move {action.distance_ft} ft (speed {speed} ft)")

    def _weapon_for(self, actor: Combatant, action: AttackAction) -> WeaponProfile:
        if action.weapon is not None:
            return action.weapon
        try:
            return actor.weapon(action.weapon_id)
        except LookupError as e:
            raise ActionNotAllowed(actor.id, str(e)) from e

    @staticmethod
    def _speed(actor: Combatant) -> int:
        return int(actor.stats.speed_ft * movement_multiplier(actor.conditions))

    # ------- entry point -------
    def resolve(self, action: Action, combatants: Mapping[str, Combatant],
                round_number: int = 1) -> Tuple[Result, List[str]]:
        self.validate(action, combatants)
        actor = combatants[action.actor_id]
        logs: List[str] = []
        if action.slot is not None:
            actor.actions.spend(action.slot)
            if action.slot in _SINGLE_ACTION_SLOTS and has_flag(actor.conditions, "single_action"):
                for slot in _SINGLE_ACTION_SLOTS:
                    actor.actions.spend(slot)

        if isinstance(action, AttackAction):
            result: Result = self._attack(action, actor, combatants[action.target_id], round_number, logs)
        elif isinstance(action, SavingThrowAction):
            result = self._saving_throw(action, combatants, logs)
        elif isinstance(action, CastAction):
            result = self._cast(action, actor, combatants, round_number, logs)
        elif isinstance(action, MoveAction):
            speed = self._speed(actor)
            dist = speed if action.distance_ft is None else action.distance_ft
            logs.append(f"[Move] {actor.name} moves {dist} ft")
            result = MoveResult(combatant_id=actor.id, distance_ft=dist, speed_ft=speed)
        elif isinstance(action, DefendAction):
            logs.append(f"[Def] {actor.name} defends")
            result = DefendResult(combatant_id=actor.id)
        else:
            assert_never(action)
        return result, logs

    # ------- attack -------
    def _roll_attack(self, attacker: Combatant, target: Combatant, bonus: int, *, touch: bool,
                     attack_kind: AttackKind, crit_range: int, weapon_name: str,
                     logs: List[str]) -> AttackResult:
        deny_dex = has_flag(attacker.conditions, "denies_target_dex")
        ac = touch_ac(target, attack_kind, deny_dex) if touch else armor_class(target, attack_kind, deny_dex)
        roll = d20(self.rng)
        total = roll + bonus
        if roll == 1:
            hit = False
        elif roll == 20:
            hit = True
        else:
            hit = total >= ac
        threat = hit and roll >= crit_range
        result = AttackResult(attacker_id=attacker.id, target_id=target.id, weapon=weapon_name, roll=roll,
                              bonus=bonus, total=total, target_ac=ac, touch=touch, hit=hit,
                              critical=threat, fumble=roll == 1)
        logs.append(f"[Atk] {attacker.name} attacks {target.name} with {weapon_name}: "
                    f"{roll} + {bonus} = {total} vs {'touch ' if touch else ''}AC {ac} {'HIT' if hit else 'MISS'}"
                    + (" (fumble)" if roll == 1 else ""))
        if threat:
            croll = d20(self.rng)
            ctotal = croll + bonus
            confirmed = croll != 1 and (croll == 20 or ctotal >= ac)
            result.confirmation_roll = croll
            result.confirmation_total = ctotal
            result.critical_confirmed = confirmed
            logs.append(f"[Atk] Critical threat! Confirmation: {croll} + {bonus} = {ctotal} vs AC {ac} "
                        f"{'CONFIRMED' if confirmed else 'not confirmed'}")
        return result

    def _attack(self, action: AttackAction, attacker: Combatant, target: Combatant,
                round_number: int, logs: List[str]) -> AttackResult:
        weapon = self._weapon_for(attacker, action)
        situational = (
            (FLANKING_BONUS if action.flanking else 0)
            + (CHARGE_BONUS if action.charge else 0)
            - action.power_attack
            + action.attack_bonus
            + attacker.stats.attack_bonus_misc
        )
        bonus = attack_bonus(attacker, weapon.is_ranged, weapon.enhancement_bonus, situational=situational)
        kind: AttackKind = "ranged" if weapon.is_ranged else "melee"
        result = self._roll_attack(attacker, target, bonus, touch=action.touch, attack_kind=kind,
                                   crit_range=weapon.crit_range, weapon_name=weapon.name, logs=logs)
        if result.hit:
            mult = weapon.crit_mult if result.critical_confirmed else 1
            packet = self.damage.weapon_packet(attacker, weapon, self.rng, grip=action.grip,
                                               power_attack=action.power_attack, bonus=action.damage_bonus,
                                               multiplier=mult)
            if mult > 1:
                logs.append(f"[Dmg] Critical hit! {packet.base} x{mult} = {packet.amount}")
            result.damage = self.damage.apply(target, packet, logs=logs)
            result.condition_changes = self.damage.check_defeat(target, self.conditions,
                                                                round_number=round_number, logs=logs)
        if action.charge:
            result.condition_changes.append(self.conditions.apply(
                attacker, CHARGING, source="charge", round_number=round_number, logs=logs))
        logger.debug("attack %s->%s hit=%s crit=%s", attacker.id, target.id, result.hit, result.critical_confirmed)
        return result

    # ------- saving throw -------
    def _saving_throw(self, action: SavingThrowAction, combatants: Mapping[str, Combatant],
                      logs: List[str]) -> SavingThrowResult:
        saves = [resolve_save(combatants[tid], action.save_type, action.dc, self.rng, bonus=action.bonus, logs=logs)
                 for tid in action.target_ids]
        return SavingThrowResult(saves=saves)

    # ------- cast -------
    def _cast(self, action: CastAction, caster: Combatant, combatants: Mapping[str, Combatant],
              round_number: int, logs: List[str]) -> CastResult:
        spell = action.spell
        logs.append(f"[Cast] {caster.name} casts {spell.name}")
        outcomes: List[TargetOutcome] = []
        for tid in action.target_ids:
            target = combatants[tid]
            out = TargetOutcome(target_id=tid, affected=True)
            if spell.attack != "none":
                ranged = spell.attack == "ranged_touch"
                bonus = attack_bonus(caster, ranged, situational=caster.stats.attack_bonus_misc)
                out.attack = self._roll_attack(caster, target, bonus, touch=True,
                                               attack_kind="ranged" if ranged else "melee",
                                               crit_range=20, weapon_name=spell.name, logs=logs)
                out.affected = out.attack.hit
            if out.affected and spell.save_type is not None:
                out.save = resolve_save(target, spell.save_type, spell.dc, self.rng, logs=logs)
                out.affected = not out.save.success
            outcomes.append(out)

        result = CastResult(spell=spell.name, outcomes=outcomes)
        if spell.damage is not None:
            takes_damage = [o for o in outcomes if o.affected or (o.save is not None and spell.half_on_save)]
            if takes_damage:
                packet = self.damage.spell_packet(spell.damage, spell.damage_type, self.rng)
                result.damage_roll = packet.dice_roll
                for out in takes_damage:
                    target = combatants[out.target_id]
                    if out.affected:
                        mult = self.settings.default_crit_multiplier if (out.attack and out.attack.critical_confirmed) else 1
                        p = self.damage.scaled(packet, mult, 1)
                        p.multiplier = mult
                    else:
                        p = self.damage.scaled(packet, 1, 2)
                    out.damage = self.damage.apply(target, p, logs=logs)
                    out.condition_changes.extend(self.damage.check_defeat(target, self.conditions,
                                                                          round_number=round_number, logs=logs))

        for out in outcomes:
            if not out.affected:
                continue
            target = combatants[out.target_id]
            for grant in spell.conditions:
                out.condition_changes.append(self.conditions.apply(
                    target, grant.name, grant.duration, source=spell.name, source_combatant=caster,
                    round_number=round_number, logs=logs,
                ))
        return result
