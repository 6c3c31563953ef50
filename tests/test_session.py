import pytest
from dndcombat.engine.actions import AttackAction, CastAction, DefendAction, SavingThrowAction, SpellEffect
from dndcombat.engine.conditions import ConditionRegistry
from dndcombat.engine.derived import armor_class
from dndcombat.engine.dice import FixedRolls
from dndcombat.engine.errors import (
    ActionNotAllowed, CombatAlreadyEnded, CombatantNotFound, ConditionNotFound, SessionStateError,
    TargetNotFound,
)
from dndcombat.engine.session import CombatEnded, CombatSession, SessionState, TurnInfo, create_session
from dndcombat.engine.settings import EngineSettings

SWORD = {"id": "sword", "name": "Sword", "damage": "1d8"}


@pytest.fixture
def roster(make_stats):
    return [
        make_stats("a", base_attack_bonus=5, abilities={"str": 16}, weapons=[SWORD]),
        make_stats("b", side="monsters", hp_max=5, armor_class={"armor": 8}, weapons=[SWORD]),
    ]


def started(registry, roster, rolls):
    rng = FixedRolls(rolls)
    session = create_session(roster, registry=registry, rng=rng)
    session.roll_initiative_for_all()
    return session, rng


def test_initiative_starts_the_first_round(registry, roster):
    session, _ = started(registry, roster, [15, 5])
    assert session.state == SessionState.ACTIVE
    assert [r.combatant_id for r in session.initiative] == ["a", "b"]
    assert session.current_combatant.id == "a"
    assert (session.round, session.turn) == (1, 1)
    assert session.events[:2] == ["[Init] A: 15 + 0 = 15", "[Init] B: 5 + 0 = 5"]
    assert session.events[-1] == "[Turn] Round 1, turn 1: A"


def test_initiative_bonuses_by_id(registry, roster):
    rng = FixedRolls([10, 10])
    session = create_session(roster, registry=registry, rng=rng)
    rolls = session.roll_initiative_for_all({"b": 3})
    assert [r.combatant_id for r in rolls] == ["b", "a"]


def test_initiative_bonus_for_unknown_combatant(registry, roster):
    session = create_session(roster, registry=registry, rng=FixedRolls([10, 10]))
    with pytest.raises(CombatantNotFound):
        session.roll_initiative_for_all({"zed": 3})
    assert session.state == SessionState.SETUP


def test_victory_is_detected_right_after_the_killing_blow(registry, roster):
    session, _ = started(registry, roster, [15, 5, 15, 6])
    result = session.resolve_action(AttackAction(actor_id="a", target_id="b"))
    assert result.hit and result.damage.total == 9
    status = session.get_status()
    assert status.ended and status.state == SessionState.ENDED
    assert status.outcome.kind == "victory" and status.outcome.side == "heroes"
    assert session.events[-1] == "[End] Combat over in round 1: victory(heroes)"

    with pytest.raises(CombatAlreadyEnded):
        session.resolve_action(DefendAction(actor_id="a"))
    assert isinstance(session.advance_turn(), CombatEnded)
    with pytest.raises(CombatAlreadyEnded):
        session.apply_condition("a", "Shaken")


def test_victory_by_death_threshold(registry, make_stats):
    roster = [
        make_stats("a", base_attack_bonus=5, abilities={"str": 16}, weapons=[SWORD]),
        make_stats("b", side="monsters", hp_max=5, armor_class={"armor": 8}),
    ]
    session, _ = started(registry, roster, [15, 5, 20, 15, 6])
    session.resolve_action(AttackAction(actor_id="a", target_id="b"))
    b = session.combatant("b")
    assert b.hp_current == -13 and b.is_dead
    assert str(session.outcome) == "victory(heroes)"


def test_simultaneous_defeat_is_a_draw(registry, make_stats):
    roster = [make_stats("a", hp_max=3), make_stats("b", side="monsters", hp_max=3)]
    session, _ = started(registry, roster, [15, 5, 4, 5])
    blast = SpellEffect(name="Blast", damage="2d6", damage_type="force")
    session.resolve_action(CastAction(actor_id="a", target_ids=["a", "b"], spell=blast))
    assert session.state == SessionState.ENDED
    assert session.outcome.kind == "draw" and session.outcome.side is None


def test_failed_action_leaves_everything_untouched(registry, roster):
    session, rng = started(registry, roster, [15, 5, 15, 6])
    events = list(session.events)
    with pytest.raises(TargetNotFound):
        session.resolve_action(AttackAction(actor_id="a", target_id="ghost"))
    assert session.get_log() == []
    assert session.events == events
    assert rng.remaining == 2
    assert session.combatant("a").actions.standard


def test_actions_before_initiative(registry, roster):
    session = create_session(roster, registry=registry, rng=FixedRolls([]))
    with pytest.raises(SessionStateError):
        session.resolve_action(DefendAction(actor_id="a"))
    with pytest.raises(SessionStateError):
        session.advance_turn()


def test_setup_rules(registry, roster, make_stats):
    session = create_session(roster, registry=registry, rng=FixedRolls([1, 1]))
    with pytest.raises(SessionStateError, match="duplicate"):
        session.add_combatant(make_stats("a"))
    session.roll_initiative_for_all()
    with pytest.raises(SessionStateError):
        session.add_combatant(make_stats("c"))
    with pytest.raises(SessionStateError):
        session.roll_initiative_for_all()

    lonely = create_session([make_stats("x"), make_stats("y")], registry=registry, rng=FixedRolls([1, 1]))
    with pytest.raises(SessionStateError, match="two sides"):
        lonely.roll_initiative_for_all()


def test_combatants_are_copies(registry, roster):
    session = create_session(roster, registry=registry, rng=FixedRolls([]))
    assert session.combatant("a").stats == roster[0]
    assert session.combatant("a").stats is not roster[0]


def test_add_combatant_accepts_dicts(registry):
    session = CombatSession(registry=registry, rng=FixedRolls([]))
    c = session.add_combatant({"id": "d", "name": "Dora", "side": "heroes", "hp_max": 12, "hp_current": 20})
    assert c.hp_current == 12


def test_death_threshold_from_settings(registry, make_stats):
    settings = EngineSettings(death_threshold_from_constitution=True)
    session = create_session([make_stats("a", abilities={"con": 14}), make_stats("b", side="m")],
                             registry=registry, rng=FixedRolls([]), settings=settings)
    assert session.combatant("a").death_threshold == -14
    assert session.combatant("b").death_threshold == -10


def test_registry_must_define_defeat_conditions():
    registry = ConditionRegistry.from_definitions([{"name": "Shaken"}])
    with pytest.raises(ConditionNotFound):
        CombatSession(registry=registry, rng=FixedRolls([]))


def test_decay_happens_when_a_round_completes(registry, roster):
    session, _ = started(registry, roster, [15, 5])
    session.apply_condition("b", "Shaken", 1)
    step = session.advance_turn()
    assert isinstance(step, TurnInfo) and step.combatant_id == "b" and step.rounds_completed == 0
    assert session.combatant("b").has_condition("Shaken")

    step = session.advance_turn()
    assert step.combatant_id == "a" and step.round == 2 and step.rounds_completed == 1
    assert [(c.condition, c.change) for c in step.condition_changes] == [("Shaken", "expired")]
    assert not session.combatant("b").has_condition("Shaken")
    assert "[Round] Round 1 ends" in session.events


def test_action_economy_resets_at_turn_start(registry, roster):
    session, _ = started(registry, roster, [15, 5, 2])
    session.resolve_action(AttackAction(actor_id="a", target_id="b"))
    assert not session.combatant("a").actions.standard
    session.advance_turn()
    session.advance_turn()
    assert session.combatant("a").actions.standard


def test_defeated_combatants_are_skipped(registry, make_stats):
    roster = [
        make_stats("a", base_attack_bonus=5, abilities={"str": 16}, weapons=[SWORD]),
        make_stats("b", side="monsters", hp_max=5, armor_class={"armor": 8}),
        make_stats("c", side="monsters", hp_max=5),
    ]
    session, _ = started(registry, roster, [20, 10, 5, 15, 6])
    session.resolve_action(AttackAction(actor_id="a", target_id="b"))
    assert session.state == SessionState.ACTIVE
    step = session.advance_turn()
    assert step.combatant_id == "c"
    assert [c.defeated for c in session.get_status().combatants] == [False, True, False]


def test_condition_changes_can_end_combat(registry, roster):
    session, _ = started(registry, roster, [15, 5])
    session.combatant("b").hp_current = 0
    assert session.state == SessionState.ACTIVE
    session.apply_condition("b", "Unconscious")
    assert session.outcome.side == "heroes"


def test_condition_errors(registry, roster):
    session, _ = started(registry, roster, [15, 5])
    with pytest.raises(ConditionNotFound):
        session.apply_condition("a", "Bogus")
    with pytest.raises(CombatantNotFound):
        session.apply_condition("zed", "Shaken")
    assert session.remove_condition("a", "Shaken") is None


def test_log_records_and_callback(registry, roster):
    session, _ = started(registry, roster, [15, 5, 5])
    seen = []
    session.resolve_action({"kind": "attack", "actor_id": "a", "target_id": "b"}, on_resolved=seen.append)
    log = session.get_log()
    assert seen == log
    rec = log[0]
    assert (rec.sequence, rec.round, rec.turn, rec.actor_id) == (1, 1, 1, "a")
    assert rec.action.kind == "attack" and rec.result.kind == "attack"
    assert rec.logs[0].startswith("[Atk] A attacks B")


def test_status_snapshot(registry, roster):
    session, _ = started(registry, roster, [15, 5])
    session.apply_condition("b", "Prone", 2, source="trip")
    status = session.get_status()
    assert (status.round, status.turn, status.current, status.ended) == (1, 1, "a", False)
    b = status.combatants[1]
    assert (b.id, b.hp_current, b.hp_max, b.armor_class, b.initiative) == ("b", 5, 5, 18, 5)
    assert [(c.name, c.remaining_rounds, c.source) for c in b.conditions] == [("Prone", 2, "trip")]
    assert "ended" in status.model_dump()


def test_only_the_current_combatant_spends_turn_actions(registry, roster):
    session, rng = started(registry, roster, [15, 5, 12, 12, 3])
    with pytest.raises(ActionNotAllowed, match="not their turn"):
        session.resolve_action(AttackAction(actor_id="b", target_id="a"))
    with pytest.raises(ActionNotAllowed):
        session.resolve_action({"kind": "move", "actor_id": "b"})
    b = session.combatant("b")
    assert b.actions.standard and b.actions.move
    assert session.get_log() == [] and rng.remaining == 3

    # saves and reactions are not tied to the turn
    session.resolve_action(SavingThrowAction(actor_id="b", target_ids=["b"], save_type="will", dc=10))
    session.resolve_action(SavingThrowAction(actor_id="b", target_ids=["b"], save_type="will", dc=10,
                                             slot="reaction"))
    assert not b.actions.reaction

    step = session.advance_turn()
    assert step.combatant_id == "b"
    session.resolve_action(AttackAction(actor_id="b", target_id="a"))
    attacks = [r for r in session.get_log() if r.actor_id == "b" and r.action.kind == "attack"]
    assert len(attacks) == 1


def test_charge_penalty_clears_when_the_chargers_turn_comes_back(registry, roster):
    session, _ = started(registry, roster, [15, 5, 2])
    a = session.combatant("a")
    session.resolve_action(AttackAction(actor_id="a", target_id="b", charge=True))
    assert a.has_condition("Charging") and armor_class(a) == 8

    session.advance_turn()
    assert a.has_condition("Charging")
    step = session.advance_turn()
    assert (step.combatant_id, step.round) == ("a", 2)
    assert not a.has_condition("Charging") and armor_class(a) == 10
    assert "[Cond] Removed Charging from A" in session.events
