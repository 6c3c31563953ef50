import logging
import random
from pathlib import Path
from typing import Optional

import typer
from dndcombat.engine.actions import AttackAction
from dndcombat.engine.archive import list_combat_logs, save_combat_log
from dndcombat.engine.conditions import CONDITION_FLAGS
from dndcombat.engine.loader import load_content
from dndcombat.engine.session import CombatEnded, create_session, is_defeated
from dndcombat.engine.settings import load_settings
from dndcombat.tools.validate import validate_content
from dndcombat.util.paths import content_dir

app = typer.Typer()


def _content_root(override: Optional[Path] = None) -> Path:
    if override is not None:
        return override
    s = load_settings()
    return Path(s.content_dir) if s.content_dir else content_dir()


@app.command()
def conditions(content: Optional[Path] = typer.Option(None, "--content")):
    """List the condition table."""
    registry = load_content(_content_root(content)).registry()
    for cd in registry:
        fx = cd.effects
        flags = [f for f in sorted(CONDITION_FLAGS) if getattr(fx, f)]
        mods = fx.model_dump(exclude_defaults=True, exclude=set(CONDITION_FLAGS))
        dur = "indefinite" if cd.default_duration is None else cd.default_duration
        typer.echo(f"{cd.name:<12} duration={dur} flags={flags or '-'} mods={mods or '-'}")


@app.command()
def validate(content: Optional[Path] = typer.Option(None, "--content"),
             strict: bool = typer.Option(False, "--strict", help="Reject unknown symbols in formulas")):
    errors = validate_content(_content_root(content), strict=strict)
    for msg in errors:
        typer.echo(f"[ERROR] {msg}", err=True)
    if errors:
        raise typer.Exit(code=1)
    typer.echo("Content validated successfully.")


@app.command()
def simulate(encounter_id: str,
             seed: Optional[int] = typer.Option(None, "--seed"),
             max_rounds: int = typer.Option(20, "--max-rounds"),
             archive: Optional[str] = typer.Option(None, "--archive", help="Save the combat log under this slot"),
             verbose: bool = typer.Option(False, "--verbose")):
    """Run a sample encounter where everyone attacks the first standing enemy."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    settings = load_settings()
    content = load_content(Path(settings.content_dir) if settings.content_dir else content_dir())
    if encounter_id not in content.encounters:
        typer.echo(f"Unknown encounter: {encounter_id}", err=True)
        raise typer.Exit(code=1)
    enc = content.get_encounter(encounter_id)
    rng = random.Random(seed) if seed is not None else settings.make_rng()

    session = create_session(enc.combatants, registry=content.registry(), rng=rng, settings=settings)
    session.roll_initiative_for_all()
    step = None
    while not isinstance(step, CombatEnded) and session.round <= max_rounds:
        actor = session.current_combatant
        if actor is None:
            break
        enemy = next((c for c in session.combatants.values()
                      if c.side != actor.side and not is_defeated(c)), None)
        can_act = not any(i.definition.effects.cannot_act for i in actor.conditions)
        if enemy is not None and can_act:
            session.resolve_action(AttackAction(actor_id=actor.id, target_id=enemy.id))
        step = session.advance_turn()

    for line in session.events:
        typer.echo(line)
    status = session.get_status()
    typer.echo(f"Outcome: {status.outcome or 'undecided'} after {status.round} round(s)")
    if archive:
        path = save_combat_log(archive, session, description=enc.name)
        typer.echo(f"Archived combat log to {path}")


@app.command()
def logs():
    """List archived combat logs, newest first."""
    metas = list_combat_logs()
    if not metas:
        typer.echo("No archived combat logs.")
    for m in metas:
        typer.echo(f"{m.slot_id}: {m.description or '-'} rounds={m.rounds} outcome={m.outcome}")


if __name__ == "__main__":
    app()
