from __future__ import annotations
from pathlib import Path
import re
from typing import Dict, List, Set
import typer
from py_expression_eval import Parser
from pydantic import TypeAdapter, ValidationError
from dndcombat.engine.expr import FUNCTIONS, SYMBOLS
from dndcombat.engine.loader import (
    ConditionAdapter, WeaponAdapter, _iter_files, _load_file, _records,
)
from dndcombat.engine.models import CombatantStats
from dndcombat.engine.rules import normalize_key
from dndcombat.util.paths import content_dir as default_content_dir

app = typer.Typer()

# Keys whose string values are duration formulas
EXPR_KEYS = {"default_duration", "duration"}

# conditions the session relies on for defeat bookkeeping
REQUIRED_CONDITIONS = {"dead", "unconscious"}

StatsAdapter = TypeAdapter(CombatantStats)

_parser = Parser()

def _expr_functions(expr: str) -> set[str]:
    return set(re.findall(r"\b([A-Za-z_][A-Za-z0-9_]*)\s*\(", expr))

def _expr_symbols(expr: str, used_funcs: set[str]) -> set[str]:
    syms = set(re.findall(r"\b([A-Za-z_][A-Za-z0-9_]*)\b", expr))
    return {s for s in syms if s not in used_funcs}

def check_expr(expr: str, *, strict: bool, where: str) -> list[str]:
    errors: list[str] = []
    try:
        _parser.parse(expr)
    except Exception as e:
        errors.append(f"{where}: invalid expression syntax: {e}")
        return errors

    funcs = _expr_functions(expr)
    unknown_funcs = funcs - FUNCTIONS
    if unknown_funcs:
        errors.append(f"{where}: unknown function(s): {sorted(unknown_funcs)}; allowed: {sorted(FUNCTIONS)}")

    if strict:
        unknown = _expr_symbols(expr, funcs) - SYMBOLS
        if unknown:
            errors.append(f"{where}: unknown symbol(s): {sorted(unknown)}; allowed: {sorted(SYMBOLS)}")
    return errors

def _walk_exprs(data: object, *, where: str, strict: bool) -> list[str]:
    """Find every formula-valued key in a raw record tree and check it."""
    errs: list[str] = []
    if isinstance(data, dict):
        for k, v in data.items():
            path = f"{where}.{k}"
            if isinstance(v, str) and k in EXPR_KEYS:
                errs.extend(check_expr(v, strict=strict, where=path))
            if isinstance(v, (dict, list)):
                errs.extend(_walk_exprs(v, where=path, strict=strict))
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            errs.extend(_walk_exprs(item, where=f"{where}[{idx}]", strict=strict))
    return errs

def validate_content(root: Path, strict: bool = False) -> List[str]:
    """Return every problem found under a content directory; an empty list means valid."""
    errors: List[str] = []
    defined: Dict[str, Set[str]] = {"condition": set(), "weapon": set(), "encounter": set()}

    def _check(kind: str, rid: str, fp: Path) -> None:
        if rid in defined[kind]:
            errors.append(f"{fp}: duplicate {kind} id {rid!r}")
        defined[kind].add(rid)

    for fp in _iter_files(root / "conditions"):
        for idx, rec in enumerate(_records(_load_file(fp))):
            try:
                cond = ConditionAdapter.validate_python(rec)
            except ValidationError as e:
                errors.append(f"{fp}[{idx}]: {e}")
                continue
            _check("condition", cond.key, fp)
            errors.extend(_walk_exprs(rec, where=f"{fp}[{idx}]", strict=strict))

    for fp in _iter_files(root / "weapons"):
        for idx, rec in enumerate(_records(_load_file(fp))):
            try:
                _check("weapon", WeaponAdapter.validate_python(rec).id, fp)
            except ValidationError as e:
                errors.append(f"{fp}[{idx}]: {e}")

    for fp in _iter_files(root / "encounters"):
        for idx, rec in enumerate(_records(_load_file(fp))):
            if not isinstance(rec, dict) or "id" not in rec:
                errors.append(f"{fp}[{idx}]: encounter record needs an id")
                continue
            _check("encounter", str(rec["id"]), fp)
            members = rec.get("combatants") or []
            if len(members) < 2:
                errors.append(f"{fp}: encounter {rec['id']} needs at least two combatants")
            sides = set()
            for c in members:
                c = dict(c)
                refs = [w for w in c.get("weapons", []) if isinstance(w, str)]
                for wid in refs:
                    if wid not in defined["weapon"]:
                        errors.append(f"{fp}: missing weapon id {wid!r} referenced by {c.get('id')}")
                c["weapons"] = [w for w in c.get("weapons", []) if not isinstance(w, str)]
                try:
                    sides.add(StatsAdapter.validate_python(c).side)
                except ValidationError as e:
                    errors.append(f"{fp}: combatant {c.get('id')}: {e}")
            if members and len(sides) < 2:
                errors.append(f"{fp}: encounter {rec['id']} needs at least two sides")

    missing = REQUIRED_CONDITIONS - {normalize_key(k) for k in defined["condition"]}
    for name in sorted(missing):
        errors.append(f"{root / 'conditions'}: required condition {name!r} is not defined")
    return errors

@app.command("validate-content")
def validate_content_cmd(
    content_dir: Path = typer.Argument(None),
    strict: bool = typer.Option(False, "--strict", help="Reject unknown symbols in duration formulas"),
):
    root = content_dir or default_content_dir()
    errors = validate_content(root, strict=strict)
    for msg in errors:
        typer.echo(f"[ERROR] {msg}", err=True)
    if errors:
        raise typer.Exit(code=1)
    typer.echo("Content validated successfully.")

if __name__ == "__main__":
    app()
