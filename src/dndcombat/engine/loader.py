from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
import json
import yaml
from pydantic import BaseModel, Field, TypeAdapter
from .conditions import ConditionDefinition, ConditionRegistry
from .models import CombatantStats, WeaponProfile
from ..util.paths import content_dir

class EncounterDefinition(BaseModel):
    id: str
    name: str
    description: str = ""
    combatants: List[CombatantStats] = Field(min_length=2)

ConditionAdapter = TypeAdapter(ConditionDefinition)
WeaponAdapter = TypeAdapter(WeaponProfile)
EncounterAdapter = TypeAdapter(EncounterDefinition)

def _load_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in [".yaml", ".yml"]:
        return yaml.safe_load(text) or {}
    return json.loads(text)

def _iter_files(root: Path, exts: Tuple[str,...]=(".json",".yaml",".yml")) -> Iterable[Path]:
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in exts)

def _records(data: Any) -> List[dict]:
    # a file may hold one record or a list of them
    if isinstance(data, list):
        return data
    return [data] if data else []

@dataclass
class ContentIndex:
    conditions: Dict[str, ConditionDefinition]
    weapons: Dict[str, WeaponProfile]
    encounters: Dict[str, EncounterDefinition]

    def registry(self) -> ConditionRegistry:
        return ConditionRegistry(self.conditions.values())

    def get_weapon(self, wid: str) -> WeaponProfile:
        return self.weapons[wid]

    def get_encounter(self, eid: str) -> EncounterDefinition:
        return self.encounters[eid]

def load_conditions(root: Path) -> Dict[str, ConditionDefinition]:
    conditions: Dict[str, ConditionDefinition] = {}
    for fp in _iter_files(root):
        for rec in _records(_load_file(fp)):
            cond = ConditionAdapter.validate_python(rec)
            if cond.key in conditions:
                raise RuntimeError(f"Duplicate condition {cond.name} in {fp}")
            conditions[cond.key] = cond
    return conditions

def _resolve_weapon_refs(rec: dict, weapons: Dict[str, WeaponProfile], fp: Path) -> dict:
    out = dict(rec)
    combatants = []
    for c in out.get("combatants", []):
        c = dict(c)
        refs = []
        for w in c.get("weapons", []):
            if isinstance(w, str):
                if w not in weapons:
                    raise RuntimeError(f"Unknown weapon id {w} in {fp}")
                refs.append(weapons[w])
            else:
                refs.append(w)
        c["weapons"] = refs
        combatants.append(c)
    out["combatants"] = combatants
    return out

def load_content(base_dir: Optional[Path] = None) -> ContentIndex:
    base_dir = base_dir or content_dir()
    conditions = load_conditions(base_dir / "conditions")

    weapons: Dict[str, WeaponProfile] = {}
    for fp in _iter_files(base_dir / "weapons"):
        for rec in _records(_load_file(fp)):
            w = WeaponAdapter.validate_python(rec)
            if w.id in weapons:
                raise RuntimeError(f"Duplicate weapon id {w.id} in {fp}")
            weapons[w.id] = w

    encounters: Dict[str, EncounterDefinition] = {}
    for fp in _iter_files(base_dir / "encounters"):
        for rec in _records(_load_file(fp)):
            enc = EncounterAdapter.validate_python(_resolve_weapon_refs(rec, weapons, fp))
            if enc.id in encounters:
                raise RuntimeError(f"Duplicate encounter id {enc.id} in {fp}")
            encounters[enc.id] = enc

    return ContentIndex(conditions=conditions, weapons=weapons, encounters=encounters)

@lru_cache(maxsize=1)
def default_registry() -> ConditionRegistry:
    """The packaged condition table, loaded once per process."""
    return ConditionRegistry(load_conditions(content_dir() / "conditions").values())
