from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import json
import time
from typing import List, Optional
from pydantic import BaseModel, Field

from .results import ActionRecord
from .session import CombatSession, CombatStatus, Outcome
from ..util.paths import user_dir

LOG_ROOT = user_dir() / "logs"
ENGINE_VERSION = "0.1.0"

class CombatLog(BaseModel):
    """Everything needed to audit or replay an encounter, in resolution order."""
    outcome: Optional[Outcome] = None
    status: CombatStatus
    records: List[ActionRecord] = Field(default_factory=list)
    events: List[str] = Field(default_factory=list)

@dataclass
class LogMeta:
    slot_id: str
    engine_version: str
    saved_ts: float
    description: str
    rounds: int = 0
    outcome: Optional[str] = None

def _root(root: Optional[Path]) -> Path:
    r = root or LOG_ROOT
    r.mkdir(parents=True, exist_ok=True)
    return r

def save_combat_log(slot_id: str, session: CombatSession, description: str = "",
                    root: Optional[Path] = None) -> Path:
    sd = _root(root) / slot_id
    sd.mkdir(parents=True, exist_ok=True)
    log = CombatLog(outcome=session.outcome, status=session.get_status(),
                    records=session.get_log(), events=list(session.events))
    (sd / "log.json").write_text(log.model_dump_json(indent=2), encoding="utf-8")
    meta = {
        "engine_version": ENGINE_VERSION,
        "saved_ts": time.time(),
        "description": description,
        "rounds": session.round,
        "outcome": str(session.outcome) if session.outcome else None,
    }
    (sd / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
    return sd

def load_combat_log(slot_id: str, root: Optional[Path] = None) -> CombatLog:
    sd = _root(root) / slot_id
    return CombatLog.model_validate_json((sd / "log.json").read_text(encoding="utf-8"))

def list_combat_logs(root: Optional[Path] = None) -> List[LogMeta]:
    metas: List[LogMeta] = []
    for slot in _root(root).iterdir():
        if not slot.is_dir():
            continue
        meta_path = slot / "meta.json"
        if not meta_path.exists():
            continue
        data = json.loads(meta_path.read_text(encoding="utf-8"))
        metas.append(LogMeta(
            slot_id=slot.name,
            engine_version=data.get("engine_version", "0.0"),
            saved_ts=data.get("saved_ts", 0.0),
            description=data.get("description", ""),
            rounds=data.get("rounds", 0),
            outcome=data.get("outcome"),
        ))
    metas.sort(key=lambda m: m.saved_ts, reverse=True)
    return metas

def delete_combat_log(slot_id: str, root: Optional[Path] = None) -> None:
    sd = _root(root) / slot_id
    if not sd.exists():
        return
    for p in sd.iterdir():
        if p.is_file():
            p.unlink()
    sd.rmdir()
