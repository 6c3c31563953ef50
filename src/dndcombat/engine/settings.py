from __future__ import annotations
import random
from pathlib import Path
from pydantic import BaseModel, Field
from typing import Literal, Optional
from ..util.paths import user_dir

SETTINGS_PATH = user_dir() / "settings.json"

class EngineSettings(BaseModel):
    death_threshold: int = Field(-10, le=0)
    death_threshold_from_constitution: bool = False  # threshold = -Con score
    default_crit_multiplier: int = Field(2, ge=2)
    rng_seed_mode: Literal["fixed", "random"] = "fixed"
    rng_seed: int = 1337
    content_dir: Optional[str] = None

    def make_rng(self) -> random.Random:
        if self.rng_seed_mode == "random":
            return random.Random()
        return random.Random(self.rng_seed)

def load_settings(path: Optional[Path] = None) -> EngineSettings:
    path = path or SETTINGS_PATH
    if path.exists():
        return EngineSettings.model_validate_json(path.read_text(encoding="utf-8"))
    path.parent.mkdir(parents=True, exist_ok=True)
    s = EngineSettings()
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
    return s

def save_settings(s: EngineSettings, path: Optional[Path] = None) -> None:
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
