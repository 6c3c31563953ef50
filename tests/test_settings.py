import pytest
from pydantic import ValidationError
from dndcombat.engine.settings import EngineSettings, load_settings, save_settings


def test_load_creates_defaults(tmp_path):
    path = tmp_path / "cfg" / "settings.json"
    s = load_settings(path)
    assert path.exists()
    assert s.death_threshold == -10 and s.default_crit_multiplier == 2
    assert s.rng_seed_mode == "fixed"


def test_round_trip(tmp_path):
    path = tmp_path / "settings.json"
    save_settings(EngineSettings(rng_seed=7, death_threshold=-5), path)
    s = load_settings(path)
    assert (s.rng_seed, s.death_threshold) == (7, -5)


def test_fixed_seed_is_reproducible():
    s = EngineSettings(rng_seed=99)
    assert [s.make_rng().randint(1, 20) for _ in range(3)] == [s.make_rng().randint(1, 20) for _ in range(3)]


def test_invalid_values():
    with pytest.raises(ValidationError):
        EngineSettings(death_threshold=5)
    with pytest.raises(ValidationError):
        EngineSettings(default_crit_multiplier=1)
    with pytest.raises(ValidationError):
        EngineSettings(rng_seed_mode="session")
