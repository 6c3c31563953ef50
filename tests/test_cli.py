import pytest
from typer.testing import CliRunner
from dndcombat.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setattr("dndcombat.engine.settings.SETTINGS_PATH", tmp_path / "settings.json")
    monkeypatch.setattr("dndcombat.engine.archive.LOG_ROOT", tmp_path / "logs")


def test_conditions_lists_the_table():
    result = runner.invoke(app, ["conditions"])
    assert result.exit_code == 0
    assert "Stunned" in result.output and "cannot_act" in result.output


def test_validate_packaged_content():
    result = runner.invoke(app, ["validate", "--strict"])
    assert result.exit_code == 0
    assert "validated successfully" in result.output


def test_simulate_and_archive():
    result = runner.invoke(app, ["simulate", "enc.crypt_guardians", "--seed", "4", "--archive", "crypt"])
    assert result.exit_code == 0, result.output
    assert "[Init]" in result.output
    assert "Outcome:" in result.output
    assert "Archived combat log" in result.output

    listed = runner.invoke(app, ["logs"])
    assert listed.exit_code == 0
    assert listed.output.startswith("crypt: Crypt guardians")


def test_simulate_unknown_encounter():
    result = runner.invoke(app, ["simulate", "enc.nope"])
    assert result.exit_code == 1
