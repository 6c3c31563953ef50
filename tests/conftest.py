import pytest
from dndcombat.engine.conditions_runtime import ConditionsEngine
from dndcombat.engine.loader import default_registry
from dndcombat.engine.models import Combatant, CombatantStats


def stats(id: str = "a", side: str = "heroes", **kw) -> CombatantStats:
    kw.setdefault("name", id.upper())
    return CombatantStats(id=id, side=side, **kw)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def conditions(registry):
    return ConditionsEngine(registry)


@pytest.fixture
def make_combatant():
    def _make(id: str = "a", side: str = "heroes", **kw) -> Combatant:
        return Combatant.from_stats(stats(id, side, **kw))
    return _make


@pytest.fixture
def make_stats():
    return stats
