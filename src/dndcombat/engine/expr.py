from __future__ import annotations
from typing import Any, Optional, Dict
from functools import lru_cache
import threading
import math

from py_expression_eval import Parser
from .models import Combatant

# Thread-local evaluation context so function implementations can read the combatant dynamically
class _EvalTLS(threading.local):
    def __init__(self):
        self.actor: Optional[Combatant] = None
        self.target: Optional[Combatant] = None

_TLS = _EvalTLS()

_parser = Parser()

_parser.functions["min"] = min
_parser.functions["max"] = max
_parser.functions["floor"] = math.floor
_parser.functions["ceil"] = math.ceil

def _ability_mod(name: Any, who: str = "actor") -> int:
    c = _TLS.actor if who == "actor" else _TLS.target
    if not isinstance(c, Combatant):
        return 0
    return c.ability_mod(str(name))

_parser.functions["ability_mod"] = _ability_mod

FUNCTIONS = frozenset({"min", "max", "floor", "ceil", "ability_mod"})
# ability names resolve to themselves so ability_mod(wis) works without quotes
SYMBOLS = frozenset({"str", "dex", "con", "int", "wis", "cha", "level", "hd", "actor", "target"})

@lru_cache(maxsize=1024)
def _compile_expr(expr: str):
    return _parser.parse(expr)

def _variables(actor: Optional[Combatant], extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {k: k for k in ("str", "dex", "con", "int", "wis", "cha", "actor", "target")}
    lvl = actor.stats.level if isinstance(actor, Combatant) else 0
    out["level"] = lvl
    out["hd"] = lvl
    out.update(extra or {})
    return out

def eval_expr(expr: str | int | float,
              actor: Optional[Combatant] = None,
              target: Optional[Combatant] = None,
              extra: Optional[Dict[str, Any]] = None) -> int | float:
    """
    Evaluate a formula string (or numeric literal) using the compiled cache and thread-local context.
    Raises ValueError when the formula does not parse or evaluate.
    """
    if isinstance(expr, (int, float)):
        return expr
    prev_actor, prev_target = _TLS.actor, _TLS.target
    _TLS.actor, _TLS.target = actor, target
    try:
        value = _compile_expr(expr).evaluate(_variables(actor, extra))
    except Exception as e:
        raise ValueError(f"Cannot evaluate formula {expr!r}: {e}") from e
    finally:
        _TLS.actor, _TLS.target = prev_actor, prev_target

    f = float(value)
    return int(f) if f.is_integer() else f

def eval_rounds(expr: str | int, actor: Optional[Combatant], target: Optional[Combatant] = None) -> int:
    """Duration formulas resolve to a whole, non-negative number of rounds."""
    return max(0, math.floor(eval_expr(expr, actor=actor, target=target)))

def expr_cache_info() -> str:
    info = _compile_expr.cache_info()
    return f"expr-cache: hits={info.hits}, misses={info.misses}, size={info.currsize}/{info.maxsize}"
