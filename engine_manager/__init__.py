"""Discovery and resolution registry for pluggable engine factories."""

from .core import Bindings, EngineError, EngineFactory, KeyDomain, ScriptEngine
from .engines import EngineManager

__all__ = [
    "Bindings",
    "EngineError",
    "EngineFactory",
    "EngineManager",
    "KeyDomain",
    "ScriptEngine",
]
