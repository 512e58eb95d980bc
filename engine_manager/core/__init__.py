"""Core abstractions for engine_manager."""

from .engine_base import (
    Compilable,
    CompiledScript,
    EngineError,
    EngineFactory,
    ScriptEngine,
)
from .models import Bindings, Diagnostic, DiscoveryScope, KeyDomain

__all__ = [
    "Bindings",
    "Compilable",
    "CompiledScript",
    "Diagnostic",
    "DiscoveryScope",
    "EngineError",
    "EngineFactory",
    "KeyDomain",
    "ScriptEngine",
]
