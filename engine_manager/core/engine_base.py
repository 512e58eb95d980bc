"""Abstract engine and factory definitions for engine_manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, MutableMapping, Optional, Sequence, TextIO, Union


class EngineError(RuntimeError):
    """Base error for engine and factory failures."""


class ScriptEngine(ABC):
    """Common interface implemented by every engine a factory produces."""

    def __init__(self, factory: Optional["EngineFactory"] = None) -> None:
        self._factory = factory
        self._global_scope: Optional[MutableMapping[str, Any]] = None

    @property
    def factory(self) -> Optional["EngineFactory"]:
        """Return the factory that created this engine, if known."""
        return self._factory

    @property
    def global_scope(self) -> Optional[MutableMapping[str, Any]]:
        """Return the global scope bound at creation time."""
        return self._global_scope

    def bind_global_scope(self, scope: MutableMapping[str, Any]) -> None:
        """Attach the manager-wide bindings to this engine."""
        self._global_scope = scope

    @abstractmethod
    def eval(self, script: str, bindings: Optional[MutableMapping[str, Any]] = None) -> Any:
        """Execute ``script`` and return its result."""


class EngineFactory(ABC):
    """Pluggable provider advertising what it handles and producing engines."""

    engine_name: str = ""
    engine_version: str = ""
    language_name: str = ""
    language_version: str = ""

    def names(self) -> Optional[Sequence[str]]:
        """Short names this factory answers to."""
        return ()

    def extensions(self) -> Optional[Sequence[str]]:
        """File extensions (without the dot) this factory handles."""
        return ()

    def mime_types(self) -> Optional[Sequence[str]]:
        """Mime types this factory handles."""
        return ()

    @abstractmethod
    def create_engine(self) -> ScriptEngine:
        """Return a new engine instance."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} engine_name={self.engine_name!r}>"


class CompiledScript(ABC):
    """Result of compiling a script once so it can be run many times."""

    @property
    @abstractmethod
    def engine(self) -> ScriptEngine:
        """Engine that produced this compiled script."""

    @abstractmethod
    def eval(self, bindings: Optional[MutableMapping[str, Any]] = None) -> Any:
        """Run the compiled script."""


class Compilable(ABC):
    """Optional capability for engines able to precompile scripts."""

    @abstractmethod
    def compile(self, script: Union[str, TextIO]) -> CompiledScript:
        """Compile ``script`` (source text or a readable text stream)."""
