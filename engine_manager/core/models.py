"""Data models shared across engine_manager components."""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence

from .engine_base import EngineFactory


class Bindings(MutableMapping):
    """Mutable string-keyed binding set shared by engines."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = {}
        if initial:
            self.update(initial)

    @staticmethod
    def _check_key(key: object) -> None:
        if key is None:
            raise TypeError("Binding key cannot be None")
        if not isinstance(key, str):
            raise TypeError(f"Binding key must be a string, got {type(key).__name__}")
        if not key:
            raise ValueError("Binding key cannot be empty")

    def __getitem__(self, key: str) -> Any:
        self._check_key(key)
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._check_key(key)
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        self._check_key(key)
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Bindings({self._values!r})"


class KeyDomain(Enum):
    """Lookup key families a factory can advertise."""

    NAME = "name"
    EXTENSION = "extension"
    MIME_TYPE = "mime_type"

    def advertised_keys(self, factory: EngineFactory) -> Optional[Sequence[str]]:
        """Query ``factory`` for the keys it advertises in this domain.

        A bare string is read as a single key, never as a sequence of
        characters.
        """
        if self is KeyDomain.NAME:
            keys = factory.names()
        elif self is KeyDomain.EXTENSION:
            keys = factory.extensions()
        else:
            keys = factory.mime_types()
        if isinstance(keys, str):
            return (keys,)
        return keys


class DiscoveryScope(Enum):
    """How far provider discovery is allowed to look."""

    FULL = "full"
    INSTALLED = "installed"


@dataclass(frozen=True)
class Diagnostic:
    """A provider fault that was absorbed instead of raised."""

    stage: str
    message: str
    error: Optional[BaseException] = None
    factory: Optional[EngineFactory] = None
    key: Optional[str] = None
