"""Registry of discovered engine factories and explicit key overrides."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Tuple

from ..core.engine_base import EngineFactory
from ..core.models import KeyDomain

logger = logging.getLogger(__name__)


class EngineRegistry:
    """Holds discovered factories plus one override map per key domain.

    Discovered factories are kept by identity, never by equality, and their
    iteration order is unspecified. Override maps are last-write-wins and
    never pruned.
    """

    def __init__(self) -> None:
        self._discovered: Dict[int, EngineFactory] = {}
        self._overrides: Dict[KeyDomain, Dict[str, EngineFactory]] = {
            domain: {} for domain in KeyDomain
        }

    def add_discovered(self, factory: EngineFactory) -> None:
        self._discovered[id(factory)] = factory

    def register(self, domain: KeyDomain, key: str, factory: EngineFactory) -> None:
        if key is None or factory is None:
            raise TypeError(f"Engine {domain.value} and factory must not be None")
        previous = self._overrides[domain].get(key)
        self._overrides[domain][key] = factory
        if previous is not None and previous is not factory:
            logger.debug("Replaced %s override %r: %r -> %r", domain.value, key, previous, factory)
        else:
            logger.debug("Registered %s override %r -> %r", domain.value, key, factory)

    def override(self, domain: KeyDomain, key: str) -> Optional[EngineFactory]:
        return self._overrides[domain].get(key)

    def discovered(self) -> Iterable[EngineFactory]:
        return self._discovered.values()

    def snapshot(self) -> Tuple[EngineFactory, ...]:
        """Immutable copy of the discovered set at call time."""
        return tuple(self._discovered.values())

    def __len__(self) -> int:
        return len(self._discovered)
