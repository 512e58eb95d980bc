"""Provider sources enumerating engine factories for the manager."""

from __future__ import annotations

import logging
import sysconfig
from abc import ABC, abstractmethod
from collections import deque
from importlib import metadata
from pathlib import Path
from typing import Deque, Iterable, Iterator, List, Optional, Tuple

from ..core.engine_base import EngineFactory
from ..core.models import DiscoveryScope

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT_GROUP = "engine_manager.factories"


class ProviderError(RuntimeError):
    """Raised when provider enumeration itself cannot proceed."""


class ProviderElementError(ProviderError):
    """Raised by a provider iterator when a single element cannot be produced.

    The iterator stays usable after raising it, so the caller may skip the
    element and keep going.
    """


class ProviderSource(ABC):
    """Enumerates the engine factories visible in a discovery scope."""

    @abstractmethod
    def enumerate(self, scope: DiscoveryScope) -> Iterator[EngineFactory]:
        """Return a lazy iterator over available factories.

        ``__next__`` raises :class:`ProviderElementError` for a bad element
        and any other exception when enumeration is broken altogether.
        """


class StaticProviderSource(ProviderSource):
    """Provider source over a fixed collection of factories."""

    def __init__(self, factories: Iterable[EngineFactory] = ()) -> None:
        self._factories: Tuple[EngineFactory, ...] = tuple(factories)

    def enumerate(self, scope: DiscoveryScope) -> Iterator[EngineFactory]:
        return iter(self._factories)


def _coerce_factory(entry_point: metadata.EntryPoint, loaded: object) -> EngineFactory:
    if isinstance(loaded, EngineFactory):
        return loaded
    if not callable(loaded):
        raise ProviderElementError(
            f"Entry point {entry_point.name!r} ({entry_point.value}) is not an engine factory"
        )
    try:
        factory = loaded()
    except Exception as exc:
        raise ProviderElementError(
            f"Entry point {entry_point.name!r} ({entry_point.value}) failed to instantiate: {exc}"
        ) from exc
    if not isinstance(factory, EngineFactory):
        raise ProviderElementError(
            f"Entry point {entry_point.name!r} ({entry_point.value}) produced "
            f"{type(factory).__name__}, not an engine factory"
        )
    return factory


class _EntryPointFactoryIterator:
    """Loads one entry point per ``next`` call, surviving per-element failures.

    A distribution whose metadata cannot be read is reported as a failed
    element; the remaining distributions are still enumerated.
    """

    def __init__(
        self,
        distributions: Iterable[metadata.Distribution],
        group: str,
        install_roots: Optional[List[Path]] = None,
    ) -> None:
        self._distributions = iter(distributions)
        self._group = group
        self._install_roots = install_roots
        self._pending: Deque[metadata.EntryPoint] = deque()

    def __iter__(self) -> "_EntryPointFactoryIterator":
        return self

    def __next__(self) -> EngineFactory:
        while not self._pending:
            distribution = next(self._distributions)
            self._pending.extend(self._entry_points_of(distribution))

        entry_point = self._pending.popleft()
        try:
            loaded = entry_point.load()
        except Exception as exc:
            raise ProviderElementError(
                f"Failed to load entry point {entry_point.name!r} ({entry_point.value}): {exc}"
            ) from exc
        return _coerce_factory(entry_point, loaded)

    def _entry_points_of(self, distribution: metadata.Distribution) -> List[metadata.EntryPoint]:
        try:
            if self._install_roots is not None and not _is_installed(
                distribution, self._install_roots
            ):
                logger.debug(
                    "Skipping %s: outside the interpreter's install locations",
                    distribution.metadata["Name"],
                )
                return []
            return [ep for ep in distribution.entry_points if ep.group == self._group]
        except Exception as exc:
            raise ProviderElementError(
                f"Failed to read entry points of distribution {distribution!r}: {exc}"
            ) from exc


def _is_installed(distribution: metadata.Distribution, install_roots: List[Path]) -> bool:
    try:
        location = Path(distribution.locate_file("")).resolve()
    except (OSError, TypeError, ValueError):
        return False
    return any(location == root or root in location.parents for root in install_roots)


class EntryPointProviderSource(ProviderSource):
    """Discover factories advertised through package entry points."""

    def __init__(self, group: str = DEFAULT_ENTRY_POINT_GROUP) -> None:
        self.group = group

    def enumerate(self, scope: DiscoveryScope) -> Iterator[EngineFactory]:
        install_roots = self._install_roots() if scope is DiscoveryScope.INSTALLED else None
        return _EntryPointFactoryIterator(metadata.distributions(), self.group, install_roots)

    @staticmethod
    def _install_roots() -> List[Path]:
        paths = sysconfig.get_paths()
        roots = {Path(paths[key]).resolve() for key in ("purelib", "platlib") if key in paths}
        return sorted(roots)
