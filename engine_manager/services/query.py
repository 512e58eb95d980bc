"""High-level query interface wrapping an engine manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.engine_base import EngineFactory, ScriptEngine
from ..core.models import DiscoveryScope, KeyDomain
from ..engines import DEFAULT_ENTRY_POINT_GROUP, EngineManager, EntryPointProviderSource
from ..engines.policy import AccessPolicy


class QueryError(RuntimeError):
    """Raised when a query cannot be satisfied."""


def _qualified_name(obj: object) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


def _safe_keys(factory: EngineFactory, domain: KeyDomain) -> List[str]:
    try:
        return list(domain.advertised_keys(factory) or ())
    except Exception:
        return []


@dataclass
class FactoryRecord:
    """Serializable description of an engine factory."""

    factory: str
    engine_name: str = ""
    engine_version: str = ""
    language_name: str = ""
    language_version: str = ""
    names: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    mime_types: List[str] = field(default_factory=list)

    @classmethod
    def from_factory(cls, factory: EngineFactory) -> "FactoryRecord":
        return cls(
            factory=_qualified_name(factory),
            engine_name=getattr(factory, "engine_name", ""),
            engine_version=getattr(factory, "engine_version", ""),
            language_name=getattr(factory, "language_name", ""),
            language_version=getattr(factory, "language_version", ""),
            names=_safe_keys(factory, KeyDomain.NAME),
            extensions=_safe_keys(factory, KeyDomain.EXTENSION),
            mime_types=_safe_keys(factory, KeyDomain.MIME_TYPE),
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "factory": self.factory,
            "engine_name": self.engine_name,
            "engine_version": self.engine_version,
            "language_name": self.language_name,
            "language_version": self.language_version,
            "names": list(self.names),
            "extensions": list(self.extensions),
            "mime_types": list(self.mime_types),
        }


class QueryService:
    """Entrypoint for inspecting and resolving engines of one manager."""

    def __init__(self, manager: EngineManager) -> None:
        self.manager = manager

    def list_factories(self) -> List[Dict[str, object]]:
        """Describe every discovered factory, sorted by factory class."""
        records = [FactoryRecord.from_factory(f) for f in self.manager.get_engine_factories()]
        records.sort(key=lambda record: (record.factory, record.names))
        return [record.as_dict() for record in records]

    def resolve(self, domain: KeyDomain, key: str) -> ScriptEngine:
        """Resolve an engine, raising :class:`QueryError` when none matches."""
        engine = self.manager.get_engine(domain, key)
        if engine is None:
            raise QueryError(f"No engine registered for {domain.value} {key!r}")
        return engine

    def describe_resolution(self, domain: KeyDomain, key: str) -> Dict[str, object]:
        """Return the resolved engine and its factory as a serializable dictionary."""
        engine = self.resolve(domain, key)
        factory = getattr(engine, "factory", None)
        factory_payload = None
        if factory is not None:
            factory_payload = FactoryRecord.from_factory(factory).as_dict()
        return {
            "query": {"domain": domain.value, "key": key},
            "engine": _qualified_name(engine),
            "factory": factory_payload,
            "metadata": {"scope": self.manager.scope.value},
        }


def create_service(
    *,
    group: str = DEFAULT_ENTRY_POINT_GROUP,
    scope: Optional[DiscoveryScope] = None,
    access_policy: Optional[AccessPolicy] = None,
) -> QueryService:
    """Helper to build a QueryService over entry point discovery."""
    manager = EngineManager(
        EntryPointProviderSource(group),
        scope=scope,
        access_policy=access_policy,
    )
    return QueryService(manager)
