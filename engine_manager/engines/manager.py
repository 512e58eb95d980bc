"""Engine manager: discovery, override registration and engine resolution."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Any, Callable, MutableMapping, Optional, Tuple

from ..core.engine_base import EngineFactory, ScriptEngine
from ..core.models import Bindings, Diagnostic, DiscoveryScope, KeyDomain
from .discovery import EntryPointProviderSource, ProviderElementError, ProviderSource
from .policy import AccessPolicy, AllowAllPolicy
from .registry import EngineRegistry

logger = logging.getLogger(__name__)

DiagnosticHook = Callable[[Diagnostic], None]


class EngineManager:
    """Discovers engine factories once and resolves engines on demand.

    Factories come from two places: the provider source enumerated at
    construction, and explicit per-key overrides registered afterwards.
    Overrides always win. Every engine handed out is bound to the manager's
    current global scope before it is returned.

    Provider faults (bad entry points, failing metadata queries, engines
    that fail to build) never reach the caller; they are logged at DEBUG and
    passed to ``diagnostics`` when one is supplied. Instances are not
    thread-safe.
    """

    def __init__(
        self,
        provider_source: Optional[ProviderSource] = None,
        *,
        access_policy: Optional[AccessPolicy] = None,
        scope: Optional[DiscoveryScope] = None,
        caller_context: Optional[object] = None,
        diagnostics: Optional[DiagnosticHook] = None,
        bindings: Optional[MutableMapping[str, Any]] = None,
    ) -> None:
        self._provider_source = provider_source or EntryPointProviderSource()
        self._access_policy = access_policy or AllowAllPolicy()
        self._diagnostics = diagnostics
        self._bindings: MutableMapping[str, Any] = bindings if bindings is not None else Bindings()
        self._registry = EngineRegistry()

        if scope is None:
            scope = self._select_scope(caller_context)
        self.scope = scope

        with ExitStack() as stack:
            try:
                stack.enter_context(self._access_policy.privileged())
            except Exception as exc:
                self._report("enumerate", f"Can't enter privileged discovery: {exc}", exc)
            else:
                self._discover(scope)

    def _select_scope(self, caller_context: Optional[object]) -> DiscoveryScope:
        try:
            return self._access_policy.select_scope(caller_context)
        except Exception as exc:
            self._report(
                "policy", f"Caller check failed, restricting discovery: {exc}", exc
            )
            return DiscoveryScope.INSTALLED

    def _discover(self, scope: DiscoveryScope) -> None:
        try:
            factories = iter(self._provider_source.enumerate(scope))
        except Exception as exc:
            # Manual registration still works with nothing discovered.
            self._report("enumerate", f"Can't find engine factory providers: {exc}", exc)
            return

        while True:
            try:
                factory = next(factories)
            except StopIteration:
                break
            except ProviderElementError as exc:
                self._report("load", f"Skipping engine factory provider: {exc}", exc)
                continue
            except Exception as exc:
                self._report("enumerate", f"Engine factory enumeration aborted: {exc}", exc)
                break
            self._registry.add_discovered(factory)

        logger.debug(
            "Discovered %d engine factories (scope=%s)", len(self._registry), scope.value
        )

    def _report(
        self,
        stage: str,
        message: str,
        error: Optional[BaseException] = None,
        *,
        factory: Optional[EngineFactory] = None,
        key: Optional[str] = None,
    ) -> None:
        logger.debug(message, exc_info=error is not None)
        if self._diagnostics is None:
            return
        try:
            self._diagnostics(
                Diagnostic(stage=stage, message=message, error=error, factory=factory, key=key)
            )
        except Exception:
            logger.debug("Diagnostics hook failed on %s event", stage, exc_info=True)

    def get_engine(self, domain: KeyDomain, key: str) -> Optional[ScriptEngine]:
        """Resolve ``key`` within ``domain``; ``None`` when nothing matches.

        The override registered for ``key`` is tried first. If there is none,
        or it fails to build an engine, discovered factories advertising
        ``key`` are tried in turn. Which discovered factory wins when several
        advertise the same key is unspecified; register an override to pin
        it.
        """
        if key is None:
            raise TypeError(f"Engine {domain.value} cannot be None")

        override = self._registry.override(domain, key)
        if override is not None:
            engine = self._instantiate(override, key)
            if engine is not None:
                return engine

        for factory in self._registry.discovered():
            try:
                advertised = domain.advertised_keys(factory)
                matches = advertised is not None and key in advertised
            except Exception as exc:
                self._report(
                    "metadata",
                    f"Engine factory {factory!r} failed to report its {domain.value}s: {exc}",
                    exc,
                    factory=factory,
                    key=key,
                )
                continue
            if not matches:
                continue
            engine = self._instantiate(factory, key)
            if engine is not None:
                return engine

        return None

    def _instantiate(self, factory: EngineFactory, key: str) -> Optional[ScriptEngine]:
        try:
            engine = factory.create_engine()
            engine.bind_global_scope(self._bindings)
        except Exception as exc:
            self._report(
                "create",
                f"Engine factory {factory!r} failed to create an engine: {exc}",
                exc,
                factory=factory,
                key=key,
            )
            return None
        return engine

    def get_engine_by_name(self, short_name: str) -> Optional[ScriptEngine]:
        """Look up an engine by one of its short names."""
        return self.get_engine(KeyDomain.NAME, short_name)

    def get_engine_by_extension(self, extension: str) -> Optional[ScriptEngine]:
        """Look up an engine by file extension, e.g. ``"py"``."""
        return self.get_engine(KeyDomain.EXTENSION, extension)

    def get_engine_by_mime_type(self, mime_type: str) -> Optional[ScriptEngine]:
        """Look up an engine by mime type."""
        return self.get_engine(KeyDomain.MIME_TYPE, mime_type)

    def get_engine_factories(self) -> Tuple[EngineFactory, ...]:
        """Snapshot of the discovered factories.

        Factories only registered as overrides are not included.
        """
        return self._registry.snapshot()

    def register_engine_name(self, name: str, factory: EngineFactory) -> None:
        self._registry.register(KeyDomain.NAME, name, factory)

    def register_engine_extension(self, extension: str, factory: EngineFactory) -> None:
        self._registry.register(KeyDomain.EXTENSION, extension, factory)

    def register_engine_mime_type(self, mime_type: str, factory: EngineFactory) -> None:
        self._registry.register(KeyDomain.MIME_TYPE, mime_type, factory)

    def set_bindings(self, bindings: MutableMapping[str, Any]) -> None:
        """Replace the global scope used for engines created from now on."""
        if bindings is None:
            raise ValueError("Global scope cannot be None")
        self._bindings = bindings

    def get_bindings(self) -> MutableMapping[str, Any]:
        return self._bindings

    def put(self, key: str, value: Any) -> None:
        self._bindings[key] = value

    def get(self, key: str) -> Any:
        return self._bindings.get(key)
