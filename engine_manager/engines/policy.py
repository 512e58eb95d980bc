"""Access policies deciding which discovery scope a manager may use."""

from __future__ import annotations

from contextlib import nullcontext
from typing import ContextManager, Iterable, Optional, Tuple

from ..core.models import DiscoveryScope


class AccessPolicy:
    """Selects the discovery scope from the constructing caller's context."""

    def select_scope(self, caller_context: Optional[object] = None) -> DiscoveryScope:
        return DiscoveryScope.FULL

    def privileged(self) -> ContextManager[None]:
        """Context entered while discovery runs on the caller's behalf."""
        return nullcontext()


class AllowAllPolicy(AccessPolicy):
    """Always grant full discovery."""


class InstalledOnlyPolicy(AccessPolicy):
    """Restrict discovery to factories installed with the interpreter."""

    def select_scope(self, caller_context: Optional[object] = None) -> DiscoveryScope:
        return DiscoveryScope.INSTALLED


class TrustedCallerPolicy(AccessPolicy):
    """Grant full discovery to callers whose module name is trusted.

    ``caller_context`` is expected to be a dotted module name; anything else
    falls back to installed-only discovery.
    """

    def __init__(self, trusted_prefixes: Iterable[str]) -> None:
        self.trusted_prefixes: Tuple[str, ...] = tuple(trusted_prefixes)

    def select_scope(self, caller_context: Optional[object] = None) -> DiscoveryScope:
        if isinstance(caller_context, str) and any(
            caller_context == prefix or caller_context.startswith(prefix + ".")
            for prefix in self.trusted_prefixes
        ):
            return DiscoveryScope.FULL
        return DiscoveryScope.INSTALLED
