"""Engine discovery, registry and resolution."""

from .discovery import (
    DEFAULT_ENTRY_POINT_GROUP,
    EntryPointProviderSource,
    ProviderElementError,
    ProviderError,
    ProviderSource,
    StaticProviderSource,
)
from .manager import DiagnosticHook, EngineManager
from .policy import AccessPolicy, AllowAllPolicy, InstalledOnlyPolicy, TrustedCallerPolicy
from .registry import EngineRegistry
from .template_engine import CompiledTemplate, TemplateEngine, TemplateEngineFactory

__all__ = [
    "DEFAULT_ENTRY_POINT_GROUP",
    "AccessPolicy",
    "AllowAllPolicy",
    "CompiledTemplate",
    "DiagnosticHook",
    "EngineManager",
    "EngineRegistry",
    "EntryPointProviderSource",
    "InstalledOnlyPolicy",
    "ProviderElementError",
    "ProviderError",
    "ProviderSource",
    "StaticProviderSource",
    "TemplateEngine",
    "TemplateEngineFactory",
    "TrustedCallerPolicy",
]
