"""Built-in engine substituting ``$name`` placeholders from bindings."""

from __future__ import annotations

from collections import ChainMap
from string import Template
from typing import Any, MutableMapping, Optional, TextIO, Union

from ..core.engine_base import (
    Compilable,
    CompiledScript,
    EngineError,
    EngineFactory,
    ScriptEngine,
)


class TemplateEngine(ScriptEngine, Compilable):
    """Renders :class:`string.Template` scripts.

    Bindings passed to :meth:`eval` shadow the global scope.
    """

    def _scope(self, bindings: Optional[MutableMapping[str, Any]]) -> ChainMap:
        layers = [bindings or {}]
        if self.global_scope is not None:
            layers.append(self.global_scope)
        return ChainMap(*layers)

    def render(self, template: Template, bindings: Optional[MutableMapping[str, Any]] = None) -> str:
        try:
            return template.substitute(self._scope(bindings))
        except (KeyError, ValueError) as exc:
            raise EngineError(f"Failed to render template: {exc}") from exc

    def eval(self, script: str, bindings: Optional[MutableMapping[str, Any]] = None) -> str:
        return self.render(Template(script), bindings)

    def compile(self, script: Union[str, TextIO]) -> "CompiledTemplate":
        source = script if isinstance(script, str) else script.read()
        return CompiledTemplate(self, Template(source))


class CompiledTemplate(CompiledScript):
    """A template parsed once and rendered on demand."""

    def __init__(self, engine: TemplateEngine, template: Template) -> None:
        self._engine = engine
        self.template = template

    @property
    def engine(self) -> TemplateEngine:
        return self._engine

    def eval(self, bindings: Optional[MutableMapping[str, Any]] = None) -> str:
        return self._engine.render(self.template, bindings)


class TemplateEngineFactory(EngineFactory):
    """Factory for :class:`TemplateEngine`."""

    engine_name = "string.Template engine"
    engine_version = "1.0"
    language_name = "template"
    language_version = "1.0"

    NAMES = ("template", "string-template")
    EXTENSIONS = ("tmpl", "template")
    MIME_TYPES = ("text/x-template",)

    def names(self):
        return list(self.NAMES)

    def extensions(self):
        return list(self.EXTENSIONS)

    def mime_types(self):
        return list(self.MIME_TYPES)

    def create_engine(self) -> TemplateEngine:
        return TemplateEngine(self)

