from typing import Iterable, List, Optional, Sequence

import pytest

from engine_manager.core.engine_base import EngineError, EngineFactory, ScriptEngine
from engine_manager.core.models import Bindings, Diagnostic, DiscoveryScope, KeyDomain
from engine_manager.engines import (
    AccessPolicy,
    EngineManager,
    InstalledOnlyPolicy,
    ProviderElementError,
    ProviderSource,
    StaticProviderSource,
)


class FakeEngine(ScriptEngine):
    def __init__(self, factory: "FakeFactory") -> None:
        super().__init__(factory)
        self.bind_calls = 0

    def bind_global_scope(self, scope) -> None:
        self.bind_calls += 1
        super().bind_global_scope(scope)

    def eval(self, script, bindings=None):
        return script


class FakeFactory(EngineFactory):
    def __init__(
        self,
        label: str,
        *,
        names: Optional[Sequence[str]] = (),
        extensions: Optional[Sequence[str]] = (),
        mime_types: Optional[Sequence[str]] = (),
        fail_create: bool = False,
        fail_metadata: bool = False,
    ) -> None:
        self.engine_name = label
        self._names = names
        self._extensions = extensions
        self._mime_types = mime_types
        self.fail_create = fail_create
        self.fail_metadata = fail_metadata
        self.created = 0

    def _metadata(self, values):
        if self.fail_metadata:
            raise RuntimeError(f"{self.engine_name} metadata unavailable")
        return values

    def names(self):
        return self._metadata(self._names)

    def extensions(self):
        return self._metadata(self._extensions)

    def mime_types(self):
        return self._metadata(self._mime_types)

    def create_engine(self) -> FakeEngine:
        if self.fail_create:
            raise EngineError(f"{self.engine_name} cannot start")
        self.created += 1
        return FakeEngine(self)


class ScriptedIterator:
    """Yields factories; exception instances in ``items`` are raised instead."""

    def __init__(self, items: Iterable[object]) -> None:
        self._items = iter(items)

    def __iter__(self):
        return self

    def __next__(self):
        item = next(self._items)
        if isinstance(item, BaseException):
            raise item
        return item


class ScriptedProviderSource(ProviderSource):
    def __init__(self, items: Iterable[object] = (), fail_enumerate: bool = False) -> None:
        self.items = list(items)
        self.fail_enumerate = fail_enumerate
        self.scopes: List[DiscoveryScope] = []

    def enumerate(self, scope):
        self.scopes.append(scope)
        if self.fail_enumerate:
            raise OSError("provider index unreadable")
        return ScriptedIterator(self.items)


def make_manager(*factories: EngineFactory, **kwargs) -> EngineManager:
    return EngineManager(StaticProviderSource(factories), **kwargs)


def test_override_wins_over_discovered_factory():
    discovered = FakeFactory("discovered", names=["js"])
    override = FakeFactory("override")
    manager = make_manager(discovered)

    manager.register_engine_name("js", override)

    engine = manager.get_engine_by_name("js")
    assert engine.factory is override
    assert discovered.created == 0


def test_override_registration_is_last_write_wins():
    first = FakeFactory("first")
    second = FakeFactory("second")
    manager = make_manager()

    manager.register_engine_extension("js", first)
    manager.register_engine_extension("js", second)

    assert manager.get_engine_by_extension("js").factory is second


def test_override_need_not_be_discovered_and_is_not_exported():
    override = FakeFactory("manual")
    manager = make_manager()

    manager.register_engine_mime_type("text/x-manual", override)

    assert manager.get_engine_by_mime_type("text/x-manual").factory is override
    assert manager.get_engine_factories() == ()


def test_failing_override_falls_back_to_discovery():
    discovered = FakeFactory("discovered", names=["js"])
    broken = FakeFactory("broken", fail_create=True)
    diagnostics: List[Diagnostic] = []
    manager = make_manager(discovered, diagnostics=diagnostics.append)
    manager.register_engine_name("js", broken)

    engine = manager.get_engine_by_name("js")

    assert engine.factory is discovered
    assert [d.stage for d in diagnostics] == ["create"]
    assert diagnostics[0].factory is broken
    assert diagnostics[0].key == "js"


@pytest.mark.parametrize(
    "register",
    ["register_engine_name", "register_engine_extension", "register_engine_mime_type"],
)
def test_registration_rejects_none_and_leaves_state_unchanged(register):
    original = FakeFactory("original")
    manager = make_manager()
    getattr(manager, register)("key", original)

    with pytest.raises(TypeError):
        getattr(manager, register)(None, FakeFactory("other"))
    with pytest.raises(TypeError):
        getattr(manager, register)("key", None)

    domain = {
        "register_engine_name": KeyDomain.NAME,
        "register_engine_extension": KeyDomain.EXTENSION,
        "register_engine_mime_type": KeyDomain.MIME_TYPE,
    }[register]
    assert manager.get_engine(domain, "key").factory is original


@pytest.mark.parametrize(
    "lookup",
    ["get_engine_by_name", "get_engine_by_extension", "get_engine_by_mime_type"],
)
def test_lookup_rejects_none_key(lookup):
    manager = make_manager(FakeFactory("any", names=["x"]))
    with pytest.raises(TypeError):
        getattr(manager, lookup)(None)


def test_lookups_resolve_each_domain_independently():
    factory = FakeFactory(
        "python", names=["python", "py3"], extensions=["py"], mime_types=["text/x-python"]
    )
    manager = make_manager(factory)

    assert manager.get_engine_by_name("py3").factory is factory
    assert manager.get_engine_by_extension("py").factory is factory
    assert manager.get_engine_by_mime_type("text/x-python").factory is factory
    # A key from one domain does not match in another.
    assert manager.get_engine_by_name("py") is None
    assert manager.get_engine_by_extension("python") is None


def test_missing_engine_returns_none_without_raising():
    manager = make_manager(FakeFactory("python", names=["python"]))
    assert manager.get_engine_by_name("nonexistent") is None
    assert manager.get_engine_by_extension("nonexistent") is None
    assert manager.get_engine_by_mime_type("nonexistent") is None


def test_factory_with_failing_metadata_is_skipped():
    broken = FakeFactory("broken", fail_metadata=True)
    good = FakeFactory("good", names=["ruby"])
    diagnostics: List[Diagnostic] = []
    manager = make_manager(broken, good, diagnostics=diagnostics.append)

    # Nothing advertises "cobol", so every factory is scanned exactly once.
    assert manager.get_engine_by_name("cobol") is None
    assert [d.stage for d in diagnostics] == ["metadata"]
    assert diagnostics[0].factory is broken
    assert diagnostics[0].key == "cobol"

    assert manager.get_engine_by_name("ruby").factory is good


def test_absent_metadata_is_no_match():
    silent = FakeFactory("silent", names=None, extensions=None, mime_types=None)
    manager = make_manager(silent)

    assert manager.get_engine_by_name("anything") is None
    assert manager.get_engine_by_extension("anything") is None
    assert manager.get_engine_by_mime_type("anything") is None


def test_factory_failing_to_create_does_not_stop_the_scan():
    broken = FakeFactory("broken", names=["lua"], fail_create=True)
    good = FakeFactory("good", names=["lua"])
    manager = make_manager(broken, good)

    engine = manager.get_engine_by_name("lua")
    assert engine is not None
    assert engine.factory is good


def test_all_candidates_failing_returns_none():
    manager = make_manager(FakeFactory("broken", names=["lua"], fail_create=True))
    assert manager.get_engine_by_name("lua") is None


def test_one_of_several_matching_factories_wins():
    first = FakeFactory("first", names=["js"])
    second = FakeFactory("second", names=["js"])
    manager = make_manager(first, second)

    assert manager.get_engine_by_name("js").factory in (first, second)


def test_engine_is_bound_exactly_once_to_current_bindings():
    manager = make_manager(FakeFactory("python", names=["python"]))
    manager.put("x", 1)

    engine = manager.get_engine_by_name("python")

    assert engine.bind_calls == 1
    assert engine.global_scope is manager.get_bindings()
    assert engine.global_scope["x"] == 1


def test_put_and_get_operate_on_live_bindings():
    manager = make_manager()
    manager.put("x", 1)
    assert manager.get("x") == 1

    manager.get_bindings()["y"] = 2
    assert manager.get("y") == 2
    assert manager.get("missing") is None


def test_set_bindings_swaps_reference_without_rebinding_old_engines():
    manager = make_manager(FakeFactory("python", names=["python"]))
    before = manager.get_engine_by_name("python")
    old_scope = manager.get_bindings()

    new_scope = Bindings({"answer": 42})
    manager.set_bindings(new_scope)
    after = manager.get_engine_by_name("python")

    assert manager.get_bindings() is new_scope
    assert before.global_scope is old_scope
    assert after.global_scope is new_scope
    assert manager.get("answer") == 42


def test_set_bindings_accepts_plain_dict():
    manager = make_manager()
    scope = {}
    manager.set_bindings(scope)
    manager.put("k", "v")
    assert scope == {"k": "v"}


def test_set_bindings_rejects_none():
    manager = make_manager()
    current = manager.get_bindings()

    with pytest.raises(ValueError):
        manager.set_bindings(None)

    assert manager.get_bindings() is current


def test_initial_bindings_are_used():
    scope = Bindings({"preset": True})
    manager = make_manager(bindings=scope)
    assert manager.get_bindings() is scope


def test_engine_factories_snapshot_is_detached():
    factory = FakeFactory("python", names=["python"])
    manager = make_manager(factory)

    factories = manager.get_engine_factories()
    assert factories == (factory,)
    with pytest.raises(AttributeError):
        factories.append(FakeFactory("other"))  # type: ignore[attr-defined]

    copied = list(factories)
    copied.clear()
    assert manager.get_engine_by_name("python").factory is factory
    assert manager.get_engine_factories() == (factory,)


def test_discovery_deduplicates_by_identity_only():
    factory = FakeFactory("same", names=["x"])
    twin = FakeFactory("same", names=["x"])
    manager = make_manager(factory, factory, twin)

    factories = manager.get_engine_factories()
    assert len(factories) == 2
    assert {id(f) for f in factories} == {id(factory), id(twin)}


def test_element_failure_is_skipped_during_discovery():
    good = FakeFactory("good", names=["js"])
    diagnostics: List[Diagnostic] = []
    source = ScriptedProviderSource(
        [ProviderElementError("bad entry"), good], fail_enumerate=False
    )

    manager = EngineManager(source, diagnostics=diagnostics.append)

    assert manager.get_engine_factories() == (good,)
    assert [d.stage for d in diagnostics] == ["load"]


def test_enumeration_failure_stops_discovery_but_keeps_partial_results():
    first = FakeFactory("first", names=["a"])
    never = FakeFactory("never", names=["b"])
    diagnostics: List[Diagnostic] = []
    source = ScriptedProviderSource([first, RuntimeError("index corrupted"), never])

    manager = EngineManager(source, diagnostics=diagnostics.append)

    assert manager.get_engine_factories() == (first,)
    assert manager.get_engine_by_name("b") is None
    assert [d.stage for d in diagnostics] == ["enumerate"]


def test_unavailable_provider_source_leaves_manual_mode():
    diagnostics: List[Diagnostic] = []
    manager = EngineManager(
        ScriptedProviderSource(fail_enumerate=True), diagnostics=diagnostics.append
    )

    assert manager.get_engine_factories() == ()
    assert isinstance(diagnostics[0].error, OSError)

    manual = FakeFactory("manual")
    manager.register_engine_name("manual", manual)
    assert manager.get_engine_by_name("manual").factory is manual


def test_access_policy_selects_scope_and_wraps_discovery():
    events: List[str] = []

    class RecordingPolicy(AccessPolicy):
        def select_scope(self, caller_context=None):
            events.append(f"select:{caller_context}")
            return DiscoveryScope.INSTALLED

        def privileged(self):
            policy_events = events

            class _Context:
                def __enter__(self):
                    policy_events.append("enter")

                def __exit__(self, *exc_info):
                    policy_events.append("exit")
                    return False

            return _Context()

    source = ScriptedProviderSource()
    manager = EngineManager(source, access_policy=RecordingPolicy(), caller_context="app")

    assert manager.scope is DiscoveryScope.INSTALLED
    assert source.scopes == [DiscoveryScope.INSTALLED]
    assert events == ["select:app", "enter", "exit"]


def test_explicit_scope_bypasses_access_policy():
    source = ScriptedProviderSource()
    manager = EngineManager(source, access_policy=InstalledOnlyPolicy(), scope=DiscoveryScope.FULL)

    assert manager.scope is DiscoveryScope.FULL
    assert source.scopes == [DiscoveryScope.FULL]


def test_managers_do_not_share_state():
    first = make_manager()
    second = make_manager()

    first.put("x", 1)
    first.register_engine_name("only-first", FakeFactory("f"))

    assert second.get("x") is None
    assert second.get_engine_by_name("only-first") is None


def test_bare_string_metadata_is_a_single_key():
    factory = FakeFactory("python", names="python", extensions="py")
    manager = make_manager(factory)

    assert manager.get_engine_by_name("py") is None
    assert manager.get_engine_by_name("python").factory is factory
    assert manager.get_engine_by_extension("p") is None
    assert manager.get_engine_by_extension("py").factory is factory


def test_raising_diagnostics_hook_does_not_stop_resolution():
    def explode(diagnostic):
        raise RuntimeError("hook is broken")

    broken = FakeFactory("broken", names=["lua"], fail_create=True)
    good = FakeFactory("good", names=["lua"])
    manager = make_manager(broken, good, diagnostics=explode)

    assert manager.get_engine_by_name("lua").factory is good


def test_raising_diagnostics_hook_does_not_break_construction():
    def explode(diagnostic):
        raise RuntimeError("hook is broken")

    good = FakeFactory("good", names=["js"])
    manager = EngineManager(
        ScriptedProviderSource([ProviderElementError("bad entry"), good]), diagnostics=explode
    )

    assert manager.get_engine_factories() == (good,)


def test_failing_caller_check_falls_back_to_installed_scope():
    class DenyingPolicy(AccessPolicy):
        def select_scope(self, caller_context=None):
            raise PermissionError("caller check failed")

    good = FakeFactory("good", names=["js"])
    source = ScriptedProviderSource([good])
    diagnostics: List[Diagnostic] = []

    manager = EngineManager(source, access_policy=DenyingPolicy(), diagnostics=diagnostics.append)

    assert manager.scope is DiscoveryScope.INSTALLED
    assert source.scopes == [DiscoveryScope.INSTALLED]
    assert manager.get_engine_by_name("js").factory is good
    assert [d.stage for d in diagnostics] == ["policy"]
    assert isinstance(diagnostics[0].error, PermissionError)


def test_failing_privileged_context_skips_discovery():
    class NoPrivilegePolicy(AccessPolicy):
        def privileged(self):
            raise PermissionError("cannot elevate")

    source = ScriptedProviderSource([FakeFactory("never", names=["js"])])
    diagnostics: List[Diagnostic] = []

    manager = EngineManager(
        source, access_policy=NoPrivilegePolicy(), diagnostics=diagnostics.append
    )

    assert manager.get_engine_factories() == ()
    assert source.scopes == []
    assert [d.stage for d in diagnostics] == ["enumerate"]

    manual = FakeFactory("manual")
    manager.register_engine_name("js", manual)
    assert manager.get_engine_by_name("js").factory is manual
