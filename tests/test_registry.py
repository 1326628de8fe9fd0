"""Tests for services and the service registry."""

import threading

import pytest

from tests.helpers import Spy, make_resource, make_service, make_tool
from toolproxy.errors import (
    AmbiguousTool,
    DuplicateServiceName,
    InvalidService,
    MethodNotFound,
    NotFound,
)
from toolproxy.metrics import metrics
from toolproxy.services import NamingPolicy, Prompt, Service, ServiceRegistry


class TestService:
    """Tests for Service declarations."""

    def test_from_handlers_builds_tools(self):
        service = Service.from_handlers(
            "svc",
            tools=[
                {
                    "name": "echo",
                    "description": "Echo",
                    "inputSchema": {"type": "object", "properties": {}},
                    "annotations": {"readOnlyHint": True},
                }
            ],
            handlers={"echo": Spy()},
        )
        assert [t.name for t in service.tools] == ["echo"]
        assert service.tools[0].annotations.read_only_hint is True

    def test_from_handlers_rejects_tool_without_handler(self):
        with pytest.raises(InvalidService) as exc:
            Service.from_handlers("svc", tools=[{"name": "a"}, {"name": "b"}], handlers={"a": Spy()})
        assert exc.value.data["missing_handlers"] == ["b"]

    def test_from_handlers_rejects_handler_without_tool(self):
        with pytest.raises(InvalidService) as exc:
            Service.from_handlers("svc", tools=[], handlers={"orphan": Spy()})
        assert exc.value.data["orphaned_handlers"] == ["orphan"]

    def test_problems_reports_bad_schema(self):
        service = make_service(
            "svc",
            make_tool("bad", Spy(), {"type": "object", "properties": {}, "required": ["x"]}),
        )
        assert service.problems() == ["tool 'bad': required properties not declared: x"]

    def test_problems_reports_duplicate_tool_names(self):
        service = make_service("svc", make_tool("a", Spy()), make_tool("a", Spy()))
        assert "duplicate tool name 'a'" in service.problems()

    def test_problems_reports_resource_conflicts(self):
        service = make_service(
            "svc",
            resources=[
                make_resource("a", Spy(), uri="test://same"),
                make_resource("b", Spy(), uri="test://same"),
                make_resource("c", "not a reader", uri=""),
            ],
        )
        assert service.problems() == [
            "duplicate resource uri 'test://same'",
            "resource 'c': uri must not be empty",
            "resource 'c': reader is not callable",
        ]


class TestRegistration:
    """Tests for register/unregister."""

    def test_register_and_resolve(self, registry):
        entry = registry.resolve("echo")
        assert entry.service.name == "demo"
        assert entry.item.name == "echo"

    def test_resolve_returns_handler_reference_not_copy(self):
        handler = Spy()
        registry = ServiceRegistry([make_service("svc", make_tool("t", handler))])
        assert registry.resolve("t").item.handler is handler

    def test_duplicate_service_name_rejected(self, registry):
        """The original registration stays active after a rejected duplicate."""
        with pytest.raises(DuplicateServiceName):
            registry.register(make_service("demo", make_tool("other", Spy())))
        assert registry.resolve("echo").item.name == "echo"
        with pytest.raises(MethodNotFound):
            registry.resolve("other")

    def test_invalid_service_rejected(self, registry):
        bad = make_service("bad", make_tool("t", Spy(), {"type": "array"}))
        with pytest.raises(InvalidService):
            registry.register(bad)
        assert "bad" not in registry

    def test_invalid_pattern_rejected_at_registration(self, registry):
        schema = {"type": "object", "properties": {"id": {"type": "string", "pattern": "(?P<"}}}
        with pytest.raises(InvalidService) as exc:
            registry.register(make_service("bad", make_tool("t", Spy(), schema)))
        assert exc.value.data["problems"][0].startswith("tool 't': id: invalid pattern")
        assert "bad" not in registry

    def test_unregister_removes_tools_and_prompts(self, registry):
        assert registry.get("demo") is not None
        removed = registry.unregister("demo")
        assert removed.name == "demo"
        assert registry.get("demo") is None
        assert registry.list_tools() == []
        assert registry.list_prompts() == []
        with pytest.raises(MethodNotFound):
            registry.resolve("echo")

    def test_unregister_unknown_service(self, registry):
        with pytest.raises(NotFound):
            registry.unregister("ghost")

    def test_clear(self, registry):
        registry.register(make_service("other", make_tool("t", Spy())))
        registry.clear()
        assert len(registry) == 0

    def test_registry_size_gauges(self, registry):
        stats = metrics.get_stats()
        assert stats["gauges"]["toolproxy_registered_services"][""] == 1
        assert stats["gauges"]["toolproxy_registered_tools"][""] == 3


class TestDiscovery:
    """Tests for list_tools/list_prompts."""

    def test_every_tool_listed_exactly_once(self):
        services = [
            make_service("one", make_tool("a", Spy()), make_tool("b", Spy())),
            make_service("two", make_tool("c", Spy())),
        ]
        registry = ServiceRegistry(services)
        names = [t.name for t in registry.list_tools()]
        assert names == ["a", "b", "c"]

    def test_order_follows_registration_then_declaration(self):
        registry = ServiceRegistry()
        registry.register(make_service("late", make_tool("z", Spy()), make_tool("y", Spy())))
        registry.register(make_service("early", make_tool("x", Spy())))
        assert [(t.service, t.name) for t in registry.list_tools()] == [
            ("late", "z"),
            ("late", "y"),
            ("early", "x"),
        ]

    def test_definitions_carry_hints_and_schema(self, registry):
        echo = next(t for t in registry.list_tools() if t.name == "echo")
        wire = echo.to_wire()
        assert wire["inputSchema"]["required"] == ["text"]
        assert wire["annotations"] == {"readOnlyHint": True, "openWorldHint": False}
        assert wire["service"] == "demo"

    def test_list_prompts(self, registry):
        prompts = registry.list_prompts()
        assert [p.name for p in prompts] == ["summarize"]
        args = {a.name: a.required for a in prompts[0].arguments}
        assert args == {"text": True, "style": False}

    def test_resolve_prompt(self, registry):
        assert registry.resolve_prompt("summarize").service.name == "demo"
        with pytest.raises(MethodNotFound):
            registry.resolve_prompt("echo")


class TestNamingPolicy:
    """Tests for identically named tools across services."""

    def test_reject_policy_raises_ambiguous_tool(self):
        registry = ServiceRegistry([make_service("one", make_tool("search", Spy()))])
        with pytest.raises(AmbiguousTool) as exc:
            registry.register(make_service("two", make_tool("search", Spy())))
        assert exc.value.data["services"] == ["one", "two"]
        assert "two" not in registry
        assert registry.resolve("search").service.name == "one"

    def test_reject_policy_applies_to_prompts(self):
        prompt = Prompt(name="p", description="", template="x")
        registry = ServiceRegistry([Service(name="one", prompts=(prompt,))])
        with pytest.raises(AmbiguousTool):
            registry.register(Service(name="two", prompts=(prompt,)))

    def test_qualify_policy_exposes_later_tool_qualified(self):
        first, second = Spy(), Spy()
        registry = ServiceRegistry(policy=NamingPolicy.QUALIFY)
        registry.register(make_service("one", make_tool("search", first)))
        registry.register(make_service("two", make_tool("search", second)))

        assert [t.name for t in registry.list_tools()] == ["search", "two.search"]
        assert registry.resolve("search").item.handler is first
        assert registry.resolve("two.search").item.handler is second
        assert registry.resolve("one.search").item.handler is first

    def test_qualified_names_are_stable_after_unregister(self):
        registry = ServiceRegistry(policy="qualify")
        registry.register(make_service("one", make_tool("search", Spy())))
        registry.register(make_service("two", make_tool("search", Spy())))
        registry.unregister("one")
        assert [t.name for t in registry.list_tools()] == ["two.search"]
        with pytest.raises(MethodNotFound):
            registry.resolve("search")


class TestConcurrentAccess:
    """Readers never see a partially registered service."""

    def test_readers_see_whole_services(self):
        registry = ServiceRegistry(policy=NamingPolicy.QUALIFY)
        tools_per_service = 20
        stop = threading.Event()
        torn: list[int] = []

        def reader():
            while not stop.is_set():
                counts: dict[str, int] = {}
                for tool in registry.list_tools():
                    counts[tool.service] = counts.get(tool.service, 0) + 1
                torn.extend(c for c in counts.values() if c != tools_per_service)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        try:
            for n in range(30):
                tools = [make_tool(f"t{i}", Spy()) for i in range(tools_per_service)]
                registry.register(make_service(f"s{n}", *tools))
                if n % 3 == 0:
                    registry.unregister(f"s{n}")
        finally:
            stop.set()
            for thread in threads:
                thread.join()

        assert torn == []


class TestResources:
    """Resources are listed as service:name and resolved by URI."""

    def test_demo_readme_listed(self, registry):
        [readme] = registry.list_resources()
        assert readme.to_wire() == {
            "uri": "toolproxy://demo/readme",
            "name": "demo:readme",
            "title": "Demo readme",
            "description": "What the demo service offers.",
            "mimeType": "text/markdown",
            "service": "demo",
        }

    def test_resolve_by_uri(self):
        reader = Spy()
        registry = ServiceRegistry([make_service("files", resources=[make_resource("notes", reader)])])
        entry = registry.resolve_resource("test://notes")
        assert entry.exposed_name == "files:notes"
        assert entry.item.reader is reader

    def test_unknown_uri_is_not_found(self, registry):
        with pytest.raises(NotFound) as exc:
            registry.resolve_resource("toolproxy://demo/missing")
        assert exc.value.data == {"uri": "toolproxy://demo/missing"}

    @pytest.mark.parametrize("policy", list(NamingPolicy))
    def test_uri_collision_rejected_under_any_policy(self, policy):
        registry = ServiceRegistry(
            [make_service("one", resources=[make_resource("doc", Spy(), uri="test://doc")])],
            policy=policy,
        )
        with pytest.raises(AmbiguousTool) as exc:
            registry.register(make_service("two", resources=[make_resource("doc", Spy(), uri="test://doc")]))
        assert exc.value.data == {"uri": "test://doc", "services": ["one", "two"]}
        assert "two" not in registry

    def test_same_name_different_uri_allowed(self):
        registry = ServiceRegistry(
            [
                make_service("one", resources=[make_resource("doc", Spy(), uri="test://one/doc")]),
                make_service("two", resources=[make_resource("doc", Spy(), uri="test://two/doc")]),
            ]
        )
        assert [r.name for r in registry.list_resources()] == ["one:doc", "two:doc"]

    def test_unregister_removes_resources(self, registry):
        registry.unregister("demo")
        assert registry.list_resources() == []
        with pytest.raises(NotFound):
            registry.resolve_resource("toolproxy://demo/readme")
