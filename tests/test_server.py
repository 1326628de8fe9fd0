"""Tests for the HTTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from tests.helpers import Spy, make_service, make_tool
from toolproxy.server import create_app


def rpc(method, params=None, id=1):
    message = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        message["params"] = params
    return message


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_returns_metadata(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"] == ["demo", "ops"]
        assert data["toolCount"] == 6
        assert "tools/call" in data["methods"]


class TestJSONRPCEndpoint:
    """Tests for POST /mcp."""

    def test_initialize(self, client):
        response = client.post("/mcp", json=rpc("initialize", {"protocolVersion": "2024-11-05"}))
        assert response.status_code == 200
        assert response.json()["result"]["protocolVersion"] == "2024-11-05"

    def test_call_round_trip(self, client):
        response = client.post(
            "/mcp", json=rpc("tools/call", {"name": "add-numbers", "arguments": {"a": 2, "b": 3}})
        )
        assert response.json() == {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {"content": [{"type": "text", "text": "2 + 3 = 5"}]},
        }

    def test_spy_receives_arguments_once(self, client, spy):
        client.post("/mcp", json=rpc("tools/call", {"name": "spy", "arguments": {"text": "x"}}))
        assert spy.calls == [{"text": "x"}]

    def test_handler_failure_is_isolated(self, client):
        replies = client.post(
            "/mcp",
            json=[
                rpc("tools/call", {"name": "boom", "arguments": {"text": "x"}}, id=1),
                rpc("tools/call", {"name": "echo", "arguments": {"text": "y"}}, id=2),
            ],
        ).json()
        assert replies[0]["error"]["code"] == -32603
        assert replies[0]["error"]["message"] == "upstream exploded"
        assert replies[1]["result"]["content"][0]["text"] == "Echo: y"

    def test_timeout(self, client):
        reply = client.post("/mcp", json=rpc("tools/call", {"name": "slow", "arguments": {"text": "x"}})).json()
        assert reply["error"]["code"] == -32001
        assert reply["error"]["data"] == {"name": "slow", "timeout": 0.5}

    def test_parse_error(self, client):
        response = client.post("/mcp", content=b"{not json", headers={"content-type": "application/json"})
        assert response.status_code == 200
        body = response.json()
        assert body["error"]["code"] == -32700
        assert body["id"] is None

    def test_notification_is_accepted(self, client):
        response = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert response.status_code == 202
        assert response.content == b""

    def test_supported_version_header(self, client):
        response = client.post("/mcp", json=rpc("ping"), headers={"MCP-Protocol-Version": "2025-03-26"})
        assert response.json()["result"] == {}

    def test_unsupported_version_header(self, client):
        response = client.post("/mcp", json=rpc("ping"), headers={"MCP-Protocol-Version": "2020-01-01"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32000


class TestToolsEndpoint:
    """Tests for the REST views."""

    def test_list_tools(self, client):
        response = client.get("/v1/tools")
        assert response.status_code == 200
        tools = response.json()["tools"]
        assert [t["name"] for t in tools] == ["echo", "add-numbers", "current-time", "spy", "boom", "slow"]
        for tool in tools:
            assert {"name", "description", "inputSchema", "annotations", "service"} <= set(tool)

    def test_list_prompts(self, client):
        prompts = client.get("/v1/prompts").json()["prompts"]
        assert prompts[0]["name"] == "summarize"
        assert prompts[0]["service"] == "demo"

    def test_invoke_tool(self, client):
        response = client.post("/v1/tools/echo", json={"arguments": {"text": "Hello"}})
        assert response.status_code == 200
        assert response.json()["content"][0]["text"] == "Echo: Hello"

    def test_invoke_without_body(self, client):
        response = client.post("/v1/tools/current-time")
        assert response.status_code == 200

    @pytest.mark.parametrize(
        ("tool", "arguments", "status", "code"),
        [
            ("nonexistent", {}, 404, -32601),
            ("echo", {}, 422, -32602),
            ("boom", {"text": "x"}, 500, -32603),
            ("slow", {"text": "x"}, 504, -32001),
        ],
    )
    def test_invoke_errors(self, client, tool, arguments, status, code):
        response = client.post(f"/v1/tools/{tool}", json={"arguments": arguments})
        assert response.status_code == status
        assert response.json()["error"]["code"] == code


class TestResourcesEndpoint:
    """Tests for the resource REST views."""

    def test_list_resources(self, client):
        resources = client.get("/v1/resources").json()["resources"]
        assert [(r["name"], r["service"]) for r in resources] == [("demo:readme", "demo")]

    def test_read_resource(self, client):
        response = client.get("/v1/resources/read", params={"uri": "toolproxy://demo/readme"})
        assert response.status_code == 200
        assert response.json()["contents"][0]["text"].startswith("# demo")

    def test_read_unknown_resource(self, client):
        response = client.get("/v1/resources/read", params={"uri": "toolproxy://nowhere"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == -32005


class TestUnencodableResults:
    """A handler result that cannot be JSON-encoded fails that call only."""

    @pytest.fixture
    def cyclic_client(self, settings):
        cyclic: dict = {}
        cyclic["self"] = cyclic
        service = make_service("loops", make_tool("cyclic", Spy(result=cyclic)))
        app = create_app(settings=settings, services=[service])
        with TestClient(app) as test_client:
            yield test_client

    def test_rest_call_returns_500(self, cyclic_client):
        response = cyclic_client.post("/v1/tools/cyclic", json={"arguments": {"text": "x"}})
        assert response.status_code == 500
        assert response.json()["error"]["code"] == -32603

    def test_rpc_call_returns_internal_error(self, cyclic_client):
        message = rpc("tools/call", {"name": "cyclic", "arguments": {"text": "x"}})
        response = cyclic_client.post("/mcp", json=message)
        assert response.status_code == 200
        assert response.json()["error"]["data"] == {"name": "cyclic"}


class TestAppFactory:
    """Startup and shutdown behaviour."""

    def test_custom_base_path(self, settings):
        settings.base_path = "/rpc"
        with TestClient(create_app(settings=settings, services=[])) as client:
            assert client.post("/rpc", json=rpc("ping")).json()["result"] == {}
            assert client.post("/mcp", json=rpc("ping")).status_code in (404, 405)

    def test_builtin_services_loaded_from_settings(self, settings):
        with TestClient(create_app(settings=settings)) as client:
            assert client.get("/health").json()["services"] == ["demo"]

    def test_registry_cleared_on_shutdown(self, settings):
        app = create_app(settings=settings)
        with TestClient(app):
            assert len(app.state.registry) == 1
        assert len(app.state.registry) == 0
