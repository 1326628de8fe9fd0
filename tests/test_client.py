"""Tests for the MCP client against an in-process server."""

import pytest

from toolproxy.client import (
    InvalidArgumentsError,
    MCPClient,
    ProtocolVersionError,
    ResourceNotFoundError,
    ToolExecutionError,
    ToolNotFoundError,
)
from toolproxy.errors import MalformedArguments
from toolproxy.schemas.mcp import ToolCallParameter, ToolCallRequest


@pytest.fixture
def mcp(client) -> MCPClient:
    return MCPClient(http_client=client)


class TestDiscovery:
    def test_health(self, mcp):
        assert mcp.health()["status"] == "healthy"

    def test_initialize(self, mcp):
        result = mcp.initialize()
        assert result["protocolVersion"] == "2025-06-18"
        assert result["serverInfo"]["name"] == "toolproxy"

    def test_initialize_with_unsupported_version(self, client):
        mcp = MCPClient(http_client=client, protocol_version="2001-01-01")
        with pytest.raises(ProtocolVersionError) as exc:
            mcp.initialize()
        assert exc.value.code == -32000

    def test_list_tools(self, mcp):
        tools = {t.name: t for t in mcp.list_tools()}
        assert tools["echo"].service == "demo"
        assert tools["echo"].read_only is True
        assert tools["echo"].open_world is False
        assert tools["spy"].input_schema["required"] == ["text"]

    def test_list_prompts(self, mcp):
        assert [p["name"] for p in mcp.list_prompts()] == ["summarize"]


class TestCalls:
    def test_call_tool(self, mcp):
        result = mcp.call_tool("echo", {"text": "hi"})
        assert result.text == "Echo: hi"
        assert result.is_error is False

    def test_unknown_tool(self, mcp):
        with pytest.raises(ToolNotFoundError):
            mcp.call_tool("missing")

    def test_invalid_arguments(self, mcp):
        with pytest.raises(InvalidArgumentsError) as exc:
            mcp.call_tool("add-numbers", {"a": 1})
        assert [v["path"] for v in exc.value.violations] == ["b"]

    def test_handler_failure(self, mcp):
        with pytest.raises(ToolExecutionError, match="upstream exploded"):
            mcp.call_tool("boom", {"text": "x"})

    def test_timeout(self, mcp):
        with pytest.raises(ToolExecutionError) as exc:
            mcp.call_tool("slow", {"text": "x"})
        assert exc.value.code == -32001

    def test_submit_tool_call(self, mcp, spy):
        request = ToolCallRequest(
            tool_name="spy",
            parameters=[ToolCallParameter(parameter_name="text", parameter_value="from model")],
        )
        assert mcp.submit_tool_call(request).text == "spied"
        assert spy.calls == [{"text": "from model"}]

    def test_submit_provider_call(self, mcp):
        result = mcp.submit_provider_call(
            {"id": "call_1", "type": "function", "function": {"name": "add-numbers", "arguments": '{"a": 2, "b": 3}'}}
        )
        assert result.text == "2 + 3 = 5"

    def test_malformed_provider_call_never_reaches_server(self, mcp, spy):
        with pytest.raises(MalformedArguments):
            mcp.submit_provider_call({"function": {"name": "spy", "arguments": "{oops"}})
        assert spy.calls == []

    def test_get_prompt(self, mcp):
        text = mcp.get_prompt("summarize", {"text": "abc", "style": "haiku"})
        assert text == "Summarize the following text in haiku style:\n\nabc"


class TestResources:
    def test_list_resources(self, mcp):
        [resource] = mcp.list_resources()
        assert resource["uri"] == "toolproxy://demo/readme"
        assert resource["name"] == "demo:readme"

    def test_read_resource(self, mcp):
        [contents] = mcp.read_resource("toolproxy://demo/readme")
        assert contents["mimeType"] == "text/markdown"
        assert "echo, add-numbers, current-time" in contents["text"]

    def test_unknown_resource(self, mcp):
        with pytest.raises(ResourceNotFoundError) as exc:
            mcp.read_resource("toolproxy://nowhere")
        assert exc.value.code == -32005
