"""MCP client for talking to a toolproxy server.

This is the orchestration side: it discovers tools, calls them, and turns a
model's function call into a ``tools/call`` request through the translator.

Usage:
    from toolproxy.client import MCPClient

    with MCPClient("http://localhost:3333") as client:
        client.initialize()
        tools = client.list_tools()
        result = client.call_tool("echo", {"text": "hi"})

        # A function call straight from a chat completion
        result = client.submit_provider_call(
            {"function": {"name": "add-numbers", "arguments": '{"a": 2, "b": 3}'}}
        )
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any

import httpx

from toolproxy import errors
from toolproxy.schemas.mcp import ToolCallRequest
from toolproxy.translator import from_provider_call, to_arguments


class MCPClientError(Exception):
    """Base exception for client errors; ``code`` is the JSON-RPC error code."""

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class ToolNotFoundError(MCPClientError):
    """The server does not expose the requested tool or prompt."""


class ResourceNotFoundError(MCPClientError):
    """No registered service serves the requested resource URI."""


class InvalidArgumentsError(MCPClientError):
    """The server rejected the arguments; ``violations`` lists every problem."""

    @property
    def violations(self) -> list[dict[str, str]]:
        return (self.data or {}).get("violations", [])


class ToolExecutionError(MCPClientError):
    """The handler failed or timed out on the server."""


class ProtocolVersionError(MCPClientError):
    """The server does not support the requested protocol version."""


_ERRORS_BY_CODE: dict[int, type[MCPClientError]] = {
    errors.METHOD_NOT_FOUND: ToolNotFoundError,
    errors.NOT_FOUND: ResourceNotFoundError,
    errors.INVALID_PARAMS: InvalidArgumentsError,
    errors.INTERNAL_ERROR: ToolExecutionError,
    errors.TIMEOUT: ToolExecutionError,
    errors.UNSUPPORTED_PROTOCOL_VERSION: ProtocolVersionError,
}


@dataclass
class ToolDefinition:
    """A discovered tool."""

    name: str
    description: str
    input_schema: dict[str, Any]
    service: str | None = None
    read_only: bool = False
    open_world: bool = True


@dataclass
class ToolResult:
    """Result of a tool call: the text of each content block."""

    texts: list[str]
    is_error: bool = False

    @property
    def text(self) -> str:
        return "\n".join(self.texts)


class MCPClient:
    """Synchronous JSON-RPC client for the proxy.

    Args:
        base_url: Server root (e.g. "http://localhost:3333").
        path: JSON-RPC endpoint path on the server.
        timeout: HTTP timeout in seconds.
        protocol_version: Version sent during ``initialize`` and as a header.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3333",
        path: str = "/mcp",
        timeout: float = 30.0,
        protocol_version: str = "2025-06-18",
        http_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.path = path
        self.timeout = timeout
        self.protocol_version = protocol_version
        self._client = http_client or httpx.Client(base_url=self.base_url, timeout=timeout)
        self._ids = itertools.count(1)

    def __enter__(self) -> MCPClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        Raises:
            MCPClientError: The server answered with an error object (a
                subclass is chosen from the error code).
        """
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params
        response = self._client.post(
            self.path,
            json=payload,
            headers={"MCP-Protocol-Version": self.protocol_version},
        )
        body = response.json() if response.content else {}
        if "error" in body:
            error = body["error"]
            kind = _ERRORS_BY_CODE.get(error.get("code"), MCPClientError)
            raise kind(error.get("message", "Unknown error"), code=error.get("code"), data=error.get("data"))
        response.raise_for_status()
        return body.get("result")

    # -------------------------------------------------------------------------
    # Health and negotiation
    # -------------------------------------------------------------------------

    def health(self) -> dict[str, Any]:
        response = self._client.get("/health")
        response.raise_for_status()
        return response.json()

    def initialize(self, client_name: str = "toolproxy-client") -> dict[str, Any]:
        return self.request(
            "initialize",
            {
                "protocolVersion": self.protocol_version,
                "capabilities": {},
                "clientInfo": {"name": client_name, "version": "0"},
            },
        )

    # -------------------------------------------------------------------------
    # Tools, prompts and resources
    # -------------------------------------------------------------------------

    def list_tools(self) -> list[ToolDefinition]:
        result = self.request("tools/list")
        return [
            ToolDefinition(
                name=t["name"],
                description=t.get("description", ""),
                input_schema=t.get("inputSchema", {}),
                service=t.get("service"),
                read_only=t.get("annotations", {}).get("readOnlyHint", False),
                open_world=t.get("annotations", {}).get("openWorldHint", True),
            )
            for t in result["tools"]
        ]

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke a tool.

        Raises:
            ToolNotFoundError: Unknown tool.
            InvalidArgumentsError: Arguments failed validation.
            ToolExecutionError: The handler raised or timed out.
        """
        result = self.request("tools/call", {"name": name, "arguments": arguments or {}})
        return ToolResult(
            texts=[block.get("text", "") for block in result.get("content", [])],
            is_error=bool(result.get("isError", False)),
        )

    def submit_tool_call(self, call: ToolCallRequest) -> ToolResult:
        """Invoke the tool a ``ToolCallRequest`` names."""
        return self.call_tool(call.tool_name, to_arguments(call))

    def submit_provider_call(self, raw: dict[str, Any]) -> ToolResult:
        """Translate a provider function call and invoke it.

        Raises:
            MalformedArguments: The call's argument blob is not a JSON object.
        """
        return self.submit_tool_call(from_provider_call(raw))

    def list_prompts(self) -> list[dict[str, Any]]:
        return self.request("prompts/list")["prompts"]

    def get_prompt(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """Render a prompt and return the text of its messages."""
        result = self.request("prompts/get", {"name": name, "arguments": arguments or {}})
        return "\n".join(m["content"]["text"] for m in result["messages"])

    def list_resources(self) -> list[dict[str, Any]]:
        return self.request("resources/list")["resources"]

    def read_resource(self, uri: str) -> list[dict[str, Any]]:
        """Read a resource and return its content blocks.

        Raises:
            ResourceNotFoundError: No service serves ``uri``.
        """
        return self.request("resources/read", {"uri": uri})["contents"]
