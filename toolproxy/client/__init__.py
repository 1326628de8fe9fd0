"""toolproxy client library.

Provides an HTTP client for talking to the proxy's JSON-RPC endpoint.
"""

from toolproxy.client.mcp_client import (
    InvalidArgumentsError,
    MCPClient,
    MCPClientError,
    ProtocolVersionError,
    ResourceNotFoundError,
    ToolDefinition,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResult,
)

__all__ = [
    "InvalidArgumentsError",
    "MCPClient",
    "MCPClientError",
    "ProtocolVersionError",
    "ResourceNotFoundError",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResult",
]
