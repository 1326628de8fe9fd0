"""MCP protocol schemas."""

from toolproxy.schemas.mcp import (
    CallToolParams,
    CallToolResult,
    CapabilityDescriptor,
    GetPromptParams,
    GetPromptResult,
    HealthResponse,
    Implementation,
    InitializeParams,
    JSONRPCRequest,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    PromptArgument,
    PromptDefinition,
    PromptMessage,
    ReadResourceParams,
    ReadResourceResult,
    ResourceContents,
    ResourceDefinition,
    TextContent,
    ToolAnnotations,
    ToolCallParameter,
    ToolCallRequest,
    ToolDefinition,
)

__all__ = [
    "CallToolParams",
    "CallToolResult",
    "CapabilityDescriptor",
    "GetPromptParams",
    "GetPromptResult",
    "HealthResponse",
    "Implementation",
    "InitializeParams",
    "JSONRPCRequest",
    "ListPromptsResult",
    "ListResourcesResult",
    "ListToolsResult",
    "PromptArgument",
    "PromptDefinition",
    "PromptMessage",
    "ReadResourceParams",
    "ReadResourceResult",
    "ResourceContents",
    "ResourceDefinition",
    "TextContent",
    "ToolAnnotations",
    "ToolCallParameter",
    "ToolCallRequest",
    "ToolDefinition",
]
