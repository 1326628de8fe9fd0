"""MCP protocol schema definitions.

Field names follow the Model Context Protocol wire format (camelCase aliases);
Python code uses the snake_case attribute names. Dump with
``model_dump(by_alias=True, exclude_none=True)`` when writing to the wire.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base model accepting both field names and wire aliases."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Discovery
# =============================================================================


class ToolAnnotations(WireModel):
    """Client-side trust hints for a tool."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str | None = None
    read_only_hint: bool = Field(default=False, alias="readOnlyHint")
    open_world_hint: bool = Field(default=True, alias="openWorldHint")


class ToolDefinition(WireModel):
    """Definition of a tool for discovery."""

    name: str = Field(..., description="Caller-visible tool name")
    description: str = Field(..., description="Human-readable description")
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        alias="inputSchema",
        description="JSON Schema for tool input",
    )
    annotations: ToolAnnotations = Field(default_factory=ToolAnnotations)
    service: str | None = Field(default=None, description="Owning service name")


class PromptArgument(WireModel):
    name: str
    description: str | None = None
    required: bool = False


class PromptDefinition(WireModel):
    """Definition of a prompt template for discovery."""

    name: str
    title: str | None = None
    description: str = ""
    arguments: list[PromptArgument] = Field(default_factory=list)
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")
    service: str | None = None


class ListToolsResult(WireModel):
    tools: list[ToolDefinition]


class ListPromptsResult(WireModel):
    prompts: list[PromptDefinition]


# =============================================================================
# Invocation
# =============================================================================


class TextContent(WireModel):
    """A text content block."""

    type: Literal["text"] = "text"
    text: str


class CallToolParams(WireModel):
    """Parameters of a ``tools/call`` request."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class CallToolResult(WireModel):
    """Result envelope of a successful ``tools/call``."""

    content: list[TextContent]
    is_error: bool | None = Field(default=None, alias="isError")


class GetPromptParams(WireModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class PromptMessage(WireModel):
    role: Literal["user", "assistant"] = "user"
    content: TextContent


class GetPromptResult(WireModel):
    description: str | None = None
    messages: list[PromptMessage]


# =============================================================================
# Resources
# =============================================================================


class ResourceDefinition(WireModel):
    """A readable resource as listed by ``resources/list``."""

    uri: str
    name: str
    title: str | None = None
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    service: str | None = None


class ListResourcesResult(WireModel):
    resources: list[ResourceDefinition]


class ReadResourceParams(WireModel):
    uri: str


class ResourceContents(WireModel):
    """One piece of resource content; exactly one of ``text`` or ``blob`` is set."""

    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    text: str | None = None
    blob: str | None = Field(default=None, description="Base64-encoded binary content")


class ReadResourceResult(WireModel):
    contents: list[ResourceContents]


# =============================================================================
# Negotiation and health
# =============================================================================


class Implementation(WireModel):
    """Name and version of a protocol participant."""

    name: str
    version: str
    title: str | None = None


class InitializeParams(WireModel):
    protocol_version: str = Field(..., alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: Implementation | None = Field(default=None, alias="clientInfo")


class CapabilityDescriptor(WireModel):
    """Process-wide capability metadata returned by ``initialize``."""

    protocol_version: str = Field(..., alias="protocolVersion")
    supported_protocol_versions: list[str] = Field(..., alias="supportedProtocolVersions")
    capabilities: dict[str, Any]
    server_info: Implementation = Field(..., alias="serverInfo")
    instructions: str | None = None
    methods: list[str]
    tool_hints: dict[str, ToolAnnotations] = Field(default_factory=dict, alias="toolHints")


class HealthResponse(WireModel):
    """Static liveness descriptor."""

    status: Literal["healthy"] = "healthy"
    name: str
    version: str
    description: str
    protocol_version: str = Field(..., alias="protocolVersion")
    methods: list[str]
    services: list[str]
    tool_count: int = Field(..., alias="toolCount")


# =============================================================================
# JSON-RPC envelope
# =============================================================================


class JSONRPCRequest(WireModel):
    """A JSON-RPC 2.0 request or notification."""

    jsonrpc: Literal["2.0"]
    method: str
    params: dict[str, Any] | None = None
    id: str | int | None = None


# =============================================================================
# Orchestration-side tool calls
# =============================================================================


class ToolCallParameter(WireModel):
    parameter_name: str = Field(..., alias="parameterName")
    parameter_value: Any = Field(default=None, alias="parameterValue")

    def to_wire(self) -> dict[str, Any]:
        # None is a meaningful parameter value here
        return self.model_dump(by_alias=True)


class ToolCallRequest(WireModel):
    """Normalized "invoke tool X with parameters Y", in call-site order."""

    tool_name: str = Field(..., alias="toolName")
    parameters: list[ToolCallParameter] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
