"""Protocol adapter.

Maps JSON-RPC 2.0 messages onto registry and dispatcher calls and maps results
and ``ProxyError``s back onto response objects. This is the only module that
knows about request framing; the registry and dispatcher stay
transport-agnostic.

Supported methods:
- ``initialize``: capability negotiation and protocol version check
- ``ping``
- ``tools/list``, ``tools/call``
- ``prompts/list``, ``prompts/get``
- ``resources/list``, ``resources/read``
- ``notifications/initialized`` (notification, no response)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from toolproxy import __version__
from toolproxy.dispatcher import Dispatcher
from toolproxy.errors import (
    InternalError,
    InvalidParams,
    InvalidRequest,
    MethodNotFound,
    ProxyError,
    UnsupportedProtocolVersion,
)
from toolproxy.logging import get_logger, log_context
from toolproxy.metrics import record_rpc
from toolproxy.schemas.mcp import (
    CallToolParams,
    CapabilityDescriptor,
    GetPromptParams,
    HealthResponse,
    Implementation,
    InitializeParams,
    JSONRPCRequest,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    ReadResourceParams,
)
from toolproxy.services.registry import ServiceRegistry

logger = get_logger(__name__)

JSONRPC_VERSION = "2.0"

MethodHandler = Callable[[dict[str, Any], Any], Awaitable[BaseModel | dict[str, Any]]]


def error_response(request_id: Any, error: ProxyError) -> dict[str, Any]:
    """Build a JSON-RPC error response."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_dict()}


def _parse_params(model: type[BaseModel], params: dict[str, Any]) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as e:
        violations = [
            {"path": ".".join(map(str, err["loc"])) or "$", "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidParams("Invalid request params", data={"violations": violations}) from e


class ProtocolAdapter:
    """JSON-RPC front end for a registry and dispatcher.

    Args:
        registry: The services to expose.
        dispatcher: Executes calls; built from ``registry`` when omitted.
        server_name: Advertised implementation name.
        server_description: Advertised description (health and instructions).
        protocol_version: Version this server prefers.
        supported_versions: Versions accepted during negotiation.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        dispatcher: Dispatcher | None = None,
        server_name: str = "toolproxy",
        server_description: str = "",
        protocol_version: str = "2025-06-18",
        supported_versions: list[str] | None = None,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher or Dispatcher(registry)
        self.server_name = server_name
        self.server_description = server_description
        self.protocol_version = protocol_version
        self.supported_versions = list(supported_versions or [protocol_version])
        if protocol_version not in self.supported_versions:
            self.supported_versions.append(protocol_version)

        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
        }
        self._notifications = {"notifications/initialized", "notifications/cancelled"}

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    # -------------------------------------------------------------------------
    # Negotiation and health
    # -------------------------------------------------------------------------

    def check_version(self, version: str | None) -> str:
        """Return the negotiated version, or raise if ``version`` is unsupported.

        ``None`` means the client did not declare a version; the server's
        preferred version is assumed.
        """
        if version is None:
            return self.protocol_version
        if version not in self.supported_versions:
            raise UnsupportedProtocolVersion(
                f"Unsupported protocol version '{version}'",
                data={"requested": version, "supported": self.supported_versions},
            )
        return version

    def capabilities(self, protocol_version: str | None = None) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            protocol_version=protocol_version or self.protocol_version,
            supported_protocol_versions=self.supported_versions,
            capabilities={
                "tools": {"listChanged": False},
                "prompts": {"listChanged": False},
                "resources": {"subscribe": False, "listChanged": False},
            },
            server_info=Implementation(name=self.server_name, version=__version__),
            instructions=self.server_description or None,
            methods=self.methods,
            tool_hints={t.name: t.annotations for t in self.registry.list_tools()},
        )

    def health(self) -> HealthResponse:
        return HealthResponse(
            name=self.server_name,
            version=__version__,
            description=self.server_description,
            protocol_version=self.protocol_version,
            methods=self.methods,
            services=[s.name for s in self.registry.services()],
            tool_count=len(self.registry.list_tools()),
        )

    # -------------------------------------------------------------------------
    # Message handling
    # -------------------------------------------------------------------------

    async def handle(self, message: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Handle a decoded JSON-RPC message or batch.

        Returns the response object (or list for a batch), or ``None`` when
        nothing needs to be sent back (notifications only).
        """
        if isinstance(message, list):
            if not message:
                return error_response(None, InvalidRequest("Empty batch"))
            responses = await asyncio.gather(*(self._handle_one(m) for m in message))
            replies = [r for r in responses if r is not None]
            return replies or None
        return await self._handle_one(message)

    async def _handle_one(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return error_response(None, InvalidRequest("Request must be a JSON object"))

        request_id = message.get("id")
        try:
            request = JSONRPCRequest.model_validate(message)
        except ValidationError:
            record_rpc(str(message.get("method", "")), "invalid_request")
            return error_response(request_id, InvalidRequest("Invalid JSON-RPC request"))

        is_notification = "id" not in message
        with log_context(rpc_id=request_id, rpc_method=request.method):
            if is_notification:
                self._notify(request)
                return None
            try:
                result = await self._dispatch(request)
            except ProxyError as e:
                record_rpc(request.method, type(e).__name__)
                return error_response(request_id, e)
            except Exception as e:
                logger.exception("rpc_unhandled_error")
                record_rpc(request.method, "InternalError")
                return error_response(request_id, InternalError(str(e) or type(e).__name__))

        record_rpc(request.method, "success")
        if isinstance(result, BaseModel):
            result = result.model_dump(by_alias=True, exclude_none=True)
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def _notify(self, request: JSONRPCRequest) -> None:
        if request.method in self._notifications:
            logger.debug("notification_received")
        else:
            logger.warning("notification_ignored")
        record_rpc(request.method, "notification")

    async def _dispatch(self, request: JSONRPCRequest) -> BaseModel | dict[str, Any]:
        handler = self._methods.get(request.method)
        if handler is None:
            raise MethodNotFound(f"Method '{request.method}' not found", data={"method": request.method})
        return await handler(request.params or {}, request.id)

    async def _initialize(self, params: dict[str, Any], request_id: Any) -> CapabilityDescriptor:
        init = _parse_params(InitializeParams, params)
        version = self.check_version(init.protocol_version)
        logger.info(
            "client_initialized",
            protocol_version=version,
            client=init.client_info.name if init.client_info else None,
        )
        return self.capabilities(version)

    async def _ping(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any], request_id: Any) -> ListToolsResult:
        return ListToolsResult(tools=self.registry.list_tools())

    async def _list_prompts(self, params: dict[str, Any], request_id: Any) -> ListPromptsResult:
        return ListPromptsResult(prompts=self.registry.list_prompts())

    async def _call_tool(self, params: dict[str, Any], request_id: Any) -> BaseModel:
        call = _parse_params(CallToolParams, params)
        return await self.dispatcher.call_tool(call.name, call.arguments, request_id=request_id)

    async def _get_prompt(self, params: dict[str, Any], request_id: Any) -> BaseModel:
        call = _parse_params(GetPromptParams, params)
        return await self.dispatcher.get_prompt(call.name, call.arguments)

    async def _list_resources(self, params: dict[str, Any], request_id: Any) -> ListResourcesResult:
        return ListResourcesResult(resources=self.registry.list_resources())

    async def _read_resource(self, params: dict[str, Any], request_id: Any) -> BaseModel:
        call = _parse_params(ReadResourceParams, params)
        return await self.dispatcher.read_resource(call.uri, request_id=request_id)
