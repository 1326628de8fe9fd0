"""FastAPI transport for the proxy.

Exposes:
- ``POST {base_path}``: the JSON-RPC endpoint (MCP over HTTP, JSON responses)
- ``GET /health``: liveness and static service metadata
- ``GET /v1/tools``, ``POST /v1/tools/{name}``, ``GET /v1/prompts``,
  ``GET /v1/resources``, ``GET /v1/resources/read?uri=``: REST views
  over the same adapter for scripts and dashboards
- ``GET /metrics`` (Prometheus) and ``GET /metrics/json``

The server owns no dispatch logic. It builds the registry during lifespan
startup, hands it to a ``ProtocolAdapter`` stored on ``app.state``, and
unregisters everything on shutdown.
"""

import json
from collections.abc import Sequence
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from toolproxy import __version__
from toolproxy.config import Settings, get_settings
from toolproxy.dispatcher import Dispatcher
from toolproxy.errors import (
    InvalidParams,
    MethodNotFound,
    NotFound,
    ParseError,
    ProxyError,
    Timeout,
    UnsupportedProtocolVersion,
)
from toolproxy.logging import configure_logging, get_logger
from toolproxy.metrics import metrics
from toolproxy.middleware import RequestTracingMiddleware
from toolproxy.protocol import ProtocolAdapter, error_response
from toolproxy.schemas.mcp import (
    HealthResponse,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
)
from toolproxy.services import Service, ServiceRegistry
from toolproxy.services.builtin import builtin_services
from toolproxy.services.loader import load_all

logger = get_logger(__name__)

PROTOCOL_VERSION_HEADER = "MCP-Protocol-Version"

# HTTP status for REST views; the JSON-RPC endpoint always answers 200
REST_STATUS = {
    MethodNotFound: status.HTTP_404_NOT_FOUND,
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidParams: 422,
    Timeout: status.HTTP_504_GATEWAY_TIMEOUT,
}


def _services_for(settings: Settings) -> list[Service]:
    services: list[Service] = builtin_services() if settings.builtin_services else []
    services.extend(load_all(settings.service_modules))
    return services


def get_adapter(request: Request) -> ProtocolAdapter:
    return request.app.state.adapter


def _rest_error(error: ProxyError) -> JSONResponse:
    code = next(
        (http for kind, http in REST_STATUS.items() if isinstance(error, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(status_code=code, content={"error": error.to_dict()})


def create_app(
    settings: Settings | None = None,
    services: Sequence[Service] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Overrides ``get_settings()``.
        services: Services to register at startup. Defaults to the built-in
            services plus those named in ``settings.service_modules``.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(
            json_format=not settings.debug,
            level="DEBUG" if settings.debug else settings.log_level,
        )
        logger.info(
            "server_starting",
            version=__version__,
            host=settings.host,
            port=settings.port,
            base_path=settings.base_path,
            naming_policy=settings.naming_policy,
        )

        registry = ServiceRegistry(policy=settings.naming_policy)
        for service in services if services is not None else _services_for(settings):
            registry.register(service)
        app.state.registry = registry
        app.state.adapter = ProtocolAdapter(
            registry,
            Dispatcher(registry, timeout=settings.call_timeout_seconds),
            server_name=settings.server_name,
            server_description=settings.server_description,
            protocol_version=settings.protocol_version,
            supported_versions=settings.supported_protocol_versions,
        )
        logger.info("tools_registered", tools=[t.name for t in registry.list_tools()])
        yield
        registry.clear()
        logger.info("server_shutdown")

    app = FastAPI(
        title="toolproxy",
        description=settings.server_description,
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.add_middleware(RequestTracingMiddleware)

    @app.get("/health", response_model=None)
    async def health(request: Request) -> dict[str, Any]:
        """Health check endpoint."""
        report: HealthResponse = get_adapter(request).health()
        return report.to_wire()

    @app.get("/metrics", include_in_schema=False)
    async def get_metrics() -> PlainTextResponse:
        """Return Prometheus-formatted metrics."""
        return PlainTextResponse(
            content=metrics.to_prometheus(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    @app.get("/metrics/json")
    async def get_metrics_json() -> dict:
        """Return metrics as JSON."""
        return metrics.get_stats()

    @app.post(settings.base_path, response_model=None)
    async def rpc(request: Request) -> Response:
        """JSON-RPC endpoint.

        A body with only notifications is acknowledged with 202 and no content.
        """
        adapter = get_adapter(request)

        header_version = request.headers.get(PROTOCOL_VERSION_HEADER)
        if header_version is not None:
            try:
                adapter.check_version(header_version)
            except UnsupportedProtocolVersion as e:
                logger.warning("protocol_version_rejected", requested=header_version)
                return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_response(None, e))

        body = await request.body()
        try:
            message = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return JSONResponse(content=error_response(None, ParseError(f"Parse error: {e}")))

        reply = await adapter.handle(message)
        if reply is None:
            return Response(status_code=status.HTTP_202_ACCEPTED)
        return JSONResponse(content=reply)

    @app.get("/v1/tools", response_model=None)
    async def list_tools(request: Request) -> dict[str, Any]:
        """List every tool from every registered service."""
        return ListToolsResult(tools=get_adapter(request).registry.list_tools()).to_wire()

    @app.post("/v1/tools/{tool_name}", response_model=None)
    async def call_tool(
        tool_name: str,
        request: Request,
        arguments: dict[str, Any] = Body(default_factory=dict, embed=True),
    ) -> Response:
        """Invoke a tool by name.

        Errors use the same ``{code, message, data}`` object as JSON-RPC,
        with a matching HTTP status (404 unknown tool, 422 invalid arguments,
        504 timeout, 500 handler failure).
        """
        try:
            result = await get_adapter(request).dispatcher.call_tool(tool_name, arguments)
        except ProxyError as e:
            return _rest_error(e)
        return JSONResponse(content=result.to_wire())

    @app.get("/v1/prompts", response_model=None)
    async def list_prompts(request: Request) -> dict[str, Any]:
        """List every prompt from every registered service."""
        return ListPromptsResult(prompts=get_adapter(request).registry.list_prompts()).to_wire()

    @app.get("/v1/resources", response_model=None)
    async def list_resources(request: Request) -> dict[str, Any]:
        """List every resource from every registered service."""
        return ListResourcesResult(resources=get_adapter(request).registry.list_resources()).to_wire()

    @app.get("/v1/resources/read", response_model=None)
    async def read_resource(request: Request, uri: str = Query(...)) -> Response:
        """Read a resource by URI (404 unknown URI, 504 timeout, 500 reader failure)."""
        try:
            result = await get_adapter(request).dispatcher.read_resource(uri)
        except ProxyError as e:
            return _rest_error(e)
        return JSONResponse(content=result.to_wire())

    return app


# Application instance for uvicorn
app = create_app()
