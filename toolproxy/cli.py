"""CLI interface for toolproxy.

Provides commands for:
- Starting the proxy server
- Listing and calling tools in-process
- Listing and reading resources in-process
- Translating provider function calls
- Showing configuration
"""

import asyncio
import json

import click
import uvicorn

from toolproxy import __version__
from toolproxy.config import get_settings
from toolproxy.dispatcher import Dispatcher
from toolproxy.errors import ProxyError
from toolproxy.services import ServiceRegistry
from toolproxy.services.builtin import builtin_services
from toolproxy.services.loader import load_all
from toolproxy.translator import from_provider_call


def _build_registry() -> ServiceRegistry:
    settings = get_settings()
    services = builtin_services() if settings.builtin_services else []
    try:
        services.extend(load_all(settings.service_modules))
        return ServiceRegistry(services, policy=settings.naming_policy)
    except ProxyError as exc:
        raise click.ClickException(exc.message) from exc


def _parse_json_object(value: str, what: str) -> dict:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"{what} is not valid JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise click.BadParameter(f"{what} must be a JSON object")
    return parsed


@click.group()
@click.version_option(version=__version__, prog_name="toolproxy")
def cli() -> None:
    """toolproxy - one MCP endpoint for many tool services."""
    pass


@cli.command()
@click.option("--host", "-h", default=None, help="Host to bind to")
@click.option("--port", "-p", default=None, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the proxy server."""
    settings = get_settings()
    actual_host = host or settings.host
    actual_port = port or settings.port

    click.echo(f"Starting toolproxy on {actual_host}:{actual_port}{settings.base_path}")
    uvicorn.run(
        "toolproxy.server:app",
        host=actual_host,
        port=actual_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
def info() -> None:
    """Show server configuration."""
    settings = get_settings()

    click.echo("toolproxy configuration:\n")
    click.echo(f"  Host:              {settings.host}")
    click.echo(f"  Port:              {settings.port}")
    click.echo(f"  Base path:         {settings.base_path}")
    click.echo(f"  Protocol version:  {settings.protocol_version}")
    click.echo(f"  Supported:         {', '.join(settings.supported_protocol_versions)}")
    click.echo(f"  Call timeout:      {settings.call_timeout_seconds}s")
    click.echo(f"  Naming policy:     {settings.naming_policy}")
    click.echo(f"  Service modules:   {', '.join(settings.service_modules) or '-'}")
    click.echo(f"  Log level:         {settings.log_level}")


@cli.group()
def tools() -> None:
    """Tool management commands."""
    pass


@tools.command("list")
def list_tools() -> None:
    """List all tools the configured services expose."""
    definitions = _build_registry().list_tools()

    if not definitions:
        click.echo("No tools registered.")
        return

    click.echo(f"Registered tools ({len(definitions)}):\n")
    for tool in definitions:
        hints = []
        if tool.annotations.read_only_hint:
            hints.append("read-only")
        if tool.annotations.open_world_hint:
            hints.append("open-world")
        click.echo(f"  {click.style(tool.name, fg='green', bold=True)}  [{tool.service}]")
        click.echo(f"    {tool.description}")
        props = tool.input_schema.get("properties", {})
        if props:
            required = set(tool.input_schema.get("required", []))
            params = [f"{name}{'*' if name in required else ''}" for name in props]
            click.echo(f"    Parameters: {', '.join(params)}")
        if hints:
            click.echo(f"    Hints: {', '.join(hints)}")
        click.echo()


@tools.command("call")
@click.argument("name")
@click.option("--args", "args_json", default="{}", help="Arguments as a JSON object")
@click.option("--timeout", type=float, default=None, help="Execution budget in seconds")
def call_tool(name: str, args_json: str, timeout: float | None) -> None:
    """Call a tool in-process and print its content blocks."""
    arguments = _parse_json_object(args_json, "--args")
    settings = get_settings()
    dispatcher = Dispatcher(_build_registry(), timeout=timeout or settings.call_timeout_seconds)

    try:
        result = asyncio.run(dispatcher.call_tool(name, arguments))
    except ProxyError as exc:
        click.echo(click.style(json.dumps(exc.to_dict(), indent=2), fg="red"), err=True)
        raise SystemExit(1) from exc

    for block in result.content:
        click.echo(block.text)


@cli.group()
def resources() -> None:
    """Resource commands."""
    pass


@resources.command("list")
def list_resources() -> None:
    """List all resources the configured services expose."""
    definitions = _build_registry().list_resources()

    if not definitions:
        click.echo("No resources registered.")
        return

    click.echo(f"Registered resources ({len(definitions)}):\n")
    for resource in definitions:
        click.echo(f"  {click.style(resource.name, fg='green', bold=True)}  {resource.uri}")
        if resource.description:
            click.echo(f"    {resource.description}")
        if resource.mime_type:
            click.echo(f"    Type: {resource.mime_type}")
        click.echo()


@resources.command("read")
@click.argument("uri")
def read_resource(uri: str) -> None:
    """Read a resource in-process and print its text."""
    settings = get_settings()
    dispatcher = Dispatcher(_build_registry(), timeout=settings.call_timeout_seconds)

    try:
        result = asyncio.run(dispatcher.read_resource(uri))
    except ProxyError as exc:
        click.echo(click.style(json.dumps(exc.to_dict(), indent=2), fg="red"), err=True)
        raise SystemExit(1) from exc

    for block in result.contents:
        click.echo(block.text if block.text is not None else f"<{len(block.blob or '')} base64 chars>")


@cli.command()
@click.argument("provider_call")
def translate(provider_call: str) -> None:
    """Translate a provider function call (JSON) into a ToolCallRequest."""
    raw = _parse_json_object(provider_call, "PROVIDER_CALL")
    try:
        request = from_provider_call(raw)
    except ProxyError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(json.dumps(request.to_wire(), indent=2))


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
