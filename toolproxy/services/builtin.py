"""Built-in services.

The ``demo`` service exercises the proxy end to end: a text tool, an arithmetic
tool with a typed argument model, one prompt template and a readme resource.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from toolproxy import __version__
from toolproxy.schemas.mcp import ToolAnnotations
from toolproxy.services.base import CallContext, Prompt, Resource, Service, Tool


async def echo(arguments: dict[str, Any], context: CallContext) -> str:
    """Return the input text prefixed with ``Echo:``."""
    return f"Echo: {arguments['text']}"


class AddNumbersArguments(BaseModel):
    a: int | float = Field(..., description="First addend")
    b: int | float = Field(..., description="Second addend")


def _format_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    return str(int(value)) if value.is_integer() else str(value)


async def add_numbers(arguments: AddNumbersArguments, context: CallContext) -> str:
    total = arguments.a + arguments.b
    return f"{_format_number(arguments.a)} + {_format_number(arguments.b)} = {_format_number(total)}"


async def current_time(arguments: dict[str, Any], context: CallContext) -> dict[str, str]:
    # Yield once so the call goes through the event loop like an upstream fetch would
    await asyncio.sleep(0)
    return {"utc": datetime.now(UTC).isoformat()}


README_URI = "toolproxy://demo/readme"


async def readme(uri: str, context: CallContext) -> str:
    return (
        "# demo\n\n"
        f"toolproxy {__version__} demo service. Tools: echo, add-numbers, current-time.\n"
    )


def demo_service() -> Service:
    """Build the ``demo`` service."""
    return Service(
        name="demo",
        version=__version__,
        description="Example tools for checking the proxy end to end",
        tools=(
            Tool(
                name="echo",
                description="Echo the input text back.",
                handler=echo,
                input_schema={
                    "type": "object",
                    "properties": {
                        "text": {"type": "string", "description": "Text to echo back"},
                    },
                    "required": ["text"],
                },
                annotations=ToolAnnotations(read_only_hint=True, open_world_hint=False),
            ),
            Tool(
                name="add-numbers",
                description="Add two numbers and show the sum.",
                handler=add_numbers,
                input_schema={
                    "type": "object",
                    "properties": {
                        "a": {"type": "number", "description": "First addend"},
                        "b": {"type": "number", "description": "Second addend"},
                    },
                    "required": ["a", "b"],
                },
                arguments_model=AddNumbersArguments,
                annotations=ToolAnnotations(read_only_hint=True, open_world_hint=False),
            ),
            Tool(
                name="current-time",
                description="Return the current UTC time.",
                handler=current_time,
                annotations=ToolAnnotations(read_only_hint=True, open_world_hint=False),
            ),
        ),
        prompts=(
            Prompt(
                name="summarize",
                title="Summarize text",
                description="Ask the model for a short summary of some text.",
                template="Summarize the following text in {style} style:\n\n{text}",
                input_schema={
                    "type": "object",
                    "properties": {
                        "text": {"type": "string", "description": "Text to summarize"},
                        "style": {"type": "string", "description": "e.g. 'bullet point'"},
                    },
                    "required": ["text"],
                },
            ),
        ),
        resources=(
            Resource(
                uri=README_URI,
                name="readme",
                title="Demo readme",
                description="What the demo service offers.",
                mime_type="text/markdown",
                reader=readme,
            ),
        ),
    )


def builtin_services() -> list[Service]:
    """All services shipped with toolproxy."""
    return [demo_service()]
