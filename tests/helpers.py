"""Test doubles and builders shared across test modules."""

import asyncio
from typing import Any

from toolproxy.services import CallContext, Resource, Service, Tool

TEXT_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


class Spy:
    """Async handler that records every call it receives."""

    def __init__(self, result: Any = "ok", error: Exception | None = None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[Any] = []
        self.contexts: list[CallContext] = []

    async def __call__(self, arguments: Any, context: CallContext) -> Any:
        self.calls.append(arguments)
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def make_tool(name: str, handler: Any, input_schema: dict | None = None, **kwargs: Any) -> Tool:
    return Tool(
        name=name,
        description=f"{name} tool",
        handler=handler,
        input_schema=input_schema if input_schema is not None else TEXT_SCHEMA,
        **kwargs,
    )


def make_service(name: str, *tools: Tool, **kwargs: Any) -> Service:
    return Service(name=name, tools=tools, **kwargs)


def make_resource(name: str, reader: Any, uri: str | None = None, **kwargs: Any) -> Resource:
    return Resource(uri=f"test://{name}" if uri is None else uri, name=name, reader=reader, **kwargs)
