"""Capability descriptors published by services.

A service is the unit of pluggable registration: a name plus the tools and
prompts it exposes. Descriptors are immutable; each tool owns the handler that
backs it, so a tool can never be declared without one.

Usage:
    async def echo(arguments: dict, context: CallContext) -> str:
        return f"Echo: {arguments['text']}"

    service = Service(
        name="demo",
        tools=(
            Tool(
                name="echo",
                description="Echo text back",
                handler=echo,
                input_schema={
                    "type": "object",
                    "properties": {"text": {"type": "string"}},
                    "required": ["text"],
                },
            ),
        ),
    )
"""

from __future__ import annotations

import asyncio
import inspect
import string
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from toolproxy.errors import InvalidService
from toolproxy.schemas.mcp import (
    PromptArgument,
    PromptDefinition,
    ResourceDefinition,
    ToolAnnotations,
    ToolDefinition,
)
from toolproxy.validation import SchemaValidationError, Violation, check_schema, validate

Handler = Callable[[Any, "CallContext"], Any]
ResourceReader = Callable[[str, "CallContext"], Any]


def _is_coroutine_callable(func: Any) -> bool:
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(getattr(func, "__call__", None))


@dataclass
class CallContext:
    """Per-invocation context handed to every handler.

    ``cancelled`` is set when the dispatcher abandons the call (timeout).
    Handlers that fan out to slow upstreams can watch it to stop early.
    """

    tool_name: str
    service_name: str
    request_id: str | int | None = None
    deadline: float | None = None
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())


@dataclass(frozen=True)
class Tool:
    """A named, schema-described callable action.

    When ``arguments_model`` is given, validated arguments are parsed into that
    pydantic model before the handler sees them, and ``input_schema`` defaults
    to the model's JSON schema.
    """

    name: str
    description: str
    handler: Handler
    input_schema: Mapping[str, Any] = field(default_factory=dict)
    annotations: ToolAnnotations = field(default_factory=ToolAnnotations)
    arguments_model: type[BaseModel] | None = None

    def __post_init__(self) -> None:
        if not self.input_schema:
            schema = (
                self.arguments_model.model_json_schema()
                if self.arguments_model is not None
                else {"type": "object", "properties": {}}
            )
            object.__setattr__(self, "input_schema", schema)

    @property
    def is_async(self) -> bool:
        return _is_coroutine_callable(self.handler)

    def validate(self, arguments: Mapping[str, Any]) -> Any:
        """Check arguments against the input schema and return the handler's view of them."""
        validate(self.input_schema, arguments)
        if self.arguments_model is not None:
            try:
                return self.arguments_model.model_validate(dict(arguments))
            except ValidationError as exc:
                raise SchemaValidationError(
                    [
                        Violation(".".join(map(str, err["loc"])) or "$", err["msg"])
                        for err in exc.errors()
                    ]
                ) from exc
        return dict(arguments)

    def invoke(self, arguments: Any, context: CallContext) -> Awaitable[Any] | Any:
        """Call the handler with already-validated arguments."""
        return self.handler(arguments, context)

    def to_definition(self, exposed_name: str | None = None, service: str | None = None) -> ToolDefinition:
        """Convert to the discovery shape."""
        return ToolDefinition(
            name=exposed_name or self.name,
            description=self.description,
            input_schema=dict(self.input_schema),
            annotations=self.annotations,
            service=service,
        )


class _LenientFormatter(string.Formatter):
    """Formatter that renders missing fields as empty strings."""

    def get_value(self, key: int | str, args: Any, kwargs: Mapping[str, Any]) -> Any:
        if isinstance(key, str):
            return kwargs.get(key, "")
        return super().get_value(key, args, kwargs)


@dataclass(frozen=True)
class Prompt:
    """A named, schema-described instruction template."""

    name: str
    description: str
    template: str
    title: str | None = None
    input_schema: Mapping[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def validate(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        validate(self.input_schema, arguments)
        return dict(arguments)

    def render(self, arguments: Mapping[str, Any]) -> str:
        return _LenientFormatter().format(self.template, **arguments)

    def to_definition(self, exposed_name: str | None = None, service: str | None = None) -> PromptDefinition:
        properties = self.input_schema.get("properties", {})
        required = set(self.input_schema.get("required", []))
        return PromptDefinition(
            name=exposed_name or self.name,
            title=self.title,
            description=self.description,
            arguments=[
                PromptArgument(
                    name=arg,
                    description=schema.get("description"),
                    required=arg in required,
                )
                for arg, schema in properties.items()
            ],
            input_schema=dict(self.input_schema),
            service=service,
        )


@dataclass(frozen=True)
class Resource:
    """Content a service serves by URI, read on demand.

    ``reader(uri, context)`` returns text, bytes, any JSON value, or
    ``ResourceContents`` blocks. Exposed under ``<service>:<name>``.
    """

    uri: str
    name: str
    reader: ResourceReader
    description: str | None = None
    mime_type: str | None = None
    title: str | None = None

    @property
    def is_async(self) -> bool:
        return _is_coroutine_callable(self.reader)

    def invoke(self, uri: str, context: CallContext) -> Awaitable[Any] | Any:
        return self.reader(uri, context)

    def to_definition(self, exposed_name: str | None = None, service: str | None = None) -> ResourceDefinition:
        return ResourceDefinition(
            uri=self.uri,
            name=exposed_name or self.name,
            title=self.title,
            description=self.description,
            mime_type=self.mime_type,
            service=service,
        )


@dataclass(frozen=True)
class Service:
    """A named bundle of tools, prompts and resources."""

    name: str
    tools: tuple[Tool, ...] = ()
    prompts: tuple[Prompt, ...] = ()
    resources: tuple[Resource, ...] = ()
    version: str = "0.0.0"
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "tools", tuple(self.tools))
        object.__setattr__(self, "prompts", tuple(self.prompts))
        object.__setattr__(self, "resources", tuple(self.resources))

    @classmethod
    def from_handlers(
        cls,
        name: str,
        tools: list[Mapping[str, Any]],
        handlers: Mapping[str, Handler],
        prompts: list[Prompt] | None = None,
        **kwargs: Any,
    ) -> Service:
        """Build a service from bare tool declarations and a name -> handler map.

        Tool declarations are mappings with ``name``, ``description``,
        ``inputSchema`` and optional ``annotations``.

        Raises:
            InvalidService: If a tool lacks a handler or a handler lacks a tool.
        """
        declared = [t["name"] for t in tools]
        missing = [n for n in declared if n not in handlers]
        orphaned = [n for n in handlers if n not in declared]
        if missing or orphaned:
            raise InvalidService(
                f"Service '{name}' tools and handlers do not match",
                data={"missing_handlers": missing, "orphaned_handlers": orphaned},
            )
        return cls(
            name=name,
            tools=tuple(
                Tool(
                    name=t["name"],
                    description=t.get("description", ""),
                    handler=handlers[t["name"]],
                    input_schema=t.get("inputSchema") or t.get("input_schema") or {},
                    annotations=ToolAnnotations.model_validate(t.get("annotations") or {}),
                )
                for t in tools
            ),
            prompts=tuple(prompts or ()),
            **kwargs,
        )

    def problems(self) -> list[str]:
        """Return every inconsistency in this declaration; empty when valid."""
        problems: list[str] = []
        if not self.name:
            problems.append("service name must not be empty")
        for kind, items in (("tool", self.tools), ("prompt", self.prompts)):
            seen: set[str] = set()
            for item in items:
                if item.name in seen:
                    problems.append(f"duplicate {kind} name '{item.name}'")
                seen.add(item.name)
                problems.extend(f"{kind} '{item.name}': {p}" for p in check_schema(item.input_schema))
        for tool in self.tools:
            if not callable(tool.handler):
                problems.append(f"tool '{tool.name}': handler is not callable")
        names: set[str] = set()
        uris: set[str] = set()
        for resource in self.resources:
            if resource.name in names:
                problems.append(f"duplicate resource name '{resource.name}'")
            if not resource.uri:
                problems.append(f"resource '{resource.name}': uri must not be empty")
            elif resource.uri in uris:
                problems.append(f"duplicate resource uri '{resource.uri}'")
            if not callable(resource.reader):
                problems.append(f"resource '{resource.name}': reader is not callable")
            names.add(resource.name)
            uris.add(resource.uri)
        return problems
