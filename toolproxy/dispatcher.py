"""Request dispatcher.

Resolves one call to exactly one handler, validates its arguments and runs it
under a timeout. Every call walks the same states:

    RECEIVED -> RESOLVING -> VALIDATING -> EXECUTING -> COMPLETED | FAILED

Resolution and validation failures are terminal and never reach a handler.
A handler that raises is reported as ``InternalError`` for that call only; a
handler that overruns its budget is reported as ``Timeout`` straight away and
left to finish (or honor cancellation) on its own.

Resource reads resolve by URI and run their reader on the same execution path.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from toolproxy.errors import InternalError, ProxyError, Timeout
from toolproxy.logging import get_logger
from toolproxy.metrics import record_resource_read, record_tool_call
from toolproxy.schemas.mcp import (
    CallToolResult,
    GetPromptResult,
    PromptMessage,
    ReadResourceResult,
    ResourceContents,
    TextContent,
)
from toolproxy.services.base import CallContext, Resource
from toolproxy.services.registry import ServiceRegistry

logger = get_logger(__name__)


class DispatchState(StrEnum):
    RECEIVED = "received"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


def to_call_result(raw: Any) -> CallToolResult:
    """Wrap a handler's raw return value in the ``tools/call`` result envelope."""
    if isinstance(raw, CallToolResult):
        return raw
    if isinstance(raw, TextContent):
        return CallToolResult(content=[raw])
    if isinstance(raw, list) and raw and all(isinstance(block, TextContent) for block in raw):
        return CallToolResult(content=raw)
    if isinstance(raw, str):
        text = raw
    else:
        if hasattr(raw, "model_dump"):
            raw = raw.model_dump(mode="json")
        text = json.dumps({} if raw is None else raw, default=str)
    return CallToolResult(content=[TextContent(text=text)])


def to_resource_contents(raw: Any, resource: Resource) -> list[ResourceContents]:
    """Turn a reader's return value into ``resources/read`` content blocks.

    Text keeps the resource's MIME type, bytes are base64-encoded into
    ``blob`` and other values are JSON-encoded.
    """
    if isinstance(raw, ResourceContents):
        return [raw]
    if isinstance(raw, list) and raw and all(isinstance(block, ResourceContents) for block in raw):
        return raw
    if isinstance(raw, str):
        return [ResourceContents(uri=resource.uri, mime_type=resource.mime_type or "text/plain", text=raw)]
    if isinstance(raw, bytes | bytearray):
        return [
            ResourceContents(
                uri=resource.uri,
                mime_type=resource.mime_type or "application/octet-stream",
                blob=base64.b64encode(raw).decode("ascii"),
            )
        ]
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump(mode="json")
    return [
        ResourceContents(
            uri=resource.uri,
            mime_type=resource.mime_type or "application/json",
            text=json.dumps(raw, default=str),
        )
    ]


def _wrap_result(raw: Any, tool_name: str) -> CallToolResult:
    try:
        return to_call_result(raw)
    except (TypeError, ValueError) as e:
        raise InternalError(
            f"Tool '{tool_name}' returned a result that cannot be encoded: {e}",
            data={"name": tool_name},
        ) from e


class Dispatcher:
    """Executes tool calls, prompt renders and resource reads against a registry.

    The dispatcher keeps no per-call state; ``_abandoned`` only holds
    references to timed-out handler tasks so they are not garbage collected
    while still running.
    """

    def __init__(self, registry: ServiceRegistry, timeout: float | None = 30.0) -> None:
        self.registry = registry
        self.timeout = timeout
        self._abandoned: set[asyncio.Task] = set()

    async def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        request_id: str | int | None = None,
        timeout: float | None = None,
    ) -> CallToolResult:
        """Resolve, validate and execute one tool call.

        Raises:
            MethodNotFound: No service exposes ``name``.
            InvalidParams: Arguments violate the tool's input schema.
            InternalError: The handler raised.
            Timeout: The handler exceeded its execution budget.
        """
        arguments = {} if arguments is None else arguments
        budget = self.timeout if timeout is None else timeout
        state = DispatchState.RECEIVED
        log = logger.bind(tool_name=name, request_id=request_id)
        start = time.perf_counter()

        try:
            state = DispatchState.RESOLVING
            entry = self.registry.resolve(name)
            log = log.bind(service=entry.service.name)

            state = DispatchState.VALIDATING
            validated = entry.item.validate(arguments)

            state = DispatchState.EXECUTING
            log.debug("tool_call_executing", timeout=budget)
            context = CallContext(
                tool_name=entry.item.name,
                service_name=entry.service.name,
                request_id=request_id,
                deadline=None if budget is None else time.monotonic() + budget,
            )
            raw = await self._execute(entry.item, validated, context, budget)
            result = _wrap_result(raw, context.tool_name)
        except ProxyError as e:
            elapsed = time.perf_counter() - start
            log.warning(
                "tool_call_failed",
                state=str(DispatchState.FAILED),
                failed_while=str(state),
                error_code=e.code,
                error=e.message,
                duration_ms=round(elapsed * 1000, 2),
            )
            record_tool_call(name, type(e).__name__, elapsed)
            raise

        elapsed = time.perf_counter() - start
        log.info("tool_call_completed", state=str(DispatchState.COMPLETED), duration_ms=round(elapsed * 1000, 2))
        record_tool_call(name, "success", elapsed)
        return result

    async def _execute(
        self,
        target: Any,
        arguments: Any,
        context: CallContext,
        budget: float | None,
    ) -> Any:
        if target.is_async:
            task = asyncio.ensure_future(target.invoke(arguments, context))
        else:
            # Synchronous handlers run in a worker thread and cannot be cancelled
            task = asyncio.ensure_future(asyncio.to_thread(target.invoke, arguments, context))

        try:
            done, _ = await asyncio.wait({task}, timeout=budget)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            context.cancelled.set()
            task.cancel()
            self._abandon(task)
            raise Timeout(
                f"'{context.tool_name}' exceeded its {budget}s execution budget",
                data={"name": context.tool_name, "timeout": budget},
            )

        try:
            return task.result()
        except asyncio.CancelledError as e:
            raise InternalError(f"'{context.tool_name}' was cancelled") from e
        except Exception as e:
            logger.exception("handler_raised", tool_name=context.tool_name)
            raise InternalError(str(e) or type(e).__name__, data={"name": context.tool_name}) from e

    def _abandon(self, task: asyncio.Task) -> None:
        self._abandoned.add(task)

        def _forget(t: asyncio.Task) -> None:
            self._abandoned.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning(
                    "abandoned_handler_failed",
                    error=str(t.exception()),
                )

        task.add_done_callback(_forget)

    async def get_prompt(self, name: str, arguments: Mapping[str, Any] | None = None) -> GetPromptResult:
        """Resolve a prompt, validate its arguments and render it.

        Raises:
            MethodNotFound: No service exposes ``name``.
            InvalidParams: Arguments violate the prompt's input schema.
        """
        entry = self.registry.resolve_prompt(name)
        validated = entry.item.validate(arguments or {})
        text = entry.item.render(validated)
        logger.info("prompt_rendered", prompt=name, service=entry.service.name)
        return GetPromptResult(
            description=entry.item.description,
            messages=[PromptMessage(role="user", content=TextContent(text=text))],
        )

    async def read_resource(
        self,
        uri: str,
        request_id: str | int | None = None,
        timeout: float | None = None,
    ) -> ReadResourceResult:
        """Resolve a resource by URI and run its reader under the call timeout.

        Raises:
            NotFound: No service serves ``uri``.
            InternalError: The reader raised or returned unencodable content.
            Timeout: The reader exceeded its execution budget.
        """
        budget = self.timeout if timeout is None else timeout
        log = logger.bind(uri=uri, request_id=request_id)
        label = uri
        start = time.perf_counter()

        try:
            entry = self.registry.resolve_resource(uri)
            label = entry.exposed_name
            context = CallContext(
                tool_name=entry.exposed_name,
                service_name=entry.service.name,
                request_id=request_id,
                deadline=None if budget is None else time.monotonic() + budget,
            )
            raw = await self._execute(entry.item, uri, context, budget)
            try:
                contents = to_resource_contents(raw, entry.item)
            except (TypeError, ValueError) as e:
                raise InternalError(
                    f"Resource '{uri}' returned content that cannot be encoded: {e}",
                    data={"uri": uri},
                ) from e
        except ProxyError as e:
            elapsed = time.perf_counter() - start
            log.warning("resource_read_failed", error_code=e.code, error=e.message)
            record_resource_read(label, type(e).__name__, elapsed)
            raise

        elapsed = time.perf_counter() - start
        log.info("resource_read", resource=label, duration_ms=round(elapsed * 1000, 2))
        record_resource_read(label, "success", elapsed)
        return ReadResourceResult(contents=contents)
