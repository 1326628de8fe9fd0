"""Translation between LLM provider tool calls and proxy tool-call requests.

An orchestration client receives function calls from a model as a function
name plus a JSON-encoded argument object. ``from_provider_call`` turns that
into a ``ToolCallRequest`` whose ``parameters`` keep the key order of the
decoded object; ``to_arguments`` flattens it back into the ``arguments``
mapping a ``tools/call`` request carries.

The helpers at the bottom handle OpenAI "strict mode": ``strictify_schema``
rewrites an input schema into the form strict mode accepts, and
``relax_strict_call`` undoes the nulls strict mode forces into a call.

All functions here are pure; nothing in the dispatcher depends on them.
"""

import json
from collections.abc import Mapping
from typing import Any

from toolproxy.errors import MalformedArguments
from toolproxy.logging import get_logger
from toolproxy.schemas.mcp import ToolCallParameter, ToolCallRequest, ToolDefinition

logger = get_logger(__name__)

# Keywords OpenAI strict mode rejects
STRICT_UNSUPPORTED_KEYWORDS = (
    "format",
    "default",
    "minItems",
    "maxItems",
    "minLength",
    "maxLength",
    "examples",
    "minimum",
    "maximum",
)


def _decode_arguments(blob: Any) -> dict[str, Any]:
    if isinstance(blob, Mapping):
        return dict(blob)
    if blob is None or blob == "" or blob == b"":
        return {}
    if not isinstance(blob, str | bytes | bytearray):
        raise MalformedArguments(
            f"Tool call arguments must be JSON text, got {type(blob).__name__}"
        )
    try:
        decoded = json.loads(blob)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        reason = e.msg if isinstance(e, json.JSONDecodeError) else e.reason
        raise MalformedArguments(
            f"Tool call arguments are not valid JSON: {reason}",
            data={"arguments": blob if isinstance(blob, str) else blob.decode(errors="replace")},
        ) from e
    if not isinstance(decoded, dict):
        raise MalformedArguments(
            f"Tool call arguments must be a JSON object, got {type(decoded).__name__}"
        )
    return decoded


def from_provider_call(raw: Mapping[str, Any]) -> ToolCallRequest:
    """Convert a provider function call into a ``ToolCallRequest``.

    Accepts either an OpenAI ``tool_calls`` entry
    (``{"id": ..., "type": "function", "function": {"name", "arguments"}}``)
    or a bare ``{"name", "arguments"}`` function object.

    Raises:
        MalformedArguments: The call has no name, or its arguments are not a
            JSON object.
    """
    if not isinstance(raw, Mapping):
        raise MalformedArguments(f"Tool call must be a JSON object, got {type(raw).__name__}")
    function = raw.get("function", raw)
    if not isinstance(function, Mapping) or not function.get("name"):
        raise MalformedArguments("Tool call has no function name")

    arguments = _decode_arguments(function.get("arguments"))
    return ToolCallRequest(
        tool_name=function["name"],
        parameters=[
            ToolCallParameter(parameter_name=key, parameter_value=value)
            for key, value in arguments.items()
        ],
    )


def to_arguments(request: ToolCallRequest) -> dict[str, Any]:
    """Rebuild the arguments object from an ordered parameter list."""
    return {p.parameter_name: p.parameter_value for p in request.parameters}


def to_provider_call(request: ToolCallRequest, call_id: str | None = None) -> dict[str, Any]:
    """Render a ``ToolCallRequest`` as an OpenAI ``tool_calls`` entry."""
    return {
        "id": call_id or "",
        "type": "function",
        "function": {
            "name": request.tool_name,
            "arguments": json.dumps(to_arguments(request)),
        },
    }


def to_provider_tools(definitions: list[ToolDefinition], strict: bool = False) -> list[dict[str, Any]]:
    """Describe discovered tools as OpenAI function tools."""
    tools = []
    for definition in definitions:
        parameters = definition.input_schema or {"type": "object", "properties": {}}
        function: dict[str, Any] = {
            "name": definition.name,
            "description": definition.description,
            "parameters": strictify_schema(parameters) if strict else parameters,
        }
        if strict:
            function["strict"] = True
        tools.append({"type": "function", "function": function})
    return tools


# =============================================================================
# Strict mode
# =============================================================================


def _nullable(schema: Any) -> dict[str, Any]:
    return {"anyOf": [{"type": "null"}, schema]}


def strictify_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    """Rewrite an object schema for OpenAI strict function calling.

    Every property becomes required; properties that were optional become
    nullable instead. ``additionalProperties`` is closed and keywords strict
    mode rejects are dropped.
    """
    return _strictify(schema, is_required=True)


def _strictify(prop: Any, is_required: bool, path: str = "$") -> Any:
    if not isinstance(prop, Mapping):
        return prop if is_required else _nullable(prop)

    dropped = [k for k in STRICT_UNSUPPORTED_KEYWORDS if k in prop]
    if dropped:
        logger.debug("strict_schema_dropped_keywords", path=path, keywords=dropped)
    rest = {k: v for k, v in prop.items() if k not in STRICT_UNSUPPORTED_KEYWORDS}

    if rest.get("type") == "object":
        properties = rest.get("properties", {})
        required = set(rest.get("required", []))
        rest = {
            **rest,
            "properties": {
                name: _strictify(sub, name in required, f"{path}.{name}")
                for name, sub in properties.items()
            },
            "required": list(properties),
            "additionalProperties": False,
        }
    elif rest.get("type") == "array" and "items" in rest:
        items = rest["items"]
        if isinstance(items, list):
            rest = {**rest, "items": [_strictify(i, True, f"{path}[{n}]") for n, i in enumerate(items)]}
        else:
            rest = {**rest, "items": _strictify(items, True, f"{path}[]")}
    else:
        for key in ("anyOf", "oneOf", "allOf"):
            if key in rest:
                branches = [_strictify(branch, True, f"{path}.{key}") for branch in rest[key]]
                rest = {**rest, key: branches}

    return rest if is_required else _nullable(rest)


def _allows_null(schema: Any) -> bool:
    if not isinstance(schema, Mapping):
        return False
    declared = schema.get("type")
    if declared == "null" or (isinstance(declared, list) and "null" in declared):
        return True
    return any(_allows_null(branch) for branch in schema.get("anyOf", []))


def relax_strict_call(schema: Mapping[str, Any], request: ToolCallRequest) -> ToolCallRequest:
    """Undo strict-mode nulls in a call made against ``strictify_schema(schema)``.

    Parameters the original schema marked optional and that cannot be null are
    dropped when the model sent ``null``. Nested objects are handled the same
    way.

    Raises:
        MalformedArguments: The call carries a parameter the schema does not declare.
    """
    relaxed = _relax(schema, to_arguments(request), "")
    return ToolCallRequest(
        tool_name=request.tool_name,
        parameters=[
            ToolCallParameter(parameter_name=k, parameter_value=v) for k, v in relaxed.items()
        ],
    )


def _relax(schema: Mapping[str, Any], values: Mapping[str, Any], path: str) -> dict[str, Any]:
    if schema.get("type", "object") != "object":
        raise MalformedArguments(f"Schema at '{path or '$'}' is not an object schema")

    properties = schema.get("properties", {})
    required = set(schema.get("required", []))
    relaxed: dict[str, Any] = {}
    for name, value in values.items():
        where = f"{path}.{name}" if path else name
        if name not in properties:
            raise MalformedArguments(
                f"Tool call parameter '{where}' is not declared by the tool",
                data={"parameter": where},
            )
        prop = properties[name]
        if value is None and name not in required and not _allows_null(prop):
            continue
        if isinstance(prop, Mapping) and prop.get("type") == "object" and isinstance(value, Mapping):
            value = _relax(prop, value, where)
        relaxed[name] = value
    return relaxed
