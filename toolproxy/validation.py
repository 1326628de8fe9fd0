"""Structural validation of tool arguments against JSON Schema.

Only the subset of JSON Schema that tool declarations actually use is
understood. Validation is structural: types, required properties, and any
bounds or patterns the schema declares. Unknown properties are accepted unless
the schema sets ``additionalProperties``.

All violations are collected so a caller can fix every problem in one
round-trip.
"""

import math
import re
from collections.abc import Iterator, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from toolproxy.errors import InvalidParams

JSON_TYPES = frozenset({"string", "number", "integer", "boolean", "object", "array", "null"})


@dataclass(frozen=True)
class Violation:
    """A single schema violation."""

    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class SchemaValidationError(InvalidParams):
    """Arguments do not match the tool's input schema."""

    def __init__(self, violations: list[Violation]) -> None:
        self.violations = violations
        summary = "; ".join(f"{v.path}: {v.message}" for v in violations)
        super().__init__(
            f"Invalid arguments: {summary}",
            data={"violations": [v.to_dict() for v in violations]},
        )


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "null":
        return value is None
    if type_name == "object":
        return isinstance(value, Mapping)
    if type_name == "array":
        return isinstance(value, list | tuple)
    # bool is an int subclass but never a JSON number
    if isinstance(value, bool):
        return False
    if type_name == "number":
        return isinstance(value, int | float) and not (
            isinstance(value, float) and math.isnan(value)
        )
    if type_name == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    return False


def _type_label(value: Any) -> str:
    for name in ("null", "boolean", "integer", "number", "string", "array", "object"):
        if _matches_type(value, name):
            return name
    return type(value).__name__


def _join(path: str, key: str | int) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else key


def iter_errors(schema: Mapping[str, Any], value: Any, path: str = "") -> Iterator[Violation]:
    """Yield every violation of ``schema`` by ``value``."""
    where = path or "$"

    if "anyOf" in schema:
        branches = schema["anyOf"]
        if not any(next(iter_errors(branch, value, path), None) is None for branch in branches):
            yield Violation(where, "does not match any allowed schema")
            return

    declared = schema.get("type")
    if declared is not None:
        allowed = [declared] if isinstance(declared, str) else list(declared)
        if not any(_matches_type(value, t) for t in allowed):
            yield Violation(
                where, f"expected {' or '.join(allowed)}, got {_type_label(value)}"
            )
            # Nested checks on a mistyped value only add noise
            return

    if "enum" in schema and value not in schema["enum"]:
        yield Violation(where, f"must be one of {schema['enum']!r}")
    if "const" in schema and value != schema["const"]:
        yield Violation(where, f"must equal {schema['const']!r}")

    if isinstance(value, str):
        yield from _string_errors(schema, value, where)
    elif _matches_type(value, "number"):
        yield from _number_errors(schema, value, where)
    elif isinstance(value, Mapping):
        yield from _object_errors(schema, value, path)
    elif isinstance(value, list | tuple):
        yield from _array_errors(schema, value, path)


def _string_errors(schema: Mapping[str, Any], value: str, where: str) -> Iterator[Violation]:
    if "minLength" in schema and len(value) < schema["minLength"]:
        yield Violation(where, f"shorter than {schema['minLength']} characters")
    if "maxLength" in schema and len(value) > schema["maxLength"]:
        yield Violation(where, f"longer than {schema['maxLength']} characters")
    if "pattern" in schema and re.search(schema["pattern"], value) is None:
        yield Violation(where, f"does not match pattern {schema['pattern']!r}")


def _number_errors(schema: Mapping[str, Any], value: float, where: str) -> Iterator[Violation]:
    if "minimum" in schema and value < schema["minimum"]:
        yield Violation(where, f"less than minimum {schema['minimum']}")
    if "maximum" in schema and value > schema["maximum"]:
        yield Violation(where, f"greater than maximum {schema['maximum']}")
    if "exclusiveMinimum" in schema and value <= schema["exclusiveMinimum"]:
        yield Violation(where, f"must be greater than {schema['exclusiveMinimum']}")
    if "exclusiveMaximum" in schema and value >= schema["exclusiveMaximum"]:
        yield Violation(where, f"must be less than {schema['exclusiveMaximum']}")


def _object_errors(
    schema: Mapping[str, Any], value: Mapping[str, Any], path: str
) -> Iterator[Violation]:
    properties: Mapping[str, Any] = schema.get("properties", {})

    for name in schema.get("required", []):
        if name not in value:
            yield Violation(_join(path, name), "required property is missing")

    additional = schema.get("additionalProperties", True)
    for name, item in value.items():
        if name in properties:
            yield from iter_errors(properties[name], item, _join(path, name))
        elif additional is False:
            yield Violation(_join(path, name), "unexpected property")
        elif isinstance(additional, Mapping):
            yield from iter_errors(additional, item, _join(path, name))


def _array_errors(schema: Mapping[str, Any], value: list | tuple, path: str) -> Iterator[Violation]:
    where = path or "$"
    if "minItems" in schema and len(value) < schema["minItems"]:
        yield Violation(where, f"fewer than {schema['minItems']} items")
    if "maxItems" in schema and len(value) > schema["maxItems"]:
        yield Violation(where, f"more than {schema['maxItems']} items")
    items = schema.get("items")
    if isinstance(items, Mapping):
        for index, item in enumerate(value):
            yield from iter_errors(items, item, _join(path, index))


def validate(schema: Mapping[str, Any], arguments: Any) -> None:
    """Validate ``arguments`` against ``schema``.

    Raises:
        SchemaValidationError: Listing every violation found.
    """
    violations = list(iter_errors(schema, arguments))
    if violations:
        raise SchemaValidationError(violations)


def check_schema(schema: Any) -> list[str]:
    """Return the problems that make ``schema`` unusable as a tool input schema.

    A usable input schema is an object schema whose ``required`` entries all
    name declared ``properties``, and whose nested schemas use known types and
    compilable patterns. An empty list means the schema is fine.
    """
    if not isinstance(schema, Mapping):
        return ["input schema must be a mapping"]

    problems: list[str] = []
    if schema.get("type", "object") != "object":
        problems.append(f"input schema type must be 'object', got {schema.get('type')!r}")

    properties = schema.get("properties", {})
    if not isinstance(properties, Mapping):
        problems.append("'properties' must be a mapping")
        properties = {}

    required = schema.get("required", [])
    if not isinstance(required, list):
        problems.append("'required' must be a list")
        required = []
    undeclared = [name for name in required if name not in properties]
    if undeclared:
        problems.append(f"required properties not declared: {', '.join(map(str, undeclared))}")

    for name, prop in properties.items():
        problems.extend(f"{name}: {p}" for p in _check_property(prop))
    additional = schema.get("additionalProperties")
    if isinstance(additional, Mapping):
        problems.extend(f"additionalProperties: {p}" for p in _check_property(additional))
    return problems


def _check_property(prop: Any) -> list[str]:
    if not isinstance(prop, Mapping):
        return ["property schema must be a mapping"]

    problems: list[str] = []
    declared = prop.get("type")
    names = [] if declared is None else [declared] if isinstance(declared, str) else list(declared)
    unknown = [n for n in names if n not in JSON_TYPES]
    if unknown:
        problems.append(f"unknown type {', '.join(map(str, unknown))}")

    if "pattern" in prop:
        try:
            re.compile(prop["pattern"])
        except (re.error, TypeError) as e:
            problems.append(f"invalid pattern {prop['pattern']!r}: {e}")

    if "properties" in prop and ("object" in names or declared is None):
        problems.extend(check_schema({**prop, "type": "object"}))
    items = prop.get("items")
    if isinstance(items, Mapping):
        problems.extend(f"[]: {p}" for p in _check_property(items))
    for key in ("anyOf", "oneOf", "allOf"):
        for n, branch in enumerate(prop.get(key, [])):
            problems.extend(f"{key}[{n}]: {p}" for p in _check_property(branch))
    return problems
