"""Error taxonomy for the proxy.

Every failure the proxy reports is a ``ProxyError`` carrying a JSON-RPC error
code, a human-readable message and optional structured ``data``. The protocol
adapter turns these into wire error objects; nothing else in the core catches
them.
"""

from typing import Any

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Implementation-defined server errors (-32000 to -32099)
UNSUPPORTED_PROTOCOL_VERSION = -32000
TIMEOUT = -32001
AMBIGUOUS_TOOL = -32002
DUPLICATE_SERVICE_NAME = -32003
INVALID_SERVICE = -32004
NOT_FOUND = -32005
MALFORMED_ARGUMENTS = -32006


class ProxyError(Exception):
    """Base error for all proxy failures."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-RPC error object."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class ParseError(ProxyError):
    """The request body is not valid JSON."""

    code = PARSE_ERROR


class InvalidRequest(ProxyError):
    """The JSON payload is not a valid JSON-RPC request object."""

    code = INVALID_REQUEST


class MethodNotFound(ProxyError):
    """Unknown protocol method, tool or prompt name."""

    code = METHOD_NOT_FOUND


class InvalidParams(ProxyError):
    """Arguments failed schema validation.

    ``data["violations"]`` lists every violated field, not only the first.
    """

    code = INVALID_PARAMS


class InternalError(ProxyError):
    """A handler raised while executing."""

    code = INTERNAL_ERROR


class UnsupportedProtocolVersion(ProxyError):
    """The client asked for a protocol version this server does not speak."""

    code = UNSUPPORTED_PROTOCOL_VERSION


class Timeout(ProxyError):
    """A handler exceeded its execution budget."""

    code = TIMEOUT


class AmbiguousTool(ProxyError):
    """Two services expose the same tool or prompt name."""

    code = AMBIGUOUS_TOOL


class DuplicateServiceName(ProxyError):
    """A service with the same name is already registered."""

    code = DUPLICATE_SERVICE_NAME


class InvalidService(ProxyError):
    """A service declaration is inconsistent (tool without handler, bad schema)."""

    code = INVALID_SERVICE


class NotFound(ProxyError):
    """The named service is not registered."""

    code = NOT_FOUND


class MalformedArguments(ProxyError):
    """A provider tool call carried an argument blob that is not a JSON object."""

    code = MALFORMED_ARGUMENTS
