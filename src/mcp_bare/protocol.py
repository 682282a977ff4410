"""
JSON-RPC 2.0 envelope handling.

This module parses incoming JSON-RPC messages and formats responses. It sits
between a transport (which moves bytes) and the dispatcher (which only sees
``method`` and ``params``).

Error mapping:
- -32700: Parse error (malformed JSON)
- -32600: Invalid Request (missing/invalid jsonrpc, method, etc.)
- any MCPError: serialized with its own code, message and data
- anything else: -32603 Internal error, original message preserved
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from mcp_bare.errors import (
    InternalError,
    InvalidRequestError,
    MCPError,
    ParseError,
)

JSONRPC_VERSION = "2.0"

RequestId = str | int | None


@dataclass
class JSONRPCRequest:
    """
    A parsed JSON-RPC 2.0 request or notification.

    Attributes:
        method: The MCP method to invoke.
        params: Parameters for the method (empty dict when absent).
        id: Request identifier, None for notifications.
    """

    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: RequestId = None
    has_id: bool = True

    @property
    def is_notification(self) -> bool:
        """A message without an ``id`` member expects no response."""
        return not self.has_id


@dataclass
class JSONRPCResponse:
    """
    A JSON-RPC 2.0 response. Exactly one of result or error is set.
    """

    id: RequestId
    result: Any | None = None
    error: MCPError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        response: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
        if self.error is not None:
            response["error"] = self.error.to_dict()
        else:
            response["result"] = self.result
        response["id"] = self.id
        return response

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


def parse_request(message: str | bytes | dict[str, Any]) -> JSONRPCRequest:
    """
    Parse a JSON-RPC 2.0 message.

    Args:
        message: Raw JSON text, or an already-decoded object.

    Returns:
        The parsed JSONRPCRequest.

    Raises:
        ParseError: If the text is not valid JSON.
        InvalidRequestError: If the message is not a valid JSON-RPC request.

    Example:
        >>> request = parse_request('{"jsonrpc":"2.0","id":1,"method":"ping"}')
        >>> request.method
        'ping'
    """
    if isinstance(message, str | bytes):
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Parse error: {e}") from e
    else:
        data = message

    if not isinstance(data, dict):
        raise InvalidRequestError("Invalid Request: message must be a JSON object")

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise InvalidRequestError("Invalid JSON-RPC version")

    method = data.get("method")
    if not isinstance(method, str) or not method:
        raise InvalidRequestError("Invalid Request: 'method' must be a non-empty string")

    request_id = data.get("id")
    if request_id is not None and (
        isinstance(request_id, bool) or not isinstance(request_id, str | int)
    ):
        raise InvalidRequestError("Invalid Request: 'id' must be a string or number")

    params = data.get("params")
    if params is None:
        params = {}
    elif not isinstance(params, dict):
        raise InvalidRequestError("Invalid Request: 'params' must be an object")

    return JSONRPCRequest(
        method=method,
        params=params,
        id=request_id,
        has_id="id" in data,
    )


def format_success_response(request_id: RequestId, result: Any) -> JSONRPCResponse:
    """Build a success response for ``request_id``."""
    return JSONRPCResponse(id=request_id, result=result)


def format_error_response(request_id: RequestId, error: MCPError) -> JSONRPCResponse:
    """Build an error response for ``request_id`` (None for parse errors)."""
    return JSONRPCResponse(id=request_id, error=error)


def error_to_jsonrpc(exc: BaseException) -> MCPError:
    """
    Map any exception to a typed protocol error.

    MCPError instances pass through unchanged; anything else becomes an
    InternalError carrying the original message.
    """
    if isinstance(exc, MCPError):
        return exc
    return InternalError.wrap(exc)


def format_notification(method: str, params: dict[str, Any] | None = None) -> str:
    """Serialize a server-to-client notification (no ``id`` member)."""
    return json.dumps(
        {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params or {}},
        separators=(",", ":"),
        default=str,
    )
