"""
Error types for the mcp-bare server core.

This module defines the MCPError base class and the typed protocol errors the
dispatcher raises. Every MCPError carries a JSON-RPC error code, a message and
optional structured data, so transports can serialize it verbatim.

Registration mistakes are reported separately with InvalidDefinitionError,
which never reaches the wire.
"""

from __future__ import annotations

from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# MCP-specific codes
RESOURCE_NOT_FOUND = -32002

# Default code for errors raised deliberately by tool handlers
DEFAULT_TOOL_ERROR = -32000


class MCPError(Exception):
    """
    Base exception class for typed protocol errors.

    An MCPError raised anywhere below the dispatcher passes through to the
    transport unchanged and is serialized as a JSON-RPC error object.

    Attributes:
        code: Integer JSON-RPC error code.
        message: Human-readable error message.
        data: Optional structured error data.

    Example:
        >>> raise MCPError(code=-32010, message="Quota exceeded", data={"limit": 5})
    """

    def __init__(
        self,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> None:
        """
        Initialize an MCPError.

        Args:
            code: Integer error code.
            message: Human-readable error message.
            data: Optional structured error data.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"code={self.code!r}, "
            f"message={self.message!r}, "
            f"data={self.data!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a JSON-RPC error object.

        Returns:
            Dictionary with code, message, and optionally data.
        """
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


class ParseError(MCPError):
    """Raised when an incoming message is not valid JSON."""

    def __init__(self, message: str = "Parse error", data: Any | None = None) -> None:
        super().__init__(code=PARSE_ERROR, message=message, data=data)


class InvalidRequestError(MCPError):
    """Raised when a message is valid JSON but not a valid JSON-RPC envelope."""

    def __init__(
        self, message: str = "Invalid Request", data: Any | None = None
    ) -> None:
        super().__init__(code=INVALID_REQUEST, message=message, data=data)


class UnknownMethodError(MCPError):
    """
    Error raised when the dispatcher receives an unrecognized method.

    Maps to JSON-RPC "Method not found" (-32601).
    """

    def __init__(self, method: str) -> None:
        """Initialize an UnknownMethodError for the given method name."""
        super().__init__(
            code=METHOD_NOT_FOUND,
            message=f"Unknown method: {method}",
            data={"method": method},
        )
        self.method = method


class InvalidParamsError(MCPError):
    """
    Error raised when request parameters are missing or rejected.

    Validation failures carry the per-field issues as
    ``data = {"issues": [{"path": ..., "message": ...}, ...]}``.
    """

    def __init__(self, message: str, data: Any | None = None) -> None:
        """Initialize an InvalidParamsError."""
        super().__init__(code=INVALID_PARAMS, message=message, data=data)


class MissingParameterError(InvalidParamsError):
    """Error raised when a required request parameter is absent."""

    def __init__(self, parameter: str) -> None:
        """Initialize a MissingParameterError for the given parameter name."""
        super().__init__(
            message=f"Missing {parameter} parameter",
            data={"parameter": parameter},
        )
        self.parameter = parameter


class UnknownCapabilityError(InvalidParamsError):
    """
    Error raised when tools/call names a tool that is not registered.

    This is an invalid-params error rather than an unknown method: the
    method exists, its argument does not resolve.
    """

    def __init__(self, name: str | None) -> None:
        """Initialize an UnknownCapabilityError for the given tool name."""
        super().__init__(
            message=f"Unknown tool: {name}",
            data={"tool": name},
        )
        self.name = name


class InternalError(MCPError):
    """
    Error raised for unexpected exceptions inside a capability.

    The original exception message is preserved; its type is reported in
    ``data.exception_type``.
    """

    def __init__(self, message: str, data: Any | None = None) -> None:
        """Initialize an InternalError."""
        super().__init__(code=INTERNAL_ERROR, message=message, data=data)

    @classmethod
    def wrap(cls, exc: BaseException) -> InternalError:
        """
        Wrap an arbitrary exception as an InternalError.

        Args:
            exc: The exception to wrap.

        Returns:
            InternalError with the original message preserved.
        """
        return cls(
            message=str(exc) or type(exc).__name__,
            data={"exception_type": type(exc).__name__},
        )


class ResourceNotFoundError(MCPError):
    """Error raised when no resource or template matches a read URI."""

    def __init__(self, uri: str) -> None:
        """Initialize a ResourceNotFoundError for the given URI."""
        super().__init__(
            code=RESOURCE_NOT_FOUND,
            message=f"Resource not found: {uri}",
            data={"uri": uri},
        )
        self.uri = uri


class ToolError(MCPError):
    """
    Error raised deliberately by a tool handler.

    By convention custom codes are below -32000; the default is -32000.

    Example:
        >>> raise ToolError("Rate limited", code=-32029, data={"retry_after": 30})
    """

    def __init__(
        self,
        message: str,
        code: int = DEFAULT_TOOL_ERROR,
        data: Any | None = None,
    ) -> None:
        """Initialize a ToolError."""
        super().__init__(code=code, message=message, data=data)


class InvalidDefinitionError(ValueError):
    """
    Error raised when a tool, resource, or template definition is incomplete.

    Raised synchronously from the registration call; nothing is registered.
    """
