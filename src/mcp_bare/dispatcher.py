"""
MCP request dispatch.

The RequestDispatcher is the single entry point transports call into. It maps
an MCP method name to its handler through a method table, and either returns
the result object or raises a typed MCPError:

    initialize                      server identity and capabilities
    ping                            liveness probe
    tools/list, tools/call          tool discovery and invocation
    resources/list                  registered resources
    resources/templates/list        registered resource templates
    resources/read                  exact resource or template read
    resources/subscribe             add the caller to a URI's subscribers
    resources/unsubscribe           remove the caller from a URI's subscribers
    notifications/initialized       client notifications, forwarded to an
    notifications/cancelled         optional callback
    notifications/roots/list_changed

Any exception that is not an MCPError is wrapped as InternalError.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from mcp_bare.activity import ActivityRecorder
from mcp_bare.content import normalize_tool_result
from mcp_bare.errors import (
    InternalError,
    InvalidParamsError,
    MCPError,
    MissingParameterError,
    UnknownCapabilityError,
    UnknownMethodError,
)
from mcp_bare.logging import get_logger
from mcp_bare.registry import CapabilityRegistry
from mcp_bare.schema import SchemaValidationError
from mcp_bare.subscriptions import DEFAULT_SUBSCRIBER_ID, SubscriptionLedger

logger = get_logger(__name__)

DEFAULT_PROTOCOL_VERSION = "2025-11-25"

# Out-of-band parameter a transport may inject to identify the connection
SUBSCRIBER_ID_PARAM = "_subscriberId"

CLIENT_NOTIFICATIONS = frozenset(
    {
        "notifications/initialized",
        "notifications/cancelled",
        "notifications/roots/list_changed",
    }
)

ClientNotificationCallback = Callable[[str, dict[str, Any]], Awaitable[None] | None]


@dataclass(frozen=True)
class ServerInfo:
    """Identity reported by ``initialize``."""

    name: str = "mcp-server"
    version: str = "1.0.0"
    protocol_version: str = DEFAULT_PROTOCOL_VERSION
    instructions: str | None = None


@dataclass(frozen=True)
class _Call:
    params: dict[str, Any]
    subscriber_id: str


class RequestDispatcher:
    """
    Method-table dispatcher for MCP requests.

    Example:
        >>> dispatcher = RequestDispatcher(registry, ledger, recorder)
        >>> await dispatcher.dispatch("tools/call", {"name": "add", "arguments": {"a": 1, "b": 2}})
        {'content': [{'type': 'text', 'text': '3'}]}
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        ledger: SubscriptionLedger,
        recorder: ActivityRecorder,
        info: ServerInfo | None = None,
        on_client_notification: ClientNotificationCallback | None = None,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.recorder = recorder
        self.info = info or ServerInfo()
        self._on_client_notification = on_client_notification
        self._methods: dict[str, Callable[[_Call], Awaitable[dict[str, Any]]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/templates/list": self._list_resource_templates,
            "resources/read": self._read_resource,
            "resources/subscribe": self._subscribe,
            "resources/unsubscribe": self._unsubscribe,
        }

    def set_client_notification_callback(
        self, callback: ClientNotificationCallback | None
    ) -> None:
        self._on_client_notification = callback

    @property
    def methods(self) -> list[str]:
        """Every method name this dispatcher accepts."""
        return [*self._methods, *sorted(CLIENT_NOTIFICATIONS)]

    async def dispatch(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        subscriber_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Dispatch one MCP method call.

        Args:
            method: MCP method name.
            params: Request parameters (None is treated as empty).
            subscriber_id: Connection identifier supplied by the transport.
                Falls back to the ``_subscriberId`` parameter, then to the
                fixed default identifier.

        Returns:
            The method's result object.

        Raises:
            MCPError: A typed protocol error for every failure.
        """
        call_params = dict(params or {})
        if subscriber_id is None:
            subscriber_id = call_params.pop(SUBSCRIBER_ID_PARAM, None) or DEFAULT_SUBSCRIBER_ID
        else:
            call_params.pop(SUBSCRIBER_ID_PARAM, None)
        call = _Call(params=call_params, subscriber_id=subscriber_id)

        if method in CLIENT_NOTIFICATIONS:
            return await self._client_notification(method, call)

        handler = self._methods.get(method)
        if handler is None:
            raise UnknownMethodError(method)

        try:
            return await handler(call)
        except MCPError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error dispatching request",
                extra={"method": method},
            )
            raise InternalError.wrap(e) from e

    # ----- lifecycle -----

    async def _initialize(self, call: _Call) -> dict[str, Any]:
        result: dict[str, Any] = {
            "protocolVersion": self.info.protocol_version,
            "serverInfo": {"name": self.info.name, "version": self.info.version},
            "capabilities": {
                "tools": {"listChanged": True},
                "resources": {"subscribe": True, "listChanged": True},
            },
        }
        if self.info.instructions:
            result["instructions"] = self.info.instructions
        client = call.params.get("clientInfo")
        logger.info(
            "Client initialized",
            extra={
                "client": client.get("name") if isinstance(client, Mapping) else None,
                "client_protocol_version": call.params.get("protocolVersion"),
            },
        )
        return result

    async def _ping(self, call: _Call) -> dict[str, Any]:
        return {}

    async def _client_notification(self, method: str, call: _Call) -> dict[str, Any]:
        if self._on_client_notification is None:
            return {}
        try:
            outcome = self._on_client_notification(method, call.params)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            # Client notifications expect no response; nothing to report to.
            logger.exception("Client notification callback failed", extra={"method": method})
        return {}

    # ----- tools -----

    async def _list_tools(self, call: _Call) -> dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self.registry.list_tools()]}

    async def _call_tool(self, call: _Call) -> dict[str, Any]:
        name = call.params.get("name")
        tool = self.registry.get_tool(name) if isinstance(name, str) else None
        if tool is None:
            error = UnknownCapabilityError(name)
            self.recorder.record(str(name), False, error.message)
            raise error

        arguments = call.params.get("arguments")
        try:
            validated = tool.schema.validate(arguments if arguments is not None else {})
        except SchemaValidationError as e:
            error = InvalidParamsError(
                message=f"Invalid arguments for tool '{tool.name}': {e}",
                data={"issues": e.to_list()},
            )
            self.recorder.record(tool.name, False, error.message)
            raise error from e

        try:
            outcome = tool.handler(validated)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except MCPError as e:
            self.recorder.record(tool.name, False, e.message)
            logger.warning(
                "Tool call failed",
                extra={"tool": tool.name, "code": e.code, "error": e.message},
            )
            raise
        except Exception as e:
            self.recorder.record(tool.name, False, str(e) or type(e).__name__)
            logger.warning(
                "Tool raised an unexpected exception",
                extra={"tool": tool.name, "exception_type": type(e).__name__},
                exc_info=True,
            )
            raise InternalError.wrap(e) from e

        self.recorder.record(tool.name, True)
        return normalize_tool_result(outcome)

    # ----- resources -----

    async def _list_resources(self, call: _Call) -> dict[str, Any]:
        return {
            "resources": [resource.to_dict() for resource in self.registry.list_resources()]
        }

    async def _list_resource_templates(self, call: _Call) -> dict[str, Any]:
        return {
            "resourceTemplates": [
                template.to_dict() for template in self.registry.list_resource_templates()
            ]
        }

    @staticmethod
    def _require_uri(call: _Call) -> str:
        uri = call.params.get("uri")
        if not uri or not isinstance(uri, str):
            raise MissingParameterError("uri")
        return uri

    async def _read_resource(self, call: _Call) -> dict[str, Any]:
        uri = self._require_uri(call)
        return {"contents": [await self.registry.read_resource(uri)]}

    async def _subscribe(self, call: _Call) -> dict[str, Any]:
        uri = self._require_uri(call)
        self.ledger.subscribe(uri, call.subscriber_id)
        logger.debug(
            "Subscribed", extra={"uri": uri, "subscriber_id": call.subscriber_id}
        )
        return {}

    async def _unsubscribe(self, call: _Call) -> dict[str, Any]:
        uri = self._require_uri(call)
        self.ledger.unsubscribe(uri, call.subscriber_id)
        logger.debug(
            "Unsubscribed", extra={"uri": uri, "subscriber_id": call.subscriber_id}
        )
        return {}
