"""
MCP server facade.

MCPServer owns one capability registry, subscription ledger, notification
router, activity recorder and request dispatcher. Applications register
capabilities and push notifications through it; transports call
``dispatch`` (or ``handle_message`` for raw JSON-RPC text) and install their
callbacks on it.

Example:
    >>> server = MCPServer(name="notes", version="0.3.0")
    >>>
    >>> @server.tool("add", parameters=ObjectSchema({"a": NumberSchema(), "b": NumberSchema()}))
    ... async def add(args):
    ...     return {"sum": args["a"] + args["b"]}
    >>>
    >>> await server.dispatch("tools/call", {"name": "add", "arguments": {"a": 2, "b": 3}})
    {'content': [{'type': 'text', 'text': '{"sum":5}'}]}
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from mcp_bare.activity import DEFAULT_MAX_ENTRIES, ActivityCallback, ActivityRecorder
from mcp_bare.dispatcher import (
    DEFAULT_PROTOCOL_VERSION,
    ClientNotificationCallback,
    RequestDispatcher,
    ServerInfo,
)
from mcp_bare.errors import MCPError
from mcp_bare.logging import get_logger
from mcp_bare.notifications import DeliveryCallback, NotificationRouter
from mcp_bare.protocol import (
    error_to_jsonrpc,
    format_error_response,
    format_success_response,
    parse_request,
)
from mcp_bare.registry import (
    CapabilityRegistry,
    Resource,
    ResourceTemplate,
    Tool,
    ToolAnnotations,
    ToolHandler,
)
from mcp_bare.subscriptions import SubscriptionLedger

if TYPE_CHECKING:
    from pydantic import BaseModel

    from mcp_bare.config import AppConfig
    from mcp_bare.schema import Schema

logger = get_logger(__name__)


class MCPServer:
    """
    An independent MCP server instance.

    Attributes:
        registry: Registered tools, resources and templates.
        ledger: Resource subscriptions.
        router: Notification router.
        activity: Tool call history.
        dispatcher: Request dispatcher.
    """

    def __init__(
        self,
        name: str = "mcp-server",
        version: str = "1.0.0",
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
        *,
        instructions: str | None = None,
        max_activity_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self.info = ServerInfo(
            name=name,
            version=version,
            protocol_version=protocol_version,
            instructions=instructions,
        )
        self.registry = CapabilityRegistry()
        self.ledger = SubscriptionLedger()
        self.router = NotificationRouter(self.ledger)
        self.activity = ActivityRecorder(max_entries=max_activity_entries)
        self.dispatcher = RequestDispatcher(
            self.registry, self.ledger, self.activity, info=self.info
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> MCPServer:
        """Create a server from a loaded AppConfig."""
        return cls(
            name=config.server.name,
            version=config.server.version,
            protocol_version=config.server.protocol_version,
            instructions=config.server.instructions,
            max_activity_entries=config.activity.max_entries,
        )

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def version(self) -> str:
        return self.info.version

    @property
    def protocol_version(self) -> str:
        return self.info.protocol_version

    # ========== capabilities ==========

    def add_tool(self, tool: Tool) -> None:
        self.registry.add_tool(tool)

    def add_tools(self, tools: Iterable[Tool]) -> None:
        self.registry.add_tools(tools)

    def add_resource(self, resource: Resource) -> None:
        self.registry.add_resource(resource)

    def add_resources(self, resources: Iterable[Resource]) -> None:
        self.registry.add_resources(resources)

    def add_resource_template(self, template: ResourceTemplate) -> None:
        self.registry.add_resource_template(template)

    def add_resource_templates(self, templates: Iterable[ResourceTemplate]) -> None:
        self.registry.add_resource_templates(templates)

    async def read_resource(self, uri: str) -> dict[str, Any]:
        return await self.registry.read_resource(uri)

    def tool(
        self,
        name: str | None = None,
        *,
        description: str | None = None,
        parameters: Schema | type[BaseModel] | None = None,
        annotations: ToolAnnotations | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """
        Decorator registering a function as a tool.

        Args:
            name: Tool name (defaults to the function name).
            description: Tool description (defaults to the docstring).
            parameters: Argument schema or pydantic model.
            annotations: Optional behavioural hints.

        Example:
            >>> @server.tool("greet", parameters=ObjectSchema({"name": StringSchema()}))
            ... async def greet(args):
            ...     return f"Hello, {args['name']}!"
        """

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.add_tool(
                Tool(
                    name=name or handler.__name__,
                    handler=handler,
                    description=description
                    if description is not None
                    else (handler.__doc__ or "").strip(),
                    parameters=parameters,
                    annotations=annotations,
                )
            )
            return handler

        return decorator

    # ========== subscriptions ==========

    def subscribe(self, uri: str, subscriber_id: str) -> None:
        self.ledger.subscribe(uri, subscriber_id)

    def unsubscribe(self, uri: str, subscriber_id: str) -> None:
        self.ledger.unsubscribe(uri, subscriber_id)

    def get_subscribers(self, uri: str) -> frozenset[str]:
        return self.ledger.get_subscribers(uri)

    def disconnect(self, subscriber_id: str) -> list[str]:
        """Drop every subscription held by a closed connection."""
        removed = self.ledger.unsubscribe_all(subscriber_id)
        if removed:
            logger.debug(
                "Removed subscriptions for disconnected client",
                extra={"subscriber_id": subscriber_id, "uris": removed},
            )
        return removed

    # ========== notifications ==========

    def set_notification_callback(self, callback: DeliveryCallback | None) -> None:
        self.router.set_delivery_callback(callback)

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        self.router.notify(method, params)

    def notify_targeted(
        self, method: str, params: dict[str, Any] | None, targets: Iterable[str]
    ) -> None:
        self.router.notify_targeted(method, params, targets)

    def notify_resource_updated(self, uri: str) -> None:
        self.router.notify_resource_updated(uri)

    def notify_resource_list_changed(self) -> None:
        self.router.notify_resource_list_changed()

    def notify_tool_list_changed(self) -> None:
        self.router.notify_tool_list_changed()

    def notify_progress(
        self,
        progress_token: str | int,
        progress: float,
        total: float | None = None,
        target_id: str | None = None,
        message: str | None = None,
    ) -> None:
        self.router.notify_progress(progress_token, progress, total, target_id, message)

    # ========== activity ==========

    def set_activity_callback(self, callback: ActivityCallback | None) -> None:
        self.activity.set_callback(callback)

    def record_activity(self, tool: str, success: bool, error: str | None = None) -> None:
        self.activity.record(tool, success, error)

    def set_client_notification_callback(
        self, callback: ClientNotificationCallback | None
    ) -> None:
        self.dispatcher.set_client_notification_callback(callback)

    # ========== requests ==========

    async def dispatch(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        subscriber_id: str | None = None,
    ) -> dict[str, Any]:
        """Dispatch one MCP method; see RequestDispatcher.dispatch."""
        return await self.dispatcher.dispatch(method, params, subscriber_id=subscriber_id)

    async def handle_message(
        self,
        message: str | bytes | dict[str, Any],
        subscriber_id: str | None = None,
    ) -> str | None:
        """
        Process one raw JSON-RPC message and return the serialized response.

        Args:
            message: JSON text (or a decoded object) received by a transport.
            subscriber_id: Identifier of the connection the message came from.

        Returns:
            JSON response text, or None for notifications.
        """
        try:
            request = parse_request(message)
        except MCPError as e:
            logger.warning("Rejected malformed message", extra={"error": e.message})
            return format_error_response(None, e).to_json()

        try:
            result = await self.dispatch(
                request.method, request.params, subscriber_id=subscriber_id
            )
        except Exception as e:
            if request.is_notification:
                logger.warning(
                    "Error processing notification",
                    extra={"method": request.method, "error": str(e)},
                )
                return None
            return format_error_response(request.id, error_to_jsonrpc(e)).to_json()

        if request.is_notification:
            return None
        return format_success_response(request.id, result).to_json()


def create_server(config: AppConfig | None = None) -> MCPServer:
    """
    Create an MCPServer, optionally from configuration.

    Args:
        config: Loaded AppConfig. Defaults are used when omitted.

    Returns:
        A new, independent MCPServer.
    """
    if config is None:
        return MCPServer()
    return MCPServer.from_config(config)
