"""
Tests for request dispatch.

This test module validates:
- initialize, ping and the listing methods
- tools/call validation, invocation, errors and activity recording
- resources/read, subscribe and unsubscribe
- Client notifications
- Error mapping for unknown methods and unexpected exceptions
"""

from __future__ import annotations

import logging
from typing import Any

import pytest

from mcp_bare.activity import ActivityRecorder
from mcp_bare.dispatcher import (
    DEFAULT_PROTOCOL_VERSION,
    RequestDispatcher,
    ServerInfo,
)
from mcp_bare.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    InternalError,
    InvalidParamsError,
    MCPError,
    MissingParameterError,
    ResourceNotFoundError,
    ToolError,
    UnknownCapabilityError,
    UnknownMethodError,
)
from mcp_bare.registry import CapabilityRegistry, Resource, ResourceTemplate, Tool
from mcp_bare.schema import NumberSchema, ObjectSchema, StringSchema
from mcp_bare.subscriptions import DEFAULT_SUBSCRIBER_ID, SubscriptionLedger

ADD_SCHEMA = ObjectSchema({"a": NumberSchema(), "b": NumberSchema()})


@pytest.fixture
def registry() -> CapabilityRegistry:
    registry = CapabilityRegistry()
    registry.add_tool(
        Tool(
            name="add",
            description="Add two numbers",
            parameters=ADD_SCHEMA,
            handler=lambda args: {"sum": args["a"] + args["b"]},
        )
    )
    return registry


@pytest.fixture
def ledger() -> SubscriptionLedger:
    return SubscriptionLedger()


@pytest.fixture
def recorder() -> ActivityRecorder:
    return ActivityRecorder()


@pytest.fixture
def dispatcher(
    registry: CapabilityRegistry, ledger: SubscriptionLedger, recorder: ActivityRecorder
) -> RequestDispatcher:
    return RequestDispatcher(
        registry,
        ledger,
        recorder,
        info=ServerInfo(name="test-server", version="1.2.3"),
    )


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for initialize and ping."""

    @pytest.mark.asyncio
    async def test_initialize(self, dispatcher: RequestDispatcher) -> None:
        result = await dispatcher.dispatch(
            "initialize",
            {"protocolVersion": "2025-06-18", "clientInfo": {"name": "inspector"}},
        )

        assert result == {
            "protocolVersion": DEFAULT_PROTOCOL_VERSION,
            "serverInfo": {"name": "test-server", "version": "1.2.3"},
            "capabilities": {
                "tools": {"listChanged": True},
                "resources": {"subscribe": True, "listChanged": True},
            },
        }

    @pytest.mark.asyncio
    async def test_initialize_with_instructions(
        self,
        registry: CapabilityRegistry,
        ledger: SubscriptionLedger,
        recorder: ActivityRecorder,
    ) -> None:
        dispatcher = RequestDispatcher(
            registry,
            ledger,
            recorder,
            info=ServerInfo(instructions="Use add for arithmetic."),
        )

        result = await dispatcher.dispatch("initialize")

        assert result["instructions"] == "Use add for arithmetic."

    @pytest.mark.asyncio
    async def test_ping(self, dispatcher: RequestDispatcher) -> None:
        assert await dispatcher.dispatch("ping") == {}

    @pytest.mark.asyncio
    async def test_unknown_method(self, dispatcher: RequestDispatcher) -> None:
        with pytest.raises(UnknownMethodError) as exc_info:
            await dispatcher.dispatch("prompts/list")

        assert exc_info.value.code == METHOD_NOT_FOUND
        assert exc_info.value.data == {"method": "prompts/list"}

    def test_methods(self, dispatcher: RequestDispatcher) -> None:
        methods = dispatcher.methods

        assert "tools/call" in methods
        assert "resources/templates/list" in methods
        assert "notifications/initialized" in methods


# =============================================================================
# Tools
# =============================================================================


class TestTools:
    """Tests for tools/list and tools/call."""

    @pytest.mark.asyncio
    async def test_list_tools(self, dispatcher: RequestDispatcher) -> None:
        result = await dispatcher.dispatch("tools/list")

        assert result == {
            "tools": [
                {
                    "name": "add",
                    "description": "Add two numbers",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "a": {"type": "number"},
                            "b": {"type": "number"},
                        },
                        "required": ["a", "b"],
                    },
                }
            ]
        }

    @pytest.mark.asyncio
    async def test_call_tool(
        self, dispatcher: RequestDispatcher, recorder: ActivityRecorder
    ) -> None:
        result = await dispatcher.dispatch(
            "tools/call", {"name": "add", "arguments": {"a": 2, "b": 3}}
        )

        assert result == {"content": [{"type": "text", "text": '{"sum":5}'}]}
        entries = recorder.entries()
        assert len(entries) == 1
        assert entries[0].tool == "add"
        assert entries[0].success is True

    @pytest.mark.asyncio
    async def test_async_handler(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        async def greet(args: dict[str, Any]) -> str:
            return f"Hello, {args['name']}!"

        registry.add_tool(
            Tool(name="greet", handler=greet, parameters=ObjectSchema({"name": StringSchema()}))
        )

        result = await dispatcher.dispatch(
            "tools/call", {"name": "greet", "arguments": {"name": "Alice"}}
        )

        assert result == {"content": [{"type": "text", "text": "Hello, Alice!"}]}

    @pytest.mark.asyncio
    async def test_missing_arguments_treated_as_empty(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        registry.add_tool(Tool(name="now", handler=lambda args: "12:00"))

        result = await dispatcher.dispatch("tools/call", {"name": "now"})

        assert result["content"][0]["text"] == "12:00"

    @pytest.mark.asyncio
    async def test_invalid_arguments(
        self, dispatcher: RequestDispatcher, recorder: ActivityRecorder
    ) -> None:
        with pytest.raises(InvalidParamsError) as exc_info:
            await dispatcher.dispatch(
                "tools/call", {"name": "add", "arguments": {"a": "two"}}
            )

        error = exc_info.value
        assert error.code == INVALID_PARAMS
        assert {"path": ["a"], "message": "Expected number, received string"} in error.data[
            "issues"
        ]
        assert {"path": ["b"], "message": "Required"} in error.data["issues"]
        assert recorder.entries()[0].success is False

    @pytest.mark.asyncio
    async def test_handler_not_called_when_validation_fails(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        calls: list[dict[str, Any]] = []
        registry.add_tool(
            Tool(
                name="track",
                handler=lambda args: calls.append(args),
                parameters=ObjectSchema({"n": NumberSchema()}),
            )
        )

        with pytest.raises(InvalidParamsError):
            await dispatcher.dispatch("tools/call", {"name": "track", "arguments": {}})
        await dispatcher.dispatch("tools/call", {"name": "track", "arguments": {"n": 1}})

        assert calls == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_handler_receives_validated_arguments(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        received: list[dict[str, Any]] = []
        registry.add_tool(
            Tool(
                name="track",
                handler=lambda args: received.append(args),
                parameters=ObjectSchema({"n": NumberSchema()}),
            )
        )

        await dispatcher.dispatch(
            "tools/call", {"name": "track", "arguments": {"n": 1, "extra": "dropped"}}
        )

        assert received == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_unknown_tool(
        self, dispatcher: RequestDispatcher, recorder: ActivityRecorder
    ) -> None:
        with pytest.raises(UnknownCapabilityError) as exc_info:
            await dispatcher.dispatch("tools/call", {"name": "nope"})

        assert exc_info.value.code == INVALID_PARAMS
        entry = recorder.entries()[0]
        assert entry.tool == "nope"
        assert entry.success is False

    @pytest.mark.asyncio
    async def test_tool_error_passes_through(
        self,
        dispatcher: RequestDispatcher,
        registry: CapabilityRegistry,
        recorder: ActivityRecorder,
    ) -> None:
        def limited(args: dict[str, Any]) -> None:
            raise ToolError("Rate limited", code=-32029, data={"retry_after": 30})

        registry.add_tool(Tool(name="limited", handler=limited))

        with pytest.raises(ToolError) as exc_info:
            await dispatcher.dispatch("tools/call", {"name": "limited"})

        assert exc_info.value.code == -32029
        assert recorder.entries()[0].error == "Rate limited"

    @pytest.mark.asyncio
    async def test_unexpected_exception_wrapped(
        self,
        dispatcher: RequestDispatcher,
        registry: CapabilityRegistry,
        recorder: ActivityRecorder,
    ) -> None:
        async def broken(args: dict[str, Any]) -> None:
            raise RuntimeError("disk full")

        registry.add_tool(Tool(name="broken", handler=broken))

        with pytest.raises(InternalError) as exc_info:
            await dispatcher.dispatch("tools/call", {"name": "broken"})

        assert exc_info.value.code == INTERNAL_ERROR
        assert exc_info.value.message == "disk full"
        assert recorder.entries()[0].error == "disk full"

    @pytest.mark.asyncio
    async def test_is_error_result_passes_through(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        registry.add_tool(
            Tool(
                name="soft_fail",
                handler=lambda args: {
                    "content": [{"type": "text", "text": "not found"}],
                    "isError": True,
                },
            )
        )

        result = await dispatcher.dispatch("tools/call", {"name": "soft_fail"})

        assert result == {
            "content": [{"type": "text", "text": "not found"}],
            "isError": True,
        }

    @pytest.mark.asyncio
    async def test_full_result_extra_members_pass_through(
        self,
        dispatcher: RequestDispatcher,
        registry: CapabilityRegistry,
        recorder: ActivityRecorder,
    ) -> None:
        full = {
            "content": [{"type": "text", "text": "x"}],
            "isError": False,
            "structuredContent": {"a": 1},
        }
        registry.add_tool(Tool(name="structured", handler=lambda args: full))

        result = await dispatcher.dispatch("tools/call", {"name": "structured"})

        assert result == full
        assert recorder.entries()[0].success is True


# =============================================================================
# Resources
# =============================================================================


class TestResources:
    """Tests for resource methods."""

    @pytest.mark.asyncio
    async def test_list_resources_and_templates(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        registry.add_resource(Resource(uri="config://app", name="Config", text="{}"))
        registry.add_resource_template(
            ResourceTemplate(uri_template="item://{id}", name="Item", reader=lambda p: p["id"])
        )

        resources = await dispatcher.dispatch("resources/list")
        templates = await dispatcher.dispatch("resources/templates/list")

        assert [r["uri"] for r in resources["resources"]] == ["config://app"]
        assert [t["uriTemplate"] for t in templates["resourceTemplates"]] == ["item://{id}"]

    @pytest.mark.asyncio
    async def test_read_resource(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        registry.add_resource_template(
            ResourceTemplate(
                uri_template="users://{id}/profile",
                name="Profile",
                reader=lambda params: {"id": params["id"]},
            )
        )

        result = await dispatcher.dispatch("resources/read", {"uri": "users://42/profile"})

        assert result == {
            "contents": [
                {"uri": "users://42/profile", "mimeType": "text/plain", "text": '{"id":"42"}'}
            ]
        }

    @pytest.mark.asyncio
    async def test_read_missing_resource(self, dispatcher: RequestDispatcher) -> None:
        with pytest.raises(ResourceNotFoundError) as exc_info:
            await dispatcher.dispatch("resources/read", {"uri": "nope://x"})

        assert exc_info.value.code == RESOURCE_NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method", ["resources/read", "resources/subscribe", "resources/unsubscribe"]
    )
    async def test_missing_uri(self, dispatcher: RequestDispatcher, method: str) -> None:
        with pytest.raises(MissingParameterError) as exc_info:
            await dispatcher.dispatch(method, {})

        assert exc_info.value.code == INVALID_PARAMS
        assert exc_info.value.message == "Missing uri parameter"

    @pytest.mark.asyncio
    async def test_reader_failure_wrapped(
        self, dispatcher: RequestDispatcher, registry: CapabilityRegistry
    ) -> None:
        def reader() -> str:
            raise OSError("sensor offline")

        registry.add_resource(Resource(uri="sensor://t", name="Temp", reader=reader))

        with pytest.raises(InternalError, match="sensor offline"):
            await dispatcher.dispatch("resources/read", {"uri": "sensor://t"})

    @pytest.mark.asyncio
    async def test_subscribe_defaults_subscriber(
        self, dispatcher: RequestDispatcher, ledger: SubscriptionLedger
    ) -> None:
        assert await dispatcher.dispatch("resources/subscribe", {"uri": "data://a"}) == {}

        assert ledger.get_subscribers("data://a") == frozenset({DEFAULT_SUBSCRIBER_ID})

    @pytest.mark.asyncio
    async def test_subscribe_with_subscriber_param(
        self, dispatcher: RequestDispatcher, ledger: SubscriptionLedger
    ) -> None:
        await dispatcher.dispatch(
            "resources/subscribe", {"uri": "data://a", "_subscriberId": "conn-7"}
        )

        assert ledger.get_subscribers("data://a") == frozenset({"conn-7"})

    @pytest.mark.asyncio
    async def test_explicit_subscriber_wins(
        self, dispatcher: RequestDispatcher, ledger: SubscriptionLedger
    ) -> None:
        await dispatcher.dispatch(
            "resources/subscribe",
            {"uri": "data://a", "_subscriberId": "from-param"},
            subscriber_id="from-transport",
        )

        assert ledger.get_subscribers("data://a") == frozenset({"from-transport"})

    @pytest.mark.asyncio
    async def test_unsubscribe(
        self, dispatcher: RequestDispatcher, ledger: SubscriptionLedger
    ) -> None:
        await dispatcher.dispatch("resources/subscribe", {"uri": "data://a"}, subscriber_id="c1")
        await dispatcher.dispatch(
            "resources/unsubscribe", {"uri": "data://a"}, subscriber_id="c1"
        )

        assert "data://a" not in ledger


# =============================================================================
# Client notifications
# =============================================================================


class TestClientNotifications:
    """Tests for client-originated notifications."""

    @pytest.mark.asyncio
    async def test_without_callback(self, dispatcher: RequestDispatcher) -> None:
        assert await dispatcher.dispatch("notifications/initialized") == {}

    @pytest.mark.asyncio
    async def test_callback_receives_notification(
        self, dispatcher: RequestDispatcher
    ) -> None:
        seen: list[tuple[str, dict[str, Any]]] = []
        dispatcher.set_client_notification_callback(
            lambda method, params: seen.append((method, params))
        )

        await dispatcher.dispatch("notifications/cancelled", {"requestId": 3})

        assert seen == [("notifications/cancelled", {"requestId": 3})]

    @pytest.mark.asyncio
    async def test_async_callback(self, dispatcher: RequestDispatcher) -> None:
        seen: list[str] = []

        async def on_notification(method: str, params: dict[str, Any]) -> None:
            seen.append(method)

        dispatcher.set_client_notification_callback(on_notification)
        await dispatcher.dispatch("notifications/roots/list_changed")

        assert seen == ["notifications/roots/list_changed"]

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged(
        self, dispatcher: RequestDispatcher, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(method: str, params: dict[str, Any]) -> None:
            raise RuntimeError("boom")

        dispatcher.set_client_notification_callback(broken)

        with caplog.at_level(logging.ERROR, logger="mcp_bare"):
            result = await dispatcher.dispatch("notifications/initialized")

        assert result == {}
        assert "Client notification callback failed" in caplog.text


class TestErrorTypes:
    """Every dispatch failure is an MCPError."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, params",
        [
            ("nope", {}),
            ("tools/call", {"name": "missing"}),
            ("tools/call", {"name": "add", "arguments": {}}),
            ("resources/read", {}),
            ("resources/read", {"uri": "x://y"}),
        ],
    )
    async def test_failures_are_typed(
        self, dispatcher: RequestDispatcher, method: str, params: dict[str, Any]
    ) -> None:
        with pytest.raises(MCPError):
            await dispatcher.dispatch(method, params)
