"""
Server-to-client notification routing.

The NotificationRouter turns notify calls into invocations of a single
delivery callback supplied by the transport:

    deliver(method, params, targets)

where ``targets`` is None for a broadcast or a frozenset of subscriber
identifiers. Delivery is best-effort: there is no buffering or retry, and a
callback that raises is logged rather than propagated.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from mcp_bare.logging import get_logger
from mcp_bare.subscriptions import SubscriptionLedger

logger = get_logger(__name__)

DeliveryCallback = Callable[[str, dict[str, Any], frozenset[str] | None], None]

# Server-originated notification methods
RESOURCE_UPDATED = "notifications/resources/updated"
RESOURCE_LIST_CHANGED = "notifications/resources/list_changed"
TOOL_LIST_CHANGED = "notifications/tools/list_changed"
PROGRESS = "notifications/progress"


def _discard(method: str, params: dict[str, Any], targets: frozenset[str] | None) -> None:
    return None


class NotificationRouter:
    """
    Routes notifications to a transport-supplied delivery callback.

    Attributes:
        ledger: Subscription ledger consulted for resource updates.

    Example:
        >>> router = NotificationRouter(ledger, deliver=transport.send)
        >>> router.notify_resource_updated("data://a")
    """

    def __init__(
        self,
        ledger: SubscriptionLedger,
        deliver: DeliveryCallback | None = None,
    ) -> None:
        self.ledger = ledger
        self._deliver: DeliveryCallback = deliver or _discard

    def set_delivery_callback(self, deliver: DeliveryCallback | None) -> None:
        """Replace the delivery callback; None discards notifications."""
        self._deliver = deliver or _discard

    def _send(
        self, method: str, params: dict[str, Any], targets: frozenset[str] | None
    ) -> None:
        try:
            self._deliver(method, params, targets)
        except Exception:
            logger.exception(
                "Notification delivery failed",
                extra={
                    "method": method,
                    "targets": sorted(targets) if targets is not None else None,
                },
            )

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Broadcast a notification to every connected client."""
        self._send(method, params or {}, None)

    def notify_targeted(
        self,
        method: str,
        params: dict[str, Any] | None,
        targets: Iterable[str] | None,
    ) -> None:
        """Send a notification to the given clients; no-op if there are none."""
        target_set = frozenset(targets or ())
        if target_set:
            self._send(method, params or {}, target_set)

    def notify_resource_updated(self, uri: str) -> None:
        """Tell the subscribers of ``uri`` that it changed."""
        subscribers = self.ledger.get_subscribers(uri)
        if subscribers:
            self.notify_targeted(RESOURCE_UPDATED, {"uri": uri}, subscribers)

    def notify_resource_list_changed(self) -> None:
        self.notify(RESOURCE_LIST_CHANGED)

    def notify_tool_list_changed(self) -> None:
        self.notify(TOOL_LIST_CHANGED)

    def notify_progress(
        self,
        progress_token: str | int,
        progress: float,
        total: float | None = None,
        target_id: str | None = None,
        message: str | None = None,
    ) -> None:
        """
        Report progress of a long-running operation.

        Args:
            progress_token: Token the client attached to its request.
            progress: Current progress value.
            total: Optional total the progress counts towards.
            target_id: Client to notify; broadcasts when omitted.
            message: Optional human-readable status.
        """
        params: dict[str, Any] = {"progressToken": progress_token, "progress": progress}
        if total is not None:
            params["total"] = total
        if message is not None:
            params["message"] = message

        if target_id:
            self.notify_targeted(PROGRESS, params, (target_id,))
        else:
            self.notify(PROGRESS, params)
