"""
Resource subscription bookkeeping.

The SubscriptionLedger maps a resource URI to the set of subscriber
identifiers (one per client connection) interested in it. Subscribing and
unsubscribing are idempotent, and a URI whose last subscriber leaves is
removed from the ledger entirely.
"""

from __future__ import annotations

# Used when a transport does not distinguish connections (e.g. stdio)
DEFAULT_SUBSCRIBER_ID = "default"


class SubscriptionLedger:
    """
    Maps resource URIs to subscriber identifiers.

    Example:
        >>> ledger = SubscriptionLedger()
        >>> ledger.subscribe("data://a", "client-1")
        >>> ledger.get_subscribers("data://a")
        frozenset({'client-1'})
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, set[str]] = {}

    def subscribe(self, uri: str, subscriber_id: str) -> None:
        """Add ``subscriber_id`` to the subscribers of ``uri``."""
        self._subscriptions.setdefault(uri, set()).add(subscriber_id)

    def unsubscribe(self, uri: str, subscriber_id: str) -> None:
        """Remove ``subscriber_id`` from ``uri``; a no-op if not subscribed."""
        subscribers = self._subscriptions.get(uri)
        if subscribers is None:
            return
        subscribers.discard(subscriber_id)
        if not subscribers:
            del self._subscriptions[uri]

    def unsubscribe_all(self, subscriber_id: str) -> list[str]:
        """
        Remove a subscriber from every URI, e.g. when its connection closes.

        Returns:
            The URIs the subscriber was removed from.
        """
        removed = [uri for uri, subs in self._subscriptions.items() if subscriber_id in subs]
        for uri in removed:
            self.unsubscribe(uri, subscriber_id)
        return removed

    def get_subscribers(self, uri: str) -> frozenset[str]:
        """Return the current subscribers of ``uri`` (possibly empty)."""
        return frozenset(self._subscriptions.get(uri, ()))

    def __contains__(self, uri: object) -> bool:
        return uri in self._subscriptions

    def __len__(self) -> int:
        """Number of URIs with at least one subscriber."""
        return len(self._subscriptions)
