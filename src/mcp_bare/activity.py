"""
Bounded history of tool invocations.

The ActivityRecorder keeps the most recent tool calls, newest first, and
forwards each new entry to an optional callback (for example a transport
streaming activity to a dashboard). It never affects dispatch outcomes.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mcp_bare.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 100


@dataclass(frozen=True)
class ActivityEntry:
    """
    One recorded tool invocation.

    Attributes:
        tool: Tool name as requested.
        timestamp: Milliseconds since the epoch.
        success: Whether the call succeeded.
        error: Error message for failed calls.
    """

    tool: str
    timestamp: int
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "tool": self.tool,
            "timestamp": self.timestamp,
            "success": self.success,
        }
        if self.error:
            result["error"] = self.error
        return result


ActivityCallback = Callable[[ActivityEntry], None]


class ActivityRecorder:
    """
    Most-recent-first log of tool calls, capped at ``max_entries``.

    Attributes:
        max_entries: Cap on retained entries; the oldest are evicted.
        request_count: Entries recorded since creation or the last clear().
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        callback: ActivityCallback | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.request_count = 0
        self._entries: deque[ActivityEntry] = deque(maxlen=max_entries)
        self._callback = callback

    def set_callback(self, callback: ActivityCallback | None) -> None:
        self._callback = callback

    def record(
        self, tool: str, success: bool, error: str | None = None
    ) -> ActivityEntry:
        """Prepend an entry, evicting the oldest beyond the cap."""
        entry = ActivityEntry(
            tool=tool,
            timestamp=time.time_ns() // 1_000_000,
            success=success,
            error=error,
        )
        self._entries.appendleft(entry)
        self.request_count += 1

        if self._callback is not None:
            try:
                self._callback(entry)
            except Exception:
                logger.exception("Activity callback failed", extra={"tool": tool})
        return entry

    def entries(self, limit: int | None = None) -> list[ActivityEntry]:
        """Return retained entries, newest first, optionally truncated."""
        items = list(self._entries)
        return items if limit is None else items[:limit]

    def clear(self) -> None:
        self._entries.clear()
        self.request_count = 0

    def __len__(self) -> int:
        return len(self._entries)
