"""
Line-delimited stdio transport.

One JSON-RPC message per line on stdin, one response per line on stdout.
Server notifications are written to stdout as id-less JSON-RPC messages;
stdio has exactly one client, so notification targets are ignored. Logs go
to stderr (see mcp_bare.logging).
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from typing import Any, TextIO

from mcp_bare.activity import ActivityCallback, ActivityEntry
from mcp_bare.errors import InvalidRequestError
from mcp_bare.logging import get_logger
from mcp_bare.protocol import format_error_response, format_notification
from mcp_bare.server import MCPServer

logger = get_logger(__name__)


class StdioTransport:
    """
    Serves an MCPServer over stdin/stdout.

    Example:
        >>> transport = StdioTransport(server)
        >>> await transport.run()

    Attributes:
        server: The server being served.
        running: Whether the read loop is active.
    """

    def __init__(
        self,
        server: MCPServer,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        *,
        on_activity: ActivityCallback | None = None,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self.server = server
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._activity_hook = on_activity
        self._on_close = on_close
        self.running = False
        server.set_notification_callback(self._deliver)
        server.set_activity_callback(self._on_activity)

    def _write(self, line: str) -> None:
        self._stdout.write(line + "\n")
        self._stdout.flush()

    def _deliver(
        self, method: str, params: dict[str, Any], targets: frozenset[str] | None
    ) -> None:
        self._write(format_notification(method, params))

    def _on_activity(self, entry: ActivityEntry) -> None:
        logger.info(
            "Tool call %s: %s",
            entry.tool,
            "OK" if entry.success else "FAIL",
            extra={"tool": entry.tool, "success": entry.success, "error": entry.error},
        )
        if self._activity_hook is not None:
            self._activity_hook(entry)

    async def handle_line(self, raw: bytes | str) -> None:
        """Process one input line and write the response, if any."""
        if isinstance(raw, bytes):
            try:
                line = raw.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                logger.warning("Invalid UTF-8 encoding in request", extra={"error": str(e)})
                error = InvalidRequestError("Invalid request encoding: UTF-8 required")
                self._write(format_error_response(None, error).to_json())
                return
        else:
            line = raw.strip()

        if not line:
            return

        response = await self.server.handle_message(line)
        if response is not None:
            self._write(response)

    async def run(self) -> None:
        """
        Read requests from stdin until EOF or stop().
        """
        self.running = True
        logger.info(
            "%s v%s ready on stdio",
            self.server.name,
            self.server.version,
            extra={
                "tools": list(self.server.registry.tools),
                "resources_count": len(self.server.registry.resources),
                "templates_count": len(self.server.registry.resource_templates),
            },
        )

        try:
            loop = asyncio.get_running_loop()
            reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, self._stdin)

            while self.running:
                line = await reader.readline()
                if not line:
                    break
                try:
                    await self.handle_line(line)
                except Exception:
                    logger.exception("Error in stdio loop")
        finally:
            self.running = False
            logger.info("stdin closed")
            if self._on_close is not None:
                self._on_close()

    def stop(self) -> None:
        """Stop the read loop after the current message."""
        self.running = False
