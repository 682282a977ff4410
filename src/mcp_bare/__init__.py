"""
mcp-bare - a minimal Model Context Protocol server core.

This package implements the MCP request dispatch model (JSON-RPC 2.0): a
registry of tools, resources and resource templates, RFC 6570 URI template
matching, resource subscriptions with targeted notifications, and a bounded
activity log of tool invocations. Transports plug in through callbacks.
"""

__version__ = "0.1.0"
