"""
Tool result normalization.

Tool handlers may return a plain string, a list of content items, a full
``{"content": [...], "isError": ...}`` result, or any other JSON-able value.
``classify_result`` maps a raw return value onto the closed union

    PlainText | ContentList | FullResult

and ``normalize_tool_result`` turns any of them into the wire result of
``tools/call``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


def to_text(value: Any) -> str:
    """
    Render a value as text: strings pass through, everything else is
    serialized as compact JSON.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def text_content(text: str) -> dict[str, Any]:
    """Build a single text content item."""
    return {"type": "text", "text": text}


@dataclass(frozen=True)
class PlainText:
    """A result rendered as one text content item."""

    text: str

    def to_result(self) -> dict[str, Any]:
        return {"content": [text_content(self.text)]}


@dataclass(frozen=True)
class ContentList:
    """A result that already is a list of content items."""

    items: list[Any]

    def to_result(self) -> dict[str, Any]:
        return {"content": list(self.items)}


@dataclass(frozen=True)
class FullResult:
    """A complete ``{content, isError?, ...}`` result, passed through unchanged."""

    result: Mapping[str, Any]

    def to_result(self) -> dict[str, Any]:
        return dict(self.result)


ToolResult = PlainText | ContentList | FullResult


def classify_result(value: Any) -> ToolResult:
    """
    Tag a raw handler return value.

    Args:
        value: Whatever the handler returned.

    Returns:
        The corresponding ToolResult variant.
    """
    if isinstance(value, PlainText | ContentList | FullResult):
        return value
    if isinstance(value, list):
        return ContentList(value)
    if isinstance(value, Mapping) and isinstance(value.get("content"), list):
        return FullResult(value)
    return PlainText(to_text(value))


def normalize_tool_result(value: Any) -> dict[str, Any]:
    """Convert a handler return value into a ``tools/call`` result."""
    return classify_result(value).to_result()
