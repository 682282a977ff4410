"""
Capability registry for the mcp-bare server core.

This module provides:
- Tool, Resource and ResourceTemplate definitions (plus their annotations)
- CapabilityRegistry: validated registration, listing, and resource reads

Keys are unique per map: tool names, resource URIs and template patterns.
Registering an existing key replaces the previous definition. Resource reads
prefer an exact URI match and fall back to templates in registration order.
"""

from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel

from mcp_bare.content import to_text
from mcp_bare.errors import InvalidDefinitionError, ResourceNotFoundError
from mcp_bare.logging import get_logger
from mcp_bare.schema import Schema, as_schema
from mcp_bare.uri_template import MatchValue, UriTemplate, UriTemplateError

logger = get_logger(__name__)

DEFAULT_MIME_TYPE = "text/plain"

# Handlers and readers may be coroutine functions or plain callables
ToolHandler = Callable[[dict[str, Any]], Awaitable[Any] | Any]
ResourceReader = Callable[[], Awaitable[Any] | Any]
TemplateReader = Callable[[dict[str, MatchValue]], Awaitable[Any] | Any]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _reader_text(value: Any) -> str:
    # A reader returning None yields empty contents, not the JSON "null"
    if value is None:
        return ""
    return to_text(value)


# =============================================================================
# Definitions
# =============================================================================


@dataclass(frozen=True)
class ToolAnnotations:
    """
    Behavioural hints about a tool.

    The destructive and idempotent hints only mean something for tools that
    are not read-only, and are omitted from the wire form otherwise.
    """

    title: str | None = None
    read_only_hint: bool = False
    destructive_hint: bool = True
    idempotent_hint: bool = False
    open_world_hint: bool = True

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.title is not None:
            result["title"] = self.title
        result["readOnlyHint"] = self.read_only_hint
        if not self.read_only_hint:
            result["destructiveHint"] = self.destructive_hint
            result["idempotentHint"] = self.idempotent_hint
        result["openWorldHint"] = self.open_world_hint
        return result


@dataclass(frozen=True)
class ResourceAnnotations:
    """
    Hints about how a resource's content should be used.

    Attributes:
        audience: Intended readers, "user" and/or "assistant".
        priority: Importance from 0.0 (optional) to 1.0 (required).
        last_modified: ISO 8601 timestamp of the last change.
    """

    audience: tuple[Literal["user", "assistant"], ...] | None = None
    priority: float | None = None
    last_modified: str | None = None

    def __post_init__(self) -> None:
        if self.priority is not None and not 0.0 <= self.priority <= 1.0:
            raise ValueError(f"priority must be between 0 and 1, got {self.priority}")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.audience is not None:
            result["audience"] = list(self.audience)
        if self.priority is not None:
            result["priority"] = self.priority
        if self.last_modified is not None:
            result["lastModified"] = self.last_modified
        return result


def _annotations_dict(
    annotations: ResourceAnnotations | Mapping[str, Any] | None,
) -> dict[str, Any] | None:
    if annotations is None:
        return None
    if isinstance(annotations, ResourceAnnotations):
        return annotations.to_dict()
    return dict(annotations)


@dataclass
class Tool:
    """
    An invocable capability.

    Attributes:
        name: Unique tool name.
        handler: Callable receiving the validated arguments dict.
        description: Human-readable description.
        parameters: A Schema, a pydantic model class, or None for no arguments.
        annotations: Optional behavioural hints.
    """

    name: str | None
    handler: ToolHandler | None
    description: str = ""
    parameters: Schema | type[BaseModel] | None = None
    annotations: ToolAnnotations | None = None

    @property
    def schema(self) -> Schema:
        return as_schema(self.parameters)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.schema.to_json_schema(),
        }
        if self.annotations is not None:
            result["annotations"] = self.annotations.to_dict()
        return result


@dataclass
class Resource:
    """
    A URI-addressed readable entity.

    Exactly one of ``text`` (static content) or ``reader`` (called on every
    read) must be given.
    """

    uri: str | None
    name: str | None
    text: str | None = None
    reader: ResourceReader | None = None
    title: str | None = None
    description: str | None = None
    mime_type: str = DEFAULT_MIME_TYPE
    annotations: ResourceAnnotations | Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.title is not None:
            result["title"] = self.title
        if self.description is not None:
            result["description"] = self.description
        result["mimeType"] = self.mime_type
        annotations = _annotations_dict(self.annotations)
        if annotations:
            result["annotations"] = annotations
        return result


@dataclass
class ResourceTemplate:
    """
    A parameterized resource addressed by an RFC 6570 URI template.

    The reader receives the variables extracted from the requested URI.
    """

    uri_template: str | None
    name: str | None
    reader: TemplateReader | None
    title: str | None = None
    description: str | None = None
    mime_type: str = DEFAULT_MIME_TYPE
    annotations: ResourceAnnotations | Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"uriTemplate": self.uri_template, "name": self.name}
        if self.title is not None:
            result["title"] = self.title
        if self.description is not None:
            result["description"] = self.description
        result["mimeType"] = self.mime_type
        annotations = _annotations_dict(self.annotations)
        if annotations:
            result["annotations"] = annotations
        return result


# =============================================================================
# Registry
# =============================================================================


class CapabilityRegistry:
    """
    Registry of tools, resources, and resource templates.

    Each server owns its own registry; nothing is shared between instances.

    Example:
        >>> registry = CapabilityRegistry()
        >>> registry.add_resource(Resource(uri="config://app", name="Config", text="{}"))
        >>> contents = await registry.read_resource("config://app")
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, Tool] = {}
        self._resources: dict[str, Resource] = {}
        self._templates: dict[str, ResourceTemplate] = {}
        self._compiled: dict[str, UriTemplate] = {}

    # ----- read-only views -----

    @property
    def tools(self) -> Mapping[str, Tool]:
        return MappingProxyType(self._tools)

    @property
    def resources(self) -> Mapping[str, Resource]:
        return MappingProxyType(self._resources)

    @property
    def resource_templates(self) -> Mapping[str, ResourceTemplate]:
        return MappingProxyType(self._templates)

    # ----- validation -----

    @staticmethod
    def _check_tool(tool: Tool) -> Tool:
        if not tool.name or tool.handler is None:
            raise InvalidDefinitionError("Tool must have name and handler")
        try:
            schema = as_schema(tool.parameters)
        except TypeError as e:
            raise InvalidDefinitionError(f"Tool '{tool.name}': {e}") from e
        return dataclasses.replace(tool, parameters=schema)

    @staticmethod
    def _check_resource(resource: Resource) -> Resource:
        if not resource.uri or not resource.name:
            raise InvalidDefinitionError("Resource must have uri and name")
        if resource.text is None and resource.reader is None:
            raise InvalidDefinitionError(
                f"Resource '{resource.uri}' must have either text or reader"
            )
        if resource.text is not None and resource.reader is not None:
            raise InvalidDefinitionError(
                f"Resource '{resource.uri}' must have only one of text or reader"
            )
        return resource

    @staticmethod
    def _check_template(
        template: ResourceTemplate,
    ) -> tuple[ResourceTemplate, UriTemplate]:
        if not template.uri_template or not template.name or template.reader is None:
            raise InvalidDefinitionError(
                "Resource template must have uri_template, name, and reader"
            )
        try:
            compiled = UriTemplate(template.uri_template)
        except UriTemplateError as e:
            raise InvalidDefinitionError(str(e)) from e
        return template, compiled

    # ----- registration -----

    def add_tool(self, tool: Tool) -> None:
        """
        Register a tool, replacing any tool with the same name.

        Raises:
            InvalidDefinitionError: If name or handler is missing, or the
                parameters declaration is not a schema.
        """
        checked = self._check_tool(tool)
        self._tools[checked.name] = checked
        logger.debug("Registered tool", extra={"tool": checked.name})

    def add_tools(self, tools: Iterable[Tool]) -> None:
        """Register several tools; if any is invalid, none is registered."""
        checked = [self._check_tool(tool) for tool in tools]
        for tool in checked:
            self._tools[tool.name] = tool
        logger.debug("Registered tools", extra={"count": len(checked)})

    def add_resource(self, resource: Resource) -> None:
        """
        Register a resource, replacing any resource with the same URI.

        Raises:
            InvalidDefinitionError: If uri or name is missing, or the resource
                does not have exactly one content source.
        """
        checked = self._check_resource(resource)
        self._resources[checked.uri] = checked
        logger.debug("Registered resource", extra={"uri": checked.uri})

    def add_resources(self, resources: Iterable[Resource]) -> None:
        """Register several resources; if any is invalid, none is registered."""
        checked = [self._check_resource(resource) for resource in resources]
        for resource in checked:
            self._resources[resource.uri] = resource
        logger.debug("Registered resources", extra={"count": len(checked)})

    def add_resource_template(self, template: ResourceTemplate) -> None:
        """
        Register a resource template, replacing any with the same pattern.

        Raises:
            InvalidDefinitionError: If uri_template, name or reader is
                missing, or the pattern is malformed.
        """
        checked, compiled = self._check_template(template)
        self._templates[checked.uri_template] = checked
        self._compiled[checked.uri_template] = compiled
        logger.debug(
            "Registered resource template",
            extra={"uri_template": checked.uri_template},
        )

    def add_resource_templates(self, templates: Iterable[ResourceTemplate]) -> None:
        """Register several templates; if any is invalid, none is registered."""
        checked = [self._check_template(template) for template in templates]
        for template, compiled in checked:
            self._templates[template.uri_template] = template
            self._compiled[template.uri_template] = compiled
        logger.debug("Registered resource templates", extra={"count": len(checked)})

    # ----- lookup -----

    def get_tool(self, name: str) -> Tool | None:
        """Return the tool registered under ``name``, or None."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def list_resources(self) -> list[Resource]:
        return list(self._resources.values())

    def list_resource_templates(self) -> list[ResourceTemplate]:
        return list(self._templates.values())

    def match_template(
        self, uri: str
    ) -> tuple[ResourceTemplate, dict[str, MatchValue]] | None:
        """
        Find the first registered template matching ``uri``.

        Returns:
            The template and its extracted variables, or None.
        """
        for key, compiled in self._compiled.items():
            params = compiled.match(uri)
            if params is not None:
                return self._templates[key], params
        return None

    async def read_resource(self, uri: str) -> dict[str, Any]:
        """
        Read a resource by URI.

        An exact resource match always wins over a template match.

        Args:
            uri: The URI to read.

        Returns:
            ``{"uri", "mimeType", "text", "annotations"?}``

        Raises:
            ResourceNotFoundError: If neither a resource nor a template matches.
        """
        resource = self._resources.get(uri)
        if resource is not None:
            if resource.reader is not None:
                raw = await _resolve(resource.reader())
            else:
                raw = resource.text
            return self._build_contents(uri, resource.mime_type, raw, resource.annotations)

        matched = self.match_template(uri)
        if matched is None:
            raise ResourceNotFoundError(uri)

        template, params = matched
        raw = await _resolve(template.reader(params))
        return self._build_contents(uri, template.mime_type, raw, template.annotations)

    @staticmethod
    def _build_contents(
        uri: str,
        mime_type: str,
        raw: Any,
        static_annotations: ResourceAnnotations | Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        annotations = _annotations_dict(static_annotations)

        if isinstance(raw, Mapping) and "text" in raw:
            text = _reader_text(raw["text"])
            if raw.get("annotations") is not None:
                annotations = _annotations_dict(raw["annotations"])
        else:
            text = _reader_text(raw)

        contents: dict[str, Any] = {"uri": uri, "mimeType": mime_type, "text": text}
        if annotations:
            contents["annotations"] = annotations
        return contents

    def __len__(self) -> int:
        """Total number of registered capabilities."""
        return len(self._tools) + len(self._resources) + len(self._templates)
