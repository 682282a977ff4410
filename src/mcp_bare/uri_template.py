"""
RFC 6570 URI template matching.

A UriTemplate compiles a template such as ``repo://{owner}/{repo}{/path*}``
into an anchored regular expression and extracts named variables from
concrete URIs. Matching is the reverse of RFC 6570 expansion and supports
levels 1-3 plus the explode modifier:

    (none)  {var}      simple
    +       {+var}     reserved, may contain "/"
    #       {#var}     fragment
    .       {.var}     label
    /       {/var}     path segment
    ;       {;var}     path-style parameter
    ?       {?var}     query
    &       {&var}     query continuation

Modifiers: ``*`` (explode) splits the capture into a list; ``:N`` (prefix)
is parsed but does not change matching.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import unquote

OPERATORS = frozenset("+#./;?&")

# operator -> (prefix, separator)
_OPERATOR_SYNTAX: dict[str, tuple[str, str]] = {
    "": ("", ","),
    "+": ("", ","),
    "#": ("#", ","),
    ".": (".", "."),
    "/": ("/", "/"),
    ";": (";", ";"),
    "?": ("?", "&"),
    "&": ("&", "&"),
}

# operator -> (capture, exploded capture)
_CAPTURE_PATTERNS: dict[str, tuple[str, str]] = {
    "": ("([^/,]+)", "(.+)"),
    "+": ("([^,]+)", "(.+)"),
    "#": ("([^,]*)", "([^,]*)"),
    ".": ("([^./]+)", "([^./]+)"),
    "/": ("([^/]+)", "(.+)"),
    ";": ("([^;,]*)", "([^;]*)"),
    "?": ("([^&,]*)", "([^&]*)"),
    "&": ("([^&,]*)", "([^&]*)"),
}

# Operators whose captures may carry a "name=" key
_KEYED_OPERATORS = frozenset(";?&")

_EXPRESSION_RE = re.compile(r"\{([^{}]*)\}")
_PREFIX_RE = re.compile(r":(\d+)$")

MatchValue = str | list[str]


class UriTemplateError(ValueError):
    """Raised when a URI template string is malformed."""


@dataclass(frozen=True)
class VariableSpec:
    """A single variable inside a template expression."""

    name: str
    explode: bool = False
    prefix: int | None = None


@dataclass(frozen=True)
class Expression:
    """A parsed ``{...}`` expression: operator plus variable list."""

    operator: str
    variables: tuple[VariableSpec, ...]

    @property
    def prefix(self) -> str:
        return _OPERATOR_SYNTAX[self.operator][0]

    @property
    def separator(self) -> str:
        return _OPERATOR_SYNTAX[self.operator][1]


def parse_expression(expr: str) -> Expression:
    """
    Parse the inside of a ``{...}`` expression.

    Args:
        expr: Expression body without braces, e.g. ``"/path*"`` or ``"x,y:3"``.

    Returns:
        The parsed Expression.

    Raises:
        UriTemplateError: If a variable name is empty.

    Example:
        >>> parse_expression("?q,limit")
        Expression(operator='?', variables=(VariableSpec(name='q', ...), ...))
    """
    operator = ""
    var_list = expr
    if expr and expr[0] in OPERATORS:
        operator = expr[0]
        var_list = expr[1:]

    variables: list[VariableSpec] = []
    for raw in var_list.split(","):
        explode = raw.endswith("*")
        if explode:
            raw = raw[:-1]

        prefix: int | None = None
        prefix_match = _PREFIX_RE.search(raw)
        if prefix_match:
            prefix = int(prefix_match.group(1))
            raw = raw[: prefix_match.start()]

        if not raw:
            raise UriTemplateError(f"Empty variable name in {{{expr}}}")
        variables.append(VariableSpec(name=raw, explode=explode, prefix=prefix))

    return Expression(operator=operator, variables=tuple(variables))


@dataclass(frozen=True)
class _Capture:
    name: str
    operator: str
    explode: bool


def _decode(value: str, operator: str) -> str:
    # The key before "=" is assumed to equal the variable name and dropped.
    if operator in _KEYED_OPERATORS and "=" in value:
        value = value.split("=", 1)[1]
    return unquote(value)


@dataclass
class UriTemplate:
    """
    A compiled URI template.

    Attributes:
        template: The original template string.
        pattern: The anchored regular expression used for matching.

    Example:
        >>> UriTemplate("search://{term}{?limit}").match("search://hi?limit=10")
        {'term': 'hi', 'limit': '10'}
    """

    template: str
    pattern: re.Pattern[str] = field(init=False, repr=False)
    _captures: tuple[_Capture, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.pattern, self._captures = self._compile(self.template)

    @staticmethod
    def _compile(template: str) -> tuple[re.Pattern[str], tuple[_Capture, ...]]:
        if template.count("{") != template.count("}"):
            raise UriTemplateError(f"Unbalanced braces in template {template!r}")

        parts: list[str] = []
        captures: list[_Capture] = []
        last = 0

        for match in _EXPRESSION_RE.finditer(template):
            literal = template[last : match.start()]
            if "{" in literal or "}" in literal:
                raise UriTemplateError(f"Malformed expression in template {template!r}")
            parts.append(re.escape(literal))
            expression = parse_expression(match.group(1))

            for index, var in enumerate(expression.variables):
                if index == 0:
                    parts.append(re.escape(expression.prefix))
                else:
                    parts.append(re.escape(expression.separator))
                plain, exploded = _CAPTURE_PATTERNS[expression.operator]
                parts.append(exploded if var.explode else plain)
                captures.append(_Capture(var.name, expression.operator, var.explode))

            last = match.end()

        tail = template[last:]
        if "{" in tail or "}" in tail:
            raise UriTemplateError(f"Malformed expression in template {template!r}")
        parts.append(re.escape(tail))

        return re.compile("^" + "".join(parts) + "$"), tuple(captures)

    @property
    def variable_names(self) -> list[str]:
        """Names of all template variables, in template order."""
        return [capture.name for capture in self._captures]

    def match(self, uri: str) -> dict[str, MatchValue] | None:
        """
        Match a concrete URI against this template.

        Args:
            uri: The URI to match.

        Returns:
            Mapping of variable name to decoded value (a list of strings for
            exploded variables), or None if the URI does not match.
        """
        found = self.pattern.match(uri)
        if found is None:
            return None

        params: dict[str, MatchValue] = {}
        for capture, value in zip(self._captures, found.groups(), strict=True):
            if capture.explode and value:
                separator = _OPERATOR_SYNTAX[capture.operator][1]
                params[capture.name] = [
                    _decode(piece, capture.operator) for piece in value.split(separator)
                ]
            else:
                params[capture.name] = _decode(value or "", capture.operator)
        return params

    def __str__(self) -> str:
        return self.template
