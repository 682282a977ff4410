"""
Parameter schemas for tool arguments.

A Schema does two things: it validates (and coerces) raw JSON arguments, and
it describes itself as JSON Schema for ``tools/list``. Concrete schema kinds
are variants of the Schema base class:

- ObjectSchema, StringSchema, NumberSchema, IntegerSchema, BooleanSchema
- EnumSchema, OptionalSchema, UnionSchema, ArraySchema
- ModelSchema, which delegates both jobs to a pydantic model

Validation failures raise SchemaValidationError carrying every issue found,
each with the path of the offending field.

Example:
    >>> schema = ObjectSchema({"a": NumberSchema(), "b": NumberSchema()})
    >>> schema.validate({"a": 2, "b": 3})
    {'a': 2, 'b': 3}
    >>> schema.to_json_schema()["required"]
    ['a', 'b']
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

Path = tuple[str | int, ...]


@dataclass(frozen=True)
class ValidationIssue:
    """
    A single validation problem.

    Attributes:
        path: Location of the offending value, from the argument root.
        message: Human-readable description of the problem.
    """

    path: Path
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": list(self.path), "message": self.message}


class SchemaValidationError(Exception):
    """
    Raised when a value does not satisfy a schema.

    Attributes:
        issues: Every problem found, in traversal order.
    """

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues = list(issues)
        summary = "; ".join(
            f"{'.'.join(str(p) for p in issue.path) or '<root>'}: {issue.message}"
            for issue in self.issues
        )
        super().__init__(summary or "Validation failed")

    def to_list(self) -> list[dict[str, Any]]:
        return [issue.to_dict() for issue in self.issues]


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, list | tuple):
        return "array"
    return type(value).__name__


class Schema(ABC):
    """
    Abstract base for all parameter schemas.

    Subclasses implement ``_check`` (collect issues, return the coerced
    value) and ``to_json_schema``.
    """

    description: str | None = None

    @property
    def is_optional(self) -> bool:
        """Whether an enclosing object may omit this field."""
        return False

    def validate(self, value: Any) -> Any:
        """
        Validate a value against this schema.

        Args:
            value: Raw (JSON-decoded) input.

        Returns:
            The validated, possibly coerced, value.

        Raises:
            SchemaValidationError: If any issue is found.
        """
        issues: list[ValidationIssue] = []
        result = self._check(value, (), issues)
        if issues:
            raise SchemaValidationError(issues)
        return result

    @abstractmethod
    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        """Validate ``value`` at ``path``, appending to ``issues``."""

    @abstractmethod
    def to_json_schema(self) -> dict[str, Any]:
        """Describe this schema as a JSON Schema fragment."""

    def _describe(self, result: dict[str, Any]) -> dict[str, Any]:
        if self.description:
            result["description"] = self.description
        return result


class StringSchema(Schema):
    """A string, optionally length-bounded."""

    def __init__(
        self,
        description: str | None = None,
        *,
        min_length: int | None = None,
        max_length: int | None = None,
    ) -> None:
        self.description = description
        self.min_length = min_length
        self.max_length = max_length

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if not isinstance(value, str):
            issues.append(
                ValidationIssue(path, f"Expected string, received {_type_name(value)}")
            )
            return value
        if self.min_length is not None and len(value) < self.min_length:
            issues.append(
                ValidationIssue(
                    path, f"String must contain at least {self.min_length} character(s)"
                )
            )
        if self.max_length is not None and len(value) > self.max_length:
            issues.append(
                ValidationIssue(
                    path, f"String must contain at most {self.max_length} character(s)"
                )
            )
        return value

    def to_json_schema(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": "string"}
        if self.min_length is not None:
            result["minLength"] = self.min_length
        if self.max_length is not None:
            result["maxLength"] = self.max_length
        return self._describe(result)


class NumberSchema(Schema):
    """A JSON number (int or float, never bool), optionally range-bounded."""

    json_type = "number"

    def __init__(
        self,
        description: str | None = None,
        *,
        minimum: float | None = None,
        maximum: float | None = None,
    ) -> None:
        self.description = description
        self.minimum = minimum
        self.maximum = maximum

    def _accepts(self, value: Any) -> bool:
        return isinstance(value, int | float) and not isinstance(value, bool)

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if not self._accepts(value):
            issues.append(
                ValidationIssue(
                    path, f"Expected {self.json_type}, received {_type_name(value)}"
                )
            )
            return value
        if self.minimum is not None and value < self.minimum:
            issues.append(
                ValidationIssue(
                    path, f"Number must be greater than or equal to {self.minimum}"
                )
            )
        if self.maximum is not None and value > self.maximum:
            issues.append(
                ValidationIssue(
                    path, f"Number must be less than or equal to {self.maximum}"
                )
            )
        return value

    def to_json_schema(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.json_type}
        if self.minimum is not None:
            result["minimum"] = self.minimum
        if self.maximum is not None:
            result["maximum"] = self.maximum
        return self._describe(result)


class IntegerSchema(NumberSchema):
    """A whole number. Floats with no fractional part are coerced to int."""

    json_type = "integer"

    def _accepts(self, value: Any) -> bool:
        if isinstance(value, float):
            return value.is_integer()
        return super()._accepts(value)

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        result = super()._check(value, path, issues)
        if isinstance(result, float) and result.is_integer():
            return int(result)
        return result


class BooleanSchema(Schema):
    """A boolean."""

    def __init__(self, description: str | None = None) -> None:
        self.description = description

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if not isinstance(value, bool):
            issues.append(
                ValidationIssue(path, f"Expected boolean, received {_type_name(value)}")
            )
        return value

    def to_json_schema(self) -> dict[str, Any]:
        return self._describe({"type": "boolean"})


class EnumSchema(Schema):
    """One of a fixed set of strings."""

    def __init__(self, values: Sequence[str], description: str | None = None) -> None:
        if not values:
            raise ValueError("EnumSchema requires at least one value")
        self.values = list(values)
        self.description = description

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if value not in self.values:
            expected = " | ".join(repr(v) for v in self.values)
            issues.append(
                ValidationIssue(
                    path, f"Invalid enum value. Expected {expected}, received {value!r}"
                )
            )
        return value

    def to_json_schema(self) -> dict[str, Any]:
        return self._describe({"type": "string", "enum": list(self.values)})


class OptionalSchema(Schema):
    """
    Wraps a schema so that the field may be omitted or null.

    When the value is absent and a default is given, the default is used.
    """

    _MISSING = object()

    def __init__(self, inner: Schema, default: Any = _MISSING) -> None:
        self.inner = inner
        self.default = default
        self.description = inner.description

    @property
    def is_optional(self) -> bool:
        return True

    @property
    def has_default(self) -> bool:
        return self.default is not OptionalSchema._MISSING

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if value is None:
            return self.default if self.has_default else None
        return self.inner._check(value, path, issues)

    def to_json_schema(self) -> dict[str, Any]:
        result = self.inner.to_json_schema()
        if self.has_default:
            result["default"] = self.default
        return result


class UnionSchema(Schema):
    """Accepts a value matching any of the options, tried in order."""

    def __init__(self, options: Sequence[Schema], description: str | None = None) -> None:
        if not options:
            raise ValueError("UnionSchema requires at least one option")
        self.options = list(options)
        self.description = description

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        for option in self.options:
            attempt: list[ValidationIssue] = []
            result = option._check(value, path, attempt)
            if not attempt:
                return result
        issues.append(ValidationIssue(path, "Invalid input: no union member matched"))
        return value

    def to_json_schema(self) -> dict[str, Any]:
        return self._describe(
            {"anyOf": [option.to_json_schema() for option in self.options]}
        )


class ArraySchema(Schema):
    """A list whose items all satisfy ``items``."""

    def __init__(self, items: Schema, description: str | None = None) -> None:
        self.items = items
        self.description = description

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if not isinstance(value, list | tuple):
            issues.append(
                ValidationIssue(path, f"Expected array, received {_type_name(value)}")
            )
            return value
        return [
            self.items._check(item, (*path, index), issues)
            for index, item in enumerate(value)
        ]

    def to_json_schema(self) -> dict[str, Any]:
        return self._describe({"type": "array", "items": self.items.to_json_schema()})


class ObjectSchema(Schema):
    """
    An object with named properties.

    Properties wrapped in OptionalSchema may be omitted; all others are
    required. Keys not named in ``properties`` are dropped from the result.
    """

    def __init__(
        self,
        properties: Mapping[str, Schema] | None = None,
        description: str | None = None,
    ) -> None:
        self.properties = dict(properties or {})
        self.description = description

    @property
    def required(self) -> list[str]:
        return [name for name, schema in self.properties.items() if not schema.is_optional]

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        if not isinstance(value, Mapping):
            issues.append(
                ValidationIssue(path, f"Expected object, received {_type_name(value)}")
            )
            return value

        result: dict[str, Any] = {}
        for name, schema in self.properties.items():
            field_path = (*path, name)
            if name not in value:
                if not schema.is_optional:
                    issues.append(ValidationIssue(field_path, "Required"))
                elif isinstance(schema, OptionalSchema) and schema.has_default:
                    result[name] = schema.default
                continue
            result[name] = schema._check(value[name], field_path, issues)
        return result

    def to_json_schema(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": "object",
            "properties": {
                name: schema.to_json_schema() for name, schema in self.properties.items()
            },
        }
        required = self.required
        if required:
            result["required"] = required
        return self._describe(result)


class ModelSchema(Schema):
    """
    A schema backed by a pydantic model.

    Validation runs ``model_validate`` and hands the handler a plain dict
    (``model_dump``); the JSON Schema comes from ``model_json_schema``.
    """

    def __init__(self, model: type[BaseModel]) -> None:
        self.model = model
        self.description = model.__doc__.strip() if model.__doc__ else None

    def _check(self, value: Any, path: Path, issues: list[ValidationIssue]) -> Any:
        try:
            return self.model.model_validate(value).model_dump()
        except ValidationError as e:
            for error in e.errors():
                issues.append(ValidationIssue((*path, *error["loc"]), error["msg"]))
            return value

    def to_json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema()


def as_schema(value: Schema | type[BaseModel] | None) -> Schema:
    """
    Normalize a tool's ``parameters`` declaration into a Schema.

    Args:
        value: A Schema, a pydantic model class, or None (no parameters).

    Returns:
        A Schema instance.

    Raises:
        TypeError: If the value is none of the accepted kinds.
    """
    if value is None:
        return ObjectSchema()
    if isinstance(value, Schema):
        return value
    if isinstance(value, type) and issubclass(value, BaseModel):
        return ModelSchema(value)
    raise TypeError(
        f"parameters must be a Schema or a pydantic model, got {type(value).__name__}"
    )
