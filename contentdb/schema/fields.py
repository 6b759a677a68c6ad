"""
Field kinds and validators.

Collection schemas are built from a closed set of field kinds. Every kind
has exactly one validator in VALIDATORS and one storage decoder in DECODERS;
validate_metadata() runs them over a parsed document's frontmatter.

Scalar checks are delegated to pydantic TypeAdapters so that coercion
rules (ISO date strings, strict strings, strict booleans) match the rest of
the pydantic models in this package.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from pydantic import StrictBool, StrictInt, StrictStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from contentdb.core.exceptions import ValidationError

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# SQL integer columns are signed 64-bit
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class FieldKind(str, Enum):
    STRING = "string"
    DATE = "date"
    SLUG = "slug"
    MARKDOWN = "markdown"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    LIST = "list"
    OPTIONAL = "optional"


class FieldValueError(ValueError):
    """A single value failed its field validator."""


@dataclass(frozen=True)
class FieldSpec:
    """
    One named, typed schema field.

    Attributes:
        name: Frontmatter key
        kind: Field kind; selects the validator
        inner: Element spec for LIST, wrapped spec for OPTIONAL
        check: Extra validator run after the kind's validator. It receives
            the coerced value and returns it (possibly transformed) or
            raises ValueError.
        description: Free text, used by schema discovery
    """
    name: str
    kind: FieldKind
    inner: Optional["FieldSpec"] = None
    check: Optional[Callable[[Any], Any]] = None
    description: Optional[str] = None

    @property
    def required(self) -> bool:
        return self.kind is not FieldKind.OPTIONAL

    @property
    def base_kind(self) -> FieldKind:
        """Kind with OPTIONAL wrappers removed."""
        spec = self
        while spec.kind is FieldKind.OPTIONAL and spec.inner is not None:
            spec = spec.inner
        return spec.kind

    def signature(self) -> str:
        inner = f"<{self.inner.signature()}>" if self.inner is not None else ""
        return f"{self.name}:{self.kind.value}{inner}"


# ----------------------------------------------------------------------
# Spec constructors
# ----------------------------------------------------------------------

def string(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.STRING, **kwargs)


def date_field(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.DATE, **kwargs)


def slug(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.SLUG, **kwargs)


def markdown(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.MARKDOWN, **kwargs)


def number(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.NUMBER, **kwargs)


def integer(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.INTEGER, **kwargs)


def boolean(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.BOOLEAN, **kwargs)


def list_of(name: str, element: FieldSpec, **kwargs) -> FieldSpec:
    return FieldSpec(name, FieldKind.LIST, inner=element, **kwargs)


def optional(spec: FieldSpec) -> FieldSpec:
    return FieldSpec(spec.name, FieldKind.OPTIONAL, inner=spec, description=spec.description)


# ----------------------------------------------------------------------
# Validators
# ----------------------------------------------------------------------

_STR = TypeAdapter(StrictStr)
_DATE = TypeAdapter(date)
_FLOAT = TypeAdapter(float)
_INT = TypeAdapter(StrictInt)
_BOOL = TypeAdapter(StrictBool)


def _adapt(adapter: TypeAdapter, value: Any) -> Any:
    try:
        return adapter.validate_python(value)
    except PydanticValidationError as e:
        raise FieldValueError(e.errors()[0]["msg"]) from e


def _validate_string(spec: FieldSpec, value: Any) -> str:
    return _adapt(_STR, value)


def _validate_date(spec: FieldSpec, value: Any) -> date:
    # YAML turns "2024-01-01T10:00:00" into a datetime; keep the calendar date
    if isinstance(value, datetime):
        return value.date()
    return _adapt(_DATE, value)


def _validate_slug(spec: FieldSpec, value: Any) -> str:
    text = _adapt(_STR, value)
    if not SLUG_RE.match(text):
        raise FieldValueError(f"'{text}' is not a lowercase hyphenated slug")
    return text


def _validate_markdown(spec: FieldSpec, value: Any) -> str:
    return _adapt(_STR, value)


def _validate_number(spec: FieldSpec, value: Any) -> float:
    if isinstance(value, bool):
        raise FieldValueError("Input should be a valid number")
    return _adapt(_FLOAT, value)


def _validate_integer(spec: FieldSpec, value: Any) -> int:
    number = _adapt(_INT, value)
    if not INT64_MIN <= number <= INT64_MAX:
        raise FieldValueError(f"{number} is outside the signed 64-bit integer range")
    return number


def _validate_boolean(spec: FieldSpec, value: Any) -> bool:
    return _adapt(_BOOL, value)


def _validate_list(spec: FieldSpec, value: Any) -> list:
    if not isinstance(value, (list, tuple)):
        raise FieldValueError("Input should be a valid list")
    items = []
    for index, item in enumerate(value):
        try:
            items.append(validate_value(spec.inner, item))
        except FieldValueError as e:
            raise FieldValueError(f"item {index}: {e}") from e
    return items


def _validate_optional(spec: FieldSpec, value: Any) -> Any:
    if value is None:
        return None
    return validate_value(spec.inner, value)


VALIDATORS: Dict[FieldKind, Callable[[FieldSpec, Any], Any]] = {
    FieldKind.STRING: _validate_string,
    FieldKind.DATE: _validate_date,
    FieldKind.SLUG: _validate_slug,
    FieldKind.MARKDOWN: _validate_markdown,
    FieldKind.NUMBER: _validate_number,
    FieldKind.INTEGER: _validate_integer,
    FieldKind.BOOLEAN: _validate_boolean,
    FieldKind.LIST: _validate_list,
    FieldKind.OPTIONAL: _validate_optional,
}


def has_validator(spec: FieldSpec) -> bool:
    """True when the spec and every nested spec resolve to a validator."""
    if not isinstance(spec.kind, FieldKind) or spec.kind not in VALIDATORS:
        return False
    if spec.kind in (FieldKind.LIST, FieldKind.OPTIONAL):
        return spec.inner is not None and has_validator(spec.inner)
    return True


def validate_value(spec: FieldSpec, value: Any) -> Any:
    """Run the kind validator, then the spec's extra check."""
    result = VALIDATORS[spec.kind](spec, value)
    if spec.check is not None and result is not None:
        try:
            result = spec.check(result)
        except (TypeError, ValueError) as e:
            raise FieldValueError(str(e)) from e
    return result


def validate_metadata(
    fields: Sequence[FieldSpec],
    metadata: Mapping[str, Any],
    body: str,
    source_path: str,
) -> Dict[str, Any]:
    """
    Validate a document's metadata against an ordered field list.

    Stops at the first failing field. Markdown fields missing from the
    metadata take the document body. Keys not declared in the schema are
    dropped.

    Raises:
        ValidationError: naming the source file and the failing field
    """
    data: Dict[str, Any] = {}
    for spec in fields:
        if spec.name in metadata:
            value = metadata[spec.name]
        elif spec.base_kind is FieldKind.MARKDOWN:
            value = body
        elif spec.required:
            raise ValidationError(
                f"Missing required field '{spec.name}'",
                source_path=source_path,
                field=spec.name,
            )
        else:
            value = None

        try:
            data[spec.name] = validate_value(spec, value)
        except FieldValueError as e:
            raise ValidationError(
                f"Invalid value for field '{spec.name}': {e}",
                source_path=source_path,
                field=spec.name,
            ) from e
    return data


# ----------------------------------------------------------------------
# Storage decoding
# ----------------------------------------------------------------------

def _decode_date(spec: FieldSpec, value: Any) -> Any:
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


def _decode_number(spec: FieldSpec, value: Any) -> Any:
    return float(value)


def _decode_list(spec: FieldSpec, value: Any) -> Any:
    return [decode_value(spec.inner, item) for item in value]


def _decode_optional(spec: FieldSpec, value: Any) -> Any:
    return decode_value(spec.inner, value)


def _decode_passthrough(spec: FieldSpec, value: Any) -> Any:
    return value


DECODERS: Dict[FieldKind, Callable[[FieldSpec, Any], Any]] = {
    FieldKind.STRING: _decode_passthrough,
    FieldKind.DATE: _decode_date,
    FieldKind.SLUG: _decode_passthrough,
    FieldKind.MARKDOWN: _decode_passthrough,
    FieldKind.NUMBER: _decode_number,
    FieldKind.INTEGER: _decode_passthrough,
    FieldKind.BOOLEAN: _decode_passthrough,
    FieldKind.LIST: _decode_list,
    FieldKind.OPTIONAL: _decode_optional,
}


def decode_value(spec: FieldSpec, value: Any) -> Any:
    """Restore a JSON/SQL-stored value to the Python type its kind validates to."""
    if value is None:
        return None
    return DECODERS[spec.kind](spec, value)
