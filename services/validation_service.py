"""
Row validation for catalog imports.

validate_row() is the single entry point used for the first pass after
upload, for full revalidation after a remap and for a single edited row.
It is pure: the same (mapping, record) always yields an equal StagedRow.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from config.catalog_fields import TARGET_FIELDS, FieldType, TargetField
from utils.text_utils import normalize_token

# Error codes attached to rows (never raised to callers)
REQUIRED = "Required"
INVALID_NUMBER = "InvalidNumber"
INVALID_BOOLEAN = "InvalidBoolean"
INVALID_ENUM = "InvalidEnum"
OUT_OF_RANGE = "OutOfRange"
TOO_LONG = "TooLong"

TRUE_TOKENS = frozenset({"true", "yes", "1"})
FALSE_TOKENS = frozenset({"false", "no", "0"})
BOOLEAN_TOKENS_DISPLAY = "true, false, yes, no, 1, 0"

_YEAR = re.compile(r"\b(\d{4})\b")
_NUMBER_NOISE = re.compile(r"[,$]")
_PLAIN_NUMBER = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


@dataclass(frozen=True)
class FieldError:
    """Validation failure for one field of one row."""
    field: str
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "code": self.code, "message": self.message}


@dataclass(frozen=True)
class StagedRow:
    """
    One parsed-and-validated record of an import session.

    values holds typed values keyed by target field key, only for fields
    that were populated from the file or filled from a schema default.
    defaulted lists the keys whose value came from a default.
    """
    row_index: int
    values: dict[str, Any] = field(default_factory=dict)
    errors: tuple[FieldError, ...] = ()
    defaulted: frozenset[str] = frozenset()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def title(self) -> Optional[str]:
        """Display title for reports."""
        title = self.values.get("title")
        return str(title) if title is not None else None

    def error_summary(self) -> str:
        """All error messages joined for a single spreadsheet cell."""
        return "; ".join(e.message for e in self.errors)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "row_index": self.row_index,
            "values": dict(self.values),
            "errors": [e.to_dict() for e in self.errors],
            "is_valid": self.is_valid,
        }


class FieldCoercionError(ValueError):
    """A non-empty cell could not be converted to the field's type."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


# ===================
# VALIDATION
# ===================

def validate_row(
    mapping: dict[str, Optional[str]],
    record: dict[str, str],
    row_index: int,
    fields: Iterable[TargetField] = TARGET_FIELDS,
) -> StagedRow:
    """
    Validate one raw record against the catalog schema.

    For every non-reserved target field:
    - mapped header with a non-empty cell: the cell is coerced to the
      field's type, and any failure becomes a FieldError
    - unmapped, or mapped to an empty cell: a required field gets a
      Required error; an optional field takes its default when it has one,
      otherwise stays absent

    Args:
        mapping: Source header -> target field key (None = ignored)
        record: Source header -> raw cell text
        row_index: 1-based position of the row in the file
        fields: Target field registry

    Returns:
        StagedRow with typed values and errors
    """
    sources = _sources_by_field(mapping)
    values: dict[str, Any] = {}
    errors: list[FieldError] = []
    defaulted: set[str] = set()

    for target in fields:
        if target.reserved:
            continue

        header = sources.get(target.key)
        cell = (record.get(header) or "").strip() if header is not None else ""

        if not cell:
            if target.required:
                errors.append(FieldError(target.key, REQUIRED, f"{REQUIRED}: {target.label}"))
            elif target.has_default:
                values[target.key] = target.default
                defaulted.add(target.key)
            continue

        try:
            values[target.key] = coerce_value(target, cell)
        except FieldCoercionError as e:
            errors.append(FieldError(target.key, e.code, e.message))

    return StagedRow(
        row_index=row_index,
        values=values,
        errors=tuple(errors),
        defaulted=frozenset(defaulted),
    )


def coerce_value(target: TargetField, raw: str) -> Any:
    """
    Convert non-empty cell text to the field's declared type.

    Raises:
        FieldCoercionError: With the error code and message for the row
    """
    if target.type == FieldType.NUMBER:
        return _coerce_number(target, raw)
    if target.type == FieldType.BOOLEAN:
        return _coerce_boolean(target, raw)
    if target.type == FieldType.ENUM:
        return _coerce_enum(target, raw)
    return _coerce_string(target, raw)


def cell_text(value: Any) -> str:
    """Render a typed value the way it would appear in the file."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _sources_by_field(mapping: dict[str, Optional[str]]) -> dict[str, str]:
    """Invert header -> field into field -> header, first header wins."""
    sources: dict[str, str] = {}
    for header, key in mapping.items():
        if key and key not in sources:
            sources[key] = header
    return sources


# ===================
# TYPE COERCION
# ===================

def _coerce_number(target: TargetField, raw: str) -> Any:
    if target.extract_year:
        match = _YEAR.search(raw)
        if not match:
            raise FieldCoercionError(
                INVALID_NUMBER,
                f"{INVALID_NUMBER}: {target.label} must contain a four-digit year (got '{raw}')"
            )
        number = float(match.group(1))
    else:
        cleaned = _NUMBER_NOISE.sub("", raw.strip()).strip()
        if not _PLAIN_NUMBER.fullmatch(cleaned):
            raise FieldCoercionError(
                INVALID_NUMBER,
                f"{INVALID_NUMBER}: {target.label} must be a number (got '{raw}')"
            )
        number = float(cleaned)

    if not math.isfinite(number):
        raise FieldCoercionError(
            INVALID_NUMBER,
            f"{INVALID_NUMBER}: {target.label} must be a finite number (got '{raw}')"
        )

    if target.integer:
        if not number.is_integer():
            raise FieldCoercionError(
                INVALID_NUMBER,
                f"{INVALID_NUMBER}: {target.label} must be a whole number (got '{raw}')"
            )
        number = int(number)

    if target.min_value is not None and number < target.min_value:
        raise FieldCoercionError(
            OUT_OF_RANGE,
            f"{OUT_OF_RANGE}: {target.label} must be at least {_display(target.min_value)}"
        )
    if target.max_value is not None and number > target.max_value:
        raise FieldCoercionError(
            OUT_OF_RANGE,
            f"{OUT_OF_RANGE}: {target.label} must be at most {_display(target.max_value)}"
        )

    return number


def _coerce_boolean(target: TargetField, raw: str) -> bool:
    token = raw.strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    raise FieldCoercionError(
        INVALID_BOOLEAN,
        f"{INVALID_BOOLEAN}: {target.label} must be one of {BOOLEAN_TOKENS_DISPLAY} (got '{raw}')"
    )


def _coerce_enum(target: TargetField, raw: str) -> str:
    token = normalize_token(raw)
    token = target.enum_aliases.get(token, token)
    if token in target.allowed_values:
        return token
    raise FieldCoercionError(
        INVALID_ENUM,
        f"{INVALID_ENUM}: {target.label} must be one of {', '.join(target.allowed_values)} (got '{raw}')"
    )


def _coerce_string(target: TargetField, raw: str) -> str:
    value = raw.strip()
    if target.max_length is not None and len(value) > target.max_length:
        raise FieldCoercionError(
            TOO_LONG,
            f"{TOO_LONG}: {target.label} exceeds {target.max_length} characters"
        )
    return value


def _display(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)
