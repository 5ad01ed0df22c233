"""Validation engine: pure functions, no side effects.

A :class:`ValidationSchema` plus a :class:`ParsedFile` go in, a
:class:`ValidationResult` comes out.  Problems in the data are reported as
errors and warnings inside the result, never raised.
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Any, Literal

from upload_gate.io import parse_file, parse_upload
from upload_gate.models import (
    ColumnSchema,
    ColumnType,
    CustomRule,
    EnumRule,
    MaxRule,
    MinRule,
    ParsedFile,
    ParserOptions,
    PatternRule,
    PositiveRule,
    ValidationError,
    ValidationResult,
    ValidationRule,
    ValidationSchema,
    ValidationSummary,
    ValidationWarning,
)
from upload_gate.schemas import get_schema_by_file_type, is_parseable_datetime

logger = logging.getLogger(__name__)

# Data index 0 is line 2 of the file: line 1 holds the headers.
ROW_NUMBER_OFFSET = 2

GateDecision = Literal["reject", "warn", "proceed"]

_ALPHANUMERIC_RE = re.compile(r"[a-zA-Z0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_RADIX_RE = re.compile(r"0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+")
_INFINITY_RE = re.compile(r"[+-]?Infinity")
_BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "1", "0"})

_TYPE_FAILURES: dict[str, str] = {
    "number": "is not a valid number",
    "integer": "is not a valid integer",
    "datetime": "is not a valid datetime",
    "alphanumeric": "must contain only letters and numbers",
    "text": "is not valid text",
    "boolean": "is not a valid boolean",
}


class UnknownFileTypeError(ValueError):
    """No schema is registered for the requested file type."""


# ── Value helpers ────────────────────────────────────────────────


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_number(value: Any) -> float | None:
    """Coerce *value* to a float the way a numeric form field would.

    Accepts decimal and scientific notation, ``0x``/``0o``/``0b`` literals
    and ``Infinity``.  Returns ``None`` when the value is not numeric.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number
    text = _stringify(value)
    if not text:
        return None
    if _DECIMAL_RE.fullmatch(text):
        return float(text)
    if _RADIX_RE.fullmatch(text):
        return float(int(text, 0))
    if _INFINITY_RE.fullmatch(text):
        return -math.inf if text.startswith("-") else math.inf
    return None


def _type_matches(column_type: ColumnType, value: Any) -> bool:
    text = _stringify(value)
    if column_type == "number":
        return to_number(value) is not None
    if column_type == "integer":
        number = to_number(value)
        return number is not None and math.isfinite(number) and number.is_integer()
    if column_type == "datetime":
        return is_parseable_datetime(text)
    if column_type == "alphanumeric":
        return _ALPHANUMERIC_RE.fullmatch(text) is not None
    if column_type == "text":
        return isinstance(value, (str, int, float)) and not isinstance(value, bool)
    if column_type == "boolean":
        return isinstance(value, bool) or text.lower() in _BOOLEAN_TOKENS
    raise ValueError(f"Unknown column type: {column_type!r}")


def _in_enum(value: Any, allowed: frozenset[Any]) -> bool:
    try:
        if value in allowed:
            return True
    except TypeError:
        pass
    return _stringify(value) in allowed


def _bound_measure(column_type: ColumnType, value: Any) -> float | None:
    if column_type == "text":
        return float(len(_stringify(value)))
    return to_number(value)


def rule_passes(rule: ValidationRule, column_type: ColumnType, value: Any) -> bool:
    """Apply one rule to a non-empty, type-checked value."""
    if isinstance(rule, (MinRule, MaxRule)):
        if column_type not in ("text", "number", "integer"):
            return True
        measure = _bound_measure(column_type, value)
        if measure is None:
            return False
        if isinstance(rule, MinRule):
            return measure >= rule.value
        return measure <= rule.value
    if isinstance(rule, PatternRule):
        return rule.pattern.fullmatch(_stringify(value)) is not None
    if isinstance(rule, EnumRule):
        return _in_enum(value, rule.values)
    if isinstance(rule, PositiveRule):
        number = to_number(value)
        return number is not None and number > 0
    if isinstance(rule, CustomRule):
        try:
            return bool(rule.predicate(value))
        except Exception:
            logger.warning("Custom rule %r raised; counting it as failed", rule.message, exc_info=True)
            return False
    raise TypeError(f"Unsupported validation rule: {rule!r}")


# ── Checks ───────────────────────────────────────────────────────


def _header_lookup(headers: tuple[str, ...]) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for header in headers:
        lookup.setdefault(header.lower(), header)
    return lookup


def _check_missing_columns(
    schema: ValidationSchema, lookup: dict[str, str]
) -> list[ValidationError]:
    return [
        ValidationError(
            type="missing_column",
            column=column.name,
            message=f"Required column '{column.name}' is missing from the file",
        )
        for column in schema.required_columns
        if column.name.lower() not in lookup
    ]


def _check_extra_columns(
    schema: ValidationSchema, headers: tuple[str, ...]
) -> list[ValidationWarning]:
    expected = {column.name.lower() for column in schema.columns}
    return [
        ValidationWarning(
            type="data_quality",
            column=header,
            message=f"Column '{header}' is not expected in this file type",
        )
        for header in headers
        if header.lower() not in expected
    ]


def _check_cell(column: ColumnSchema, value: Any, row_number: int) -> list[ValidationError]:
    if is_empty(value):
        if not column.required:
            return []
        return [
            ValidationError(
                type="empty_required_field",
                column=column.name,
                row=row_number,
                value=value,
                message=f"Required field '{column.name}' is empty in row {row_number}",
            )
        ]

    if not _type_matches(column.type, value):
        return [
            ValidationError(
                type="invalid_data_type",
                column=column.name,
                row=row_number,
                value=value,
                message=(
                    f"Value '{value}' in column '{column.name}' (row {row_number}) "
                    f"{_TYPE_FAILURES[column.type]}"
                ),
            )
        ]

    return [
        ValidationError(
            type="invalid_format",
            column=column.name,
            row=row_number,
            value=value,
            message=f"{rule.message} (row {row_number})",
        )
        for rule in column.validation
        if not rule_passes(rule, column.type, value)
    ]


def _validate_rows(
    schema: ValidationSchema, parsed: ParsedFile, lookup: dict[str, str]
) -> list[ValidationError]:
    present = [
        (column, lookup[column.name.lower()])
        for column in schema.columns
        if column.name.lower() in lookup
    ]
    errors: list[ValidationError] = []
    for idx, row in enumerate(parsed.data):
        row_number = idx + ROW_NUMBER_OFFSET
        for column, header in present:
            errors.extend(_check_cell(column, row.get(header), row_number))
    return errors


def _summarize(
    schema: ValidationSchema,
    parsed: ParsedFile,
    lookup: dict[str, str],
    errors: list[ValidationError],
    warnings: list[ValidationWarning],
) -> ValidationSummary:
    required = schema.required_columns
    present = sum(1 for column in required if column.name.lower() in lookup)
    coverage = (present / len(required)) * 100 if required else 100.0

    error_rows = {error.row for error in errors if error.row is not None}
    return ValidationSummary(
        total_rows=parsed.row_count,
        valid_rows=max(parsed.row_count - len(error_rows), 0),
        error_count=len(errors),
        warning_count=len(warnings),
        missing_columns=[e.column for e in errors if e.type == "missing_column"],
        extra_columns=[w.column for w in warnings if w.type == "data_quality"],
        column_coverage=coverage,
    )


# ── Public API ───────────────────────────────────────────────────


def validate(schema: ValidationSchema, parsed: ParsedFile) -> ValidationResult:
    """Validate *parsed* against *schema*.

    Order of checks: missing columns, unexpected columns, then every row.
    Within a cell an empty required value or a wrong type stops further
    checks; failing rules are all reported.
    """
    lookup = _header_lookup(parsed.headers)
    errors = _check_missing_columns(schema, lookup)
    warnings = _check_extra_columns(schema, parsed.headers)
    errors.extend(_validate_rows(schema, parsed, lookup))
    summary = _summarize(schema, parsed, lookup, errors, warnings)

    logger.debug(
        "Validated %s as %s: %d errors, %d warnings",
        parsed.file_name,
        schema.file_type,
        len(errors),
        len(warnings),
    )
    return ValidationResult(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        parsed_data=parsed,
        summary=summary,
    )


def validate_upload(
    source: Path | str | bytes,
    file_type: str,
    options: ParserOptions | None = None,
    *,
    file_name: str | None = None,
) -> ValidationResult:
    """Look up the schema for *file_type*, parse *source* and validate it.

    *source* is a path on disk or the raw bytes of an upload (in which case
    *file_name* is required to pick the format).

    Raises
    ------
    UnknownFileTypeError
        If no schema exists for *file_type*.
    FileParseError
        If the file cannot be parsed.
    """
    schema = get_schema_by_file_type(file_type)
    if schema is None:
        raise UnknownFileTypeError(f"No validation schema found for file type: {file_type}")

    if isinstance(source, (bytes, bytearray)):
        if not file_name:
            raise ValueError("file_name is required when validating raw bytes")
        parsed = parse_upload(bytes(source), file_name, options)
    else:
        parsed = parse_file(Path(source), options)
    return validate(schema, parsed)


def gate_decision(result: ValidationResult) -> GateDecision:
    """Map a result onto the upload step: block, proceed with a warning, or proceed."""
    if not result.is_valid:
        return "reject"
    if result.warnings:
        return "warn"
    return "proceed"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def validation_status(result: ValidationResult | None) -> str:
    if result is None:
        return ""
    if not result.is_valid:
        return "Invalid"
    if result.warnings:
        return f"Valid with {_plural(len(result.warnings), 'warning')}"
    return "Valid"


def error_summary(result: ValidationResult | None) -> str:
    """Return e.g. ``"3 errors and 1 warning found"``; empty when there are no errors."""
    if result is None or not result.errors:
        return ""
    summary = _plural(len(result.errors), "error")
    if result.warnings:
        summary += f" and {_plural(len(result.warnings), 'warning')}"
    return summary + " found"


_ERROR_CATEGORIES: dict[str, str] = {
    "missing_column": "missing_columns",
    "invalid_data_type": "data_type_errors",
    "empty_required_field": "empty_fields",
}


def categorize_errors(result: ValidationResult | None) -> dict[str, list[ValidationError]]:
    if result is None:
        return {}
    categories: dict[str, list[ValidationError]] = {
        "missing_columns": [],
        "data_type_errors": [],
        "validation_errors": [],
        "empty_fields": [],
    }
    for error in result.errors:
        categories[_ERROR_CATEGORIES.get(error.type, "validation_errors")].append(error)
    return categories
