"""Static validation schemas, one per uploadable file type."""

from __future__ import annotations

from typing import Any

import pandas as pd

from upload_gate.models import (
    ColumnSchema,
    CustomRule,
    EnumRule,
    MaxRule,
    MinRule,
    PatternRule,
    PositiveRule,
    ValidationRule,
    ValidationSchema,
)

ALPHANUMERIC_PATTERN = r"^[a-zA-Z0-9]+$"
_BINARY_FLAGS = frozenset({0, 1, "0", "1"})


def is_parseable_datetime(value: Any) -> bool:
    """Return True when *value* can be read as a date/time."""
    if value is None or value == "":
        return False
    try:
        parsed = pd.to_datetime(str(value).strip(), errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return False
    return not pd.isna(parsed)


def _identifier(name: str, label: str) -> ColumnSchema:
    return ColumnSchema(
        name=name,
        type="alphanumeric",
        validation=(PatternRule(ALPHANUMERIC_PATTERN, f"{label} must be alphanumeric"),),
    )


def _positive_number(name: str, label: str) -> ColumnSchema:
    return ColumnSchema(
        name=name,
        type="number",
        validation=(PositiveRule(f"{label} must be a positive number"),),
    )


def _non_empty_text(name: str, label: str) -> ColumnSchema:
    return ColumnSchema(
        name=name,
        type="text",
        validation=(MinRule(1, f"{label} cannot be empty"),),
    )


def _flag(name: str, label: str) -> ColumnSchema:
    return ColumnSchema(
        name=name,
        type="integer",
        validation=(EnumRule(_BINARY_FLAGS, f"{label} must be 0 or 1"),),
    )


def _timestamp(name: str, label: str) -> ColumnSchema:
    return ColumnSchema(
        name=name,
        type="datetime",
        validation=(
            CustomRule(is_parseable_datetime, f"{label} must be a valid datetime format"),
        ),
    )


TRANSACTION_SCHEMA = ValidationSchema(
    file_type="transaction",
    required_columns=(
        _identifier("upc", "UPC"),
        _positive_number("sale_price", "Sale price"),
        _positive_number("sale_quantity", "Sale quantity"),
        _identifier("household_id", "Household ID"),
        _identifier("store_id", "Store ID"),
        _identifier("trip_id", "Trip ID"),
        _timestamp("time", "Time"),
    ),
)

PRODUCT_LOOKUP_SCHEMA = ValidationSchema(
    file_type="product_lookup",
    required_columns=(
        _identifier("upc", "UPC"),
        _non_empty_text("product_description", "Product description"),
        _non_empty_text("category", "Category"),
        _non_empty_text("brand", "Brand"),
        _positive_number("product_size", "Product size"),
    ),
)

CAUSAL_LOOKUP_SCHEMA = ValidationSchema(
    file_type="causal_lookup",
    required_columns=(
        _identifier("upc", "UPC"),
        _identifier("store_id", "Store ID"),
        _flag("feature", "Feature"),
        _flag("display", "Display"),
        _timestamp("start_time", "Start time"),
        _timestamp("end_time", "End time"),
    ),
)

VALIDATION_SCHEMAS: dict[str, ValidationSchema] = {
    schema.file_type: schema
    for schema in (TRANSACTION_SCHEMA, PRODUCT_LOOKUP_SCHEMA, CAUSAL_LOOKUP_SCHEMA)
}

_FILE_TYPE_LABELS: dict[str, str] = {
    "transaction": "Transaction Data",
    "product_lookup": "Product Lookup",
    "causal_lookup": "Causal Lookup",
}


def get_schema_by_file_type(file_type: str) -> ValidationSchema | None:
    """Look up the schema for *file_type*; ``None`` when there is none."""
    return VALIDATION_SCHEMAS.get(file_type)


def file_type_label(file_type: str) -> str:
    return _FILE_TYPE_LABELS.get(file_type, file_type)


def describe_rule(rule: ValidationRule) -> str:
    """One-line, human readable description of a rule (used by ``ugate schemas``)."""
    if isinstance(rule, MinRule):
        return f"min {rule.value:g}"
    if isinstance(rule, MaxRule):
        return f"max {rule.value:g}"
    if isinstance(rule, PatternRule):
        return f"pattern {rule.pattern.pattern}"
    if isinstance(rule, EnumRule):
        allowed = sorted({str(value) for value in rule.values})
        return f"one of {', '.join(allowed)}"
    if isinstance(rule, PositiveRule):
        return "positive"
    if isinstance(rule, CustomRule):
        return "custom check"
    raise TypeError(f"Unsupported validation rule: {rule!r}")
