"""Data models / value objects used across the package."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral, Real
from typing import Any, ClassVar, Literal, Union

ColumnType = Literal["text", "number", "integer", "datetime", "boolean", "alphanumeric"]
ErrorType = Literal[
    "missing_column",
    "invalid_data_type",
    "empty_required_field",
    "invalid_format",
    "out_of_range",
]
WarningType = Literal["data_quality", "formatting", "recommendation"]

COLUMN_TYPES: frozenset[str] = frozenset(
    {"text", "number", "integer", "datetime", "boolean", "alphanumeric"}
)
ERROR_TYPES: frozenset[str] = frozenset(
    {
        "missing_column",
        "invalid_data_type",
        "empty_required_field",
        "invalid_format",
        "out_of_range",
    }
)
WARNING_TYPES: frozenset[str] = frozenset({"data_quality", "formatting", "recommendation"})


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_tuple(values: Sequence[Any] | None, field_name: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return tuple(normalized)


def _to_bound(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{field_name} must be a number")
    return float(value)


def _require_message(message: Any) -> None:
    if not isinstance(message, str) or not message:
        raise ValueError("rule message must be a non-empty string")


# ── Validation rules ─────────────────────────────────────────────


@dataclass(frozen=True)
class MinRule:
    """Lower bound: numeric value for numeric columns, length for text."""

    value: float
    message: str
    kind: ClassVar[str] = "min"

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _to_bound(self.value, "min value"))
        _require_message(self.message)


@dataclass(frozen=True)
class MaxRule:
    """Upper bound: numeric value for numeric columns, length for text."""

    value: float
    message: str
    kind: ClassVar[str] = "max"

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _to_bound(self.value, "max value"))
        _require_message(self.message)


@dataclass(frozen=True)
class PatternRule:
    pattern: re.Pattern[str]
    message: str
    kind: ClassVar[str] = "pattern"

    def __post_init__(self) -> None:
        if isinstance(self.pattern, str):
            object.__setattr__(self, "pattern", re.compile(self.pattern))
        elif not isinstance(self.pattern, re.Pattern):
            raise TypeError("pattern must be a string or compiled regular expression")
        _require_message(self.message)


@dataclass(frozen=True)
class EnumRule:
    values: frozenset[Any]
    message: str
    kind: ClassVar[str] = "enum"

    def __post_init__(self) -> None:
        if isinstance(self.values, str) or not isinstance(self.values, Iterable):
            raise TypeError("enum values must be an iterable of allowed values")
        object.__setattr__(self, "values", frozenset(self.values))
        _require_message(self.message)


@dataclass(frozen=True)
class PositiveRule:
    message: str
    kind: ClassVar[str] = "positive"

    def __post_init__(self) -> None:
        _require_message(self.message)


@dataclass(frozen=True)
class CustomRule:
    predicate: Callable[[Any], bool]
    message: str
    kind: ClassVar[str] = "custom"

    def __post_init__(self) -> None:
        if not callable(self.predicate):
            raise TypeError("custom rule predicate must be callable")
        _require_message(self.message)


ValidationRule = Union[MinRule, MaxRule, PatternRule, EnumRule, PositiveRule, CustomRule]
RULE_TYPES: tuple[type, ...] = (MinRule, MaxRule, PatternRule, EnumRule, PositiveRule, CustomRule)


# ── Schemas ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ColumnSchema:
    """One expected column; ``name`` is matched case-insensitively."""

    name: str
    type: ColumnType
    required: bool = True
    validation: tuple[ValidationRule, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("column name must be a non-empty string")
        if self.type not in COLUMN_TYPES:
            raise ValueError(
                f"Invalid column type: {self.type!r}. Use one of {', '.join(sorted(COLUMN_TYPES))}"
            )
        if not isinstance(self.required, bool):
            raise TypeError("required must be a bool")
        rules = tuple(self.validation or ())
        for rule in rules:
            if not isinstance(rule, RULE_TYPES):
                raise TypeError(f"Unsupported validation rule: {rule!r}")
        object.__setattr__(self, "validation", rules)


@dataclass(frozen=True)
class ValidationSchema:
    """Expected layout for one file type."""

    file_type: str
    required_columns: tuple[ColumnSchema, ...]
    optional_columns: tuple[ColumnSchema, ...] = ()

    def __post_init__(self) -> None:
        required = tuple(self.required_columns)
        optional = tuple(self.optional_columns or ())
        seen: set[str] = set()
        for column in (*required, *optional):
            if not isinstance(column, ColumnSchema):
                raise TypeError("schema columns must be ColumnSchema instances")
            key = column.name.lower()
            if key in seen:
                raise ValueError(f"Duplicate column in schema {self.file_type!r}: {column.name}")
            seen.add(key)
        object.__setattr__(self, "required_columns", required)
        object.__setattr__(self, "optional_columns", optional)

    @property
    def columns(self) -> tuple[ColumnSchema, ...]:
        return (*self.required_columns, *self.optional_columns)


# ── Parser output ────────────────────────────────────────────────


@dataclass(frozen=True)
class ParserOptions:
    max_preview_rows: int = 5
    encoding: str = "utf-8"
    delimiter: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "max_preview_rows",
            _to_non_negative_int(self.max_preview_rows, "max_preview_rows"),
        )
        if not isinstance(self.encoding, str) or not self.encoding:
            raise ValueError("encoding must be a non-empty string")
        if self.delimiter is not None and (
            not isinstance(self.delimiter, str) or len(self.delimiter) != 1
        ):
            raise ValueError("delimiter must be a single character")


@dataclass(frozen=True)
class ParsedFile:
    """Normalized table produced by the parser.

    Contract invariants: headers are unique, ``row_count == len(data)`` and
    ``preview`` is a prefix of ``data``.
    """

    headers: tuple[str, ...]
    data: tuple[dict[str, Any], ...]
    row_count: int
    preview: tuple[dict[str, Any], ...]
    file_name: str

    def __post_init__(self) -> None:
        headers = _to_string_tuple(self.headers, "headers")
        if len(set(headers)) != len(headers):
            raise ValueError("headers must be unique")
        data = tuple(self.data)
        preview = tuple(self.preview)
        row_count = _to_non_negative_int(self.row_count, "row_count")
        if row_count != len(data):
            raise ValueError("row_count must equal the number of data rows")
        if preview != data[: len(preview)]:
            raise ValueError("preview must be a prefix of data")
        object.__setattr__(self, "headers", headers)
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "preview", preview)
        object.__setattr__(self, "row_count", row_count)

    @classmethod
    def from_rows(
        cls,
        headers: Sequence[str],
        rows: Sequence[Mapping[str, Any]],
        file_name: str,
        *,
        max_preview_rows: int = 5,
    ) -> ParsedFile:
        data = tuple(dict(row) for row in rows)
        return cls(
            headers=tuple(headers),
            data=data,
            row_count=len(data),
            preview=data[:max_preview_rows],
            file_name=file_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": list(self.headers),
            "data": [dict(row) for row in self.data],
            "rowCount": self.row_count,
            "preview": [dict(row) for row in self.preview],
            "fileName": self.file_name,
        }


# ── Validation output ────────────────────────────────────────────


@dataclass(frozen=True)
class ValidationError:
    """A finding that blocks the upload. ``row`` is the 1-based line number."""

    type: ErrorType
    column: str
    message: str
    row: int | None = None
    value: Any = None
    severity: Literal["error", "warning"] = "error"

    def __post_init__(self) -> None:
        if self.type not in ERROR_TYPES:
            raise ValueError(f"Invalid error type: {self.type!r}")
        if self.severity not in ("error", "warning"):
            raise ValueError(f"Invalid severity: {self.severity!r}")
        if self.row is not None:
            object.__setattr__(self, "row", _to_non_negative_int(self.row, "row"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "column": self.column,
            "row": self.row,
            "value": self.value,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass(frozen=True)
class ValidationWarning:
    """Informational finding; never affects validity."""

    type: WarningType
    column: str
    message: str
    row: int | None = None

    def __post_init__(self) -> None:
        if self.type not in WARNING_TYPES:
            raise ValueError(f"Invalid warning type: {self.type!r}")
        if self.row is not None:
            object.__setattr__(self, "row", _to_non_negative_int(self.row, "row"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "column": self.column,
            "row": self.row,
            "message": self.message,
        }


@dataclass(frozen=True)
class ValidationSummary:
    """Aggregate counts for one validation run.

    Contract invariants: ``valid_rows <= total_rows`` and
    ``0 <= column_coverage <= 100``.
    """

    total_rows: int = 0
    valid_rows: int = 0
    error_count: int = 0
    warning_count: int = 0
    missing_columns: tuple[str, ...] = ()
    extra_columns: tuple[str, ...] = ()
    column_coverage: float = 100.0

    def __post_init__(self) -> None:
        for name in ("total_rows", "valid_rows", "error_count", "warning_count"):
            object.__setattr__(self, name, _to_non_negative_int(getattr(self, name), name))
        object.__setattr__(
            self, "missing_columns", _to_string_tuple(self.missing_columns, "missing_columns")
        )
        object.__setattr__(
            self, "extra_columns", _to_string_tuple(self.extra_columns, "extra_columns")
        )
        if self.valid_rows > self.total_rows:
            raise ValueError("valid_rows must be <= total_rows")
        coverage = _to_bound(self.column_coverage, "column_coverage")
        if not 0 <= coverage <= 100:
            raise ValueError("column_coverage must be between 0 and 100")
        object.__setattr__(self, "column_coverage", coverage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "missingColumns": list(self.missing_columns),
            "extraColumns": list(self.extra_columns),
            "columnCoverage": self.column_coverage,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Everything the upload step needs to accept, warn or reject a file."""

    is_valid: bool
    errors: tuple[ValidationError, ...]
    warnings: tuple[ValidationWarning, ...]
    parsed_data: ParsedFile
    summary: ValidationSummary

    def __post_init__(self) -> None:
        errors = tuple(self.errors)
        warnings = tuple(self.warnings)
        if self.is_valid != (not errors):
            raise ValueError("is_valid must be True exactly when there are no errors")
        if self.summary.total_rows != self.parsed_data.row_count:
            raise ValueError("summary.total_rows must equal parsed_data.row_count")
        object.__setattr__(self, "errors", errors)
        object.__setattr__(self, "warnings", warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [error.to_dict() for error in self.errors],
            "warnings": [warning.to_dict() for warning in self.warnings],
            "parsedData": self.parsed_data.to_dict(),
            "summary": self.summary.to_dict(),
        }


# ── Audit trail ──────────────────────────────────────────────────


@dataclass
class RunManifest:
    """Audit-trail manifest for a single ``ugate check`` run."""

    tool: str = "upload-gate"
    version: str = ""
    run_id: str = ""
    input_path: str = ""
    output_dir: str = ""
    file_type: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    valid_rows: int = 0
    error_count: int = 0
    warning_count: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""
    artifacts: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.valid_rows = _to_non_negative_int(self.valid_rows, "valid_rows")
        self.error_count = _to_non_negative_int(self.error_count, "error_count")
        self.warning_count = _to_non_negative_int(self.warning_count, "warning_count")
        if self.error_code is not None:
            self.error_code = _to_non_negative_int(self.error_code, "error_code")
        self.artifacts = list(_to_string_tuple(self.artifacts, "artifacts"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "file_type": self.file_type,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "valid_rows": self.valid_rows,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "sha256": self.sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "artifacts": list(self.artifacts),
        }
