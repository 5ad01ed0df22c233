"""Report writers — plain-text report, annotated preview, validation workbook."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from upload_gate.io import write_text
from upload_gate.models import ValidationError, ValidationResult
from upload_gate.utils import epoch_ms, utcnow
from upload_gate.validator import ROW_NUMBER_OFFSET, validation_status

REPORT_WORKBOOK_NAME = "validation_report.xlsx"

# ── Cell-level error mapping ─────────────────────────────────────

CellKey = tuple[int, str]


@dataclass(frozen=True)
class PreviewCell:
    column: str
    value: Any
    messages: tuple[str, ...] = ()

    @property
    def has_error(self) -> bool:
        return bool(self.messages)


@dataclass(frozen=True)
class PreviewRow:
    row_number: int
    cells: tuple[PreviewCell, ...]

    @property
    def has_error(self) -> bool:
        return any(cell.has_error for cell in self.cells)


def build_cell_error_index(errors: Iterable[ValidationError]) -> dict[CellKey, list[str]]:
    """Index error messages by ``(row_number, column)``; column-level errors are skipped."""
    index: dict[CellKey, list[str]] = {}
    for error in errors:
        if error.row is None or not error.column:
            continue
        index.setdefault((error.row, error.column), []).append(error.message)
    return index


def columns_with_errors(errors: Iterable[ValidationError]) -> set[str]:
    return {error.column for error in errors}


def _resolve_error_columns(headers: Sequence[str], index: dict[CellKey, list[str]]) -> dict[str, str]:
    # Errors carry schema column names; the grid is keyed by file headers.
    schema_columns = {column for _row, column in index}
    by_lower = {column.lower(): column for column in schema_columns}
    return {header: by_lower.get(header.lower(), header) for header in headers}


def build_preview_grid(result: ValidationResult) -> list[PreviewRow]:
    """Pair every preview cell with the error messages reported for it."""
    parsed = result.parsed_data
    index = build_cell_error_index(result.errors)
    column_for = _resolve_error_columns(parsed.headers, index)

    grid: list[PreviewRow] = []
    for idx, row in enumerate(parsed.preview):
        row_number = idx + ROW_NUMBER_OFFSET
        cells = tuple(
            PreviewCell(
                column=header,
                value=row.get(header),
                messages=tuple(index.get((row_number, column_for[header]), ())),
            )
            for header in parsed.headers
        )
        grid.append(PreviewRow(row_number=row_number, cells=cells))
    return grid


# ── Plain-text report ────────────────────────────────────────────


def report_filename(file_type: str, timestamp_ms: int | None = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = epoch_ms(utcnow())
    return f"validation-report-{file_type}-{timestamp_ms}.txt"


def generate_text_report(
    result: ValidationResult, file_type: str, generated_at: datetime | None = None
) -> str:
    """Serialize *result* as a plain-text report.

    Output is deterministic for a fixed *generated_at*.
    """
    if generated_at is None:
        generated_at = utcnow()
    summary = result.summary

    lines: list[str] = [
        "Validation Report",
        "================",
        "",
        f"File: {result.parsed_data.file_name}",
        f"File Type: {file_type}",
        f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        "",
        "Summary",
        "-------",
        f"Status: {'VALID' if result.is_valid else 'INVALID'}",
        f"Total Rows: {summary.total_rows}",
        f"Valid Rows: {summary.valid_rows}",
        f"Error Count: {summary.error_count}",
        f"Warning Count: {summary.warning_count}",
        f"Column Coverage: {summary.column_coverage:.1f}%",
        "",
    ]

    if result.errors:
        lines.extend(["Errors", "------"])
        for number, error in enumerate(result.errors, 1):
            lines.append(f"{number}. {error.message}")
            if error.row is not None:
                lines.append(f"   Row: {error.row}")
            if error.column:
                lines.append(f"   Column: {error.column}")
            if error.value is not None:
                lines.append(f'   Value: "{error.value}"')
            lines.append("")

    if result.warnings:
        lines.extend(["Warnings", "--------"])
        for number, warning in enumerate(result.warnings, 1):
            lines.append(f"{number}. {warning.message}")
            if warning.row is not None:
                lines.append(f"   Row: {warning.row}")
            if warning.column:
                lines.append(f"   Column: {warning.column}")
            lines.append("")

    return "\n".join(lines) + "\n"


def write_text_report(
    out_dir: Path,
    result: ValidationResult,
    file_type: str,
    *,
    generated_at: datetime | None = None,
) -> Path:
    """Write the text report as ``validation-report-<type>-<ms>.txt`` in *out_dir*."""
    if generated_at is None:
        generated_at = utcnow()
    name = report_filename(file_type, epoch_ms(generated_at))
    return write_text(
        Path(out_dir) / name, generate_text_report(result, file_type, generated_at)
    )


# ── Workbook report ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)
ERROR_HEADER_FILL = PatternFill(start_color="C00000", end_color="C00000", fill_type="solid")

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)

VALID_FONT = Font(name="Calibri", bold=True, size=11, color="00B050")
WARN_FONT = Font(name="Calibri", bold=True, size=11, color="CC6600")
INVALID_FONT = Font(name="Calibri", bold=True, size=11, color="C00000")

ERROR_CELL_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")
_COMMENT_AUTHOR = "upload-gate"


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 60)


def _excel_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"
        return val
    if isinstance(val, (int, float, bool, datetime)):
        return val
    return str(val)


def _rows_to_sheet(
    wb: Workbook, name: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]
) -> Worksheet:
    ws = wb.create_sheet(title=name)
    for c_idx, col_name in enumerate(columns, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    count = 0
    for r_idx, values in enumerate(rows, 2):
        count += 1
        for c_idx, val in enumerate(values, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(columns))
    ws.freeze_panes = "A2"
    if count:
        ws.auto_filter.ref = ws.dimensions
    _auto_width(ws)
    return ws


def _write_summary(wb: Workbook, result: ValidationResult, file_type: str) -> None:
    ws = wb.create_sheet(title="Summary")
    summary = result.summary

    ws.cell(row=1, column=1, value="upload-gate — Validation Summary").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = utcnow().strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    status = validation_status(result)
    if not result.is_valid:
        status_font = INVALID_FONT
    elif result.warnings:
        status_font = WARN_FONT
    else:
        status_font = VALID_FONT

    entries: list[tuple[str, Any]] = [
        ("File", result.parsed_data.file_name),
        ("File Type", file_type),
        ("Status", status),
        ("Total Rows", summary.total_rows),
        ("Valid Rows", summary.valid_rows),
        ("Errors", summary.error_count),
        ("Warnings", summary.warning_count),
        ("Column Coverage %", round(summary.column_coverage, 1)),
        ("Missing Columns", ", ".join(summary.missing_columns) or "none"),
        ("Unexpected Columns", ", ".join(summary.extra_columns) or "none"),
    ]
    row = 4
    for label, value in entries:
        ws.cell(row=row, column=1, value=label).font = LABEL_FONT
        val_cell = ws.cell(row=row, column=2, value=_excel_value(value))
        val_cell.font = status_font if label == "Status" else VALUE_FONT
        for c in (1, 2):
            ws.cell(row=row, column=c).fill = NOTE_FILL
        row += 1

    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 40


def _write_preview(wb: Workbook, result: ValidationResult) -> None:
    headers = list(result.parsed_data.headers)
    grid = build_preview_grid(result)
    ws = _rows_to_sheet(
        wb,
        "Preview",
        ["Row", *headers],
        ([preview_row.row_number, *(cell.value for cell in preview_row.cells)] for preview_row in grid),
    )

    error_columns = {column.lower() for column in columns_with_errors(result.errors)}
    for c_idx, header in enumerate(headers, 2):
        if header.lower() in error_columns:
            ws.cell(row=1, column=c_idx).fill = ERROR_HEADER_FILL

    for r_idx, preview_row in enumerate(grid, 2):
        for c_idx, cell in enumerate(preview_row.cells, 2):
            if not cell.has_error:
                continue
            target = ws.cell(row=r_idx, column=c_idx)
            target.fill = ERROR_CELL_FILL
            target.comment = Comment("\n".join(cell.messages), _COMMENT_AUTHOR)


def write_validation_workbook(out_dir: Path, result: ValidationResult, file_type: str) -> Path:
    """Write ``validation_report.xlsx`` and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_WORKBOOK_NAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _write_summary(wb, result, file_type)
    _rows_to_sheet(
        wb,
        "Errors",
        ["Type", "Column", "Row", "Value", "Message"],
        ((e.type, e.column, e.row, e.value, e.message) for e in result.errors),
    )
    _rows_to_sheet(
        wb,
        "Warnings",
        ["Type", "Column", "Row", "Message"],
        ((w.type, w.column, w.row, w.message) for w in result.warnings),
    )
    _write_preview(wb, result)

    tmp_path = out_dir / "validation_report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
