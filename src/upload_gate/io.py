"""I/O helpers — parse uploaded files into tables, write JSON/text artifacts."""

from __future__ import annotations

import csv
import io
import json
import logging
import warnings
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from upload_gate import SUPPORTED_EXTENSIONS
from upload_gate.models import ParsedFile, ParserOptions

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = ",\t|;"
_FALLBACK_ENCODINGS = ("utf-8-sig", "utf-8", "latin-1")
_SNIFF_SAMPLE_CHARS = 64 * 1024


class FileParseError(ValueError):
    """The upload could not be read as a table; nothing can be validated."""


# ── File type helpers ────────────────────────────────────────────


def file_extension(file_name: str) -> str:
    return Path(file_name).suffix.lower()


def is_supported_file(file_name: str) -> bool:
    return file_extension(file_name) in SUPPORTED_EXTENSIONS


def file_kind_label(file_name: str) -> str | None:
    """Return ``"CSV"`` or ``"Excel"`` for supported names, else ``None``."""
    suffix = file_extension(file_name)
    if suffix == ".csv":
        return "CSV"
    if suffix in (".xlsx", ".xls"):
        return "Excel"
    return None


# ── Cleanup ──────────────────────────────────────────────────────


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _clean_cell(value: Any) -> Any:
    if _is_missing(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _clean_header(value: Any, index: int) -> str:
    text = "" if _is_missing(value) else str(value).strip()
    return text or f"Column_{index + 1}"


def _unique_headers(headers: Sequence[str]) -> list[str]:
    seen: dict[str, int] = {}
    taken = set(headers)
    unique: list[str] = []
    for name in headers:
        if name not in seen:
            seen[name] = 0
            unique.append(name)
            continue
        count = seen[name]
        while True:
            count += 1
            candidate = f"{name}_{count}"
            if candidate not in taken:
                break
        seen[name] = count
        taken.add(candidate)
        unique.append(candidate)
    return unique


def _build_parsed_file(
    matrix: list[list[Any]], file_name: str, options: ParserOptions
) -> ParsedFile:
    header_row, *body = matrix
    headers = _unique_headers([_clean_header(value, idx) for idx, value in enumerate(header_row)])

    rows: list[dict[str, Any]] = []
    dropped = 0
    for raw_row in body:
        record = {
            header: _clean_cell(raw_row[idx]) if idx < len(raw_row) else None
            for idx, header in enumerate(headers)
        }
        if all(value is None for value in record.values()):
            dropped += 1
            continue
        rows.append(record)

    if dropped:
        logger.debug("Dropped %d fully empty rows from %s", dropped, file_name)
    return ParsedFile.from_rows(
        headers, rows, file_name, max_preview_rows=options.max_preview_rows
    )


# ── CSV ──────────────────────────────────────────────────────────


def _candidate_encodings(preferred: str) -> list[str]:
    # utf-8-sig also strips a leading BOM, so it replaces plain utf-8.
    first = "utf-8-sig" if preferred.lower().replace("_", "-") in ("utf-8", "utf8") else preferred
    ordered: list[str] = []
    for encoding in (first, *_FALLBACK_ENCODINGS):
        if encoding not in ordered:
            ordered.append(encoding)
    return ordered


def _decode(content: bytes, preferred: str) -> str:
    last_exc: Exception | None = None
    for encoding in _candidate_encodings(preferred):
        try:
            text = content.decode(encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            logger.debug("Decoding with %s failed: %s", encoding, exc)
            last_exc = exc
            continue
        logger.debug("Decoded CSV as %s", encoding)
        return text
    raise FileParseError("Could not decode CSV file (tried utf-8, latin-1)") from last_exc


def sniff_delimiter(sample: str) -> str:
    """Guess the delimiter among ``, \\t | ;``; defaults to a comma."""
    try:
        return csv.Sniffer().sniff(sample, delimiters=CANDIDATE_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _keep_bad_line(fields: list[str]) -> list[str]:
    # Long rows are truncated to the header width instead of failing the file.
    return fields


def _split_csv_line(line: str) -> list[str]:
    return next(csv.reader([line]), [])


def _recover_single_column(matrix: list[list[Any]]) -> list[list[Any]]:
    """Re-split a table whose delimiter was mis-detected as something other than ``,``."""
    header = matrix[0][0]
    headers = _split_csv_line(header)
    logger.debug("Delimiter fallback: split single header into %d columns", len(headers))
    recovered: list[list[Any]] = [headers]
    for row in matrix[1:]:
        value = row[0] if row else None
        if isinstance(value, str) and "," in value:
            recovered.append(_split_csv_line(value))
        else:
            recovered.append([value])
    return recovered


def _read_csv_matrix(content: bytes, options: ParserOptions) -> list[list[Any]]:
    text = _decode(content, options.encoding)
    if not text.strip():
        raise FileParseError("File is empty")

    delimiter = options.delimiter or sniff_delimiter(text[:_SNIFF_SAMPLE_CHARS])
    logger.debug("Reading CSV with delimiter %r", delimiter)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.ParserWarning)
            raw = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=None,
                dtype="string",
                engine="python",
                na_filter=False,
                skip_blank_lines=True,
                on_bad_lines=_keep_bad_line,
            )
    except pd.errors.EmptyDataError as exc:
        raise FileParseError("File is empty") from exc
    except pd.errors.ParserError as exc:
        raise FileParseError(f"CSV parsing error: {exc}") from exc

    matrix = [list(row) for row in raw.itertuples(index=False, name=None)]
    if not matrix:
        raise FileParseError("File is empty")

    first = matrix[0]
    if len(first) == 1 and isinstance(first[0], str) and "," in first[0]:
        matrix = _recover_single_column(matrix)
    return matrix


# ── Excel ────────────────────────────────────────────────────────


def _read_excel_matrix(content: bytes, suffix: str) -> list[list[Any]]:
    engine = "openpyxl" if suffix == ".xlsx" else "xlrd"
    try:
        workbook = pd.ExcelFile(io.BytesIO(content), engine=engine)
    except ImportError as exc:
        raise FileParseError(
            "Unsupported .xls input unless 'xlrd' is installed. "
            "Either convert to .xlsx or add dependency: pip install xlrd"
        ) from exc
    except Exception as exc:
        raise FileParseError(f"Failed to parse Excel file: {exc}") from exc

    with workbook:
        if not workbook.sheet_names:
            raise FileParseError("Excel file contains no worksheets")
        first_sheet = workbook.sheet_names[0]
        if len(workbook.sheet_names) > 1:
            logger.debug("Reading first sheet %r only", first_sheet)
        try:
            raw = pd.read_excel(
                workbook, sheet_name=first_sheet, header=None, dtype="string", na_filter=False
            )
        except Exception as exc:
            raise FileParseError(f"Failed to parse Excel file: {exc}") from exc

    matrix = [list(row) for row in raw.itertuples(index=False, name=None)]
    if not matrix:
        raise FileParseError("Excel file is empty")
    return matrix


# ── Public parsing API ───────────────────────────────────────────


def parse_upload(
    content: bytes, file_name: str, options: ParserOptions | None = None
) -> ParsedFile:
    """Parse raw upload bytes into a :class:`ParsedFile`.

    The format is chosen from the extension of *file_name* only.

    Raises
    ------
    FileParseError
        If the name has no or an unsupported extension, the file is empty,
        a spreadsheet has no worksheets, or the CSV structure is broken.
    """
    options = options or ParserOptions()
    suffix = file_extension(file_name)
    if not suffix:
        raise FileParseError("File has no extension")

    if suffix == ".csv":
        matrix = _read_csv_matrix(content, options)
    elif suffix in (".xlsx", ".xls"):
        matrix = _read_excel_matrix(content, suffix)
    else:
        raise FileParseError(
            f"Unsupported file format: {suffix.lstrip('.')}. Please use CSV or Excel files."
        )
    return _build_parsed_file(matrix, file_name, options)


def parse_file(path: Path, options: ParserOptions | None = None) -> ParsedFile:
    """Read *path* from disk and parse it.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    FileParseError
        If *path* is not a regular file or cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if not path.is_file():
        raise FileParseError(f"Input path is not a file: {path}")
    return parse_upload(path.read_bytes(), path.name, options)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_text(path: Path, text: str) -> Path:
    """Write *text* to *path* atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
    return path
