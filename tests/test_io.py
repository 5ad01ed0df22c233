from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import Workbook

from upload_gate import io as io_mod
from upload_gate.io import (
    FileParseError,
    file_kind_label,
    is_supported_file,
    parse_file,
    parse_upload,
    sniff_delimiter,
    write_json,
)
from upload_gate.models import ParserOptions


def _xlsx_bytes(tmp_path: Path, rows: list[list[object]], *, extra_sheet: bool = False) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Data"
    for row in rows:
        ws.append(row)
    if extra_sheet:
        other = wb.create_sheet("Other")
        other.append(["ignored_header"])
        other.append(["ignored_value"])
    path = tmp_path / "book.xlsx"
    wb.save(path)
    return path.read_bytes()


# ── CSV ──────────────────────────────────────────────────────────


def test_parse_csv_trims_headers_and_values() -> None:
    content = b" upc , sale_price \n ABC123 , 9.99 \n"

    parsed = parse_upload(content, "sales.csv")

    assert parsed.headers == ("upc", "sale_price")
    assert parsed.data == ({"upc": "ABC123", "sale_price": "9.99"},)
    assert parsed.row_count == 1
    assert parsed.file_name == "sales.csv"


def test_parse_csv_normalizes_empty_cells_and_drops_fully_empty_rows() -> None:
    content = b"a,b\n1,\n,   \n3,4\n"

    parsed = parse_upload(content, "data.csv")

    assert parsed.data == ({"a": "1", "b": None}, {"a": "3", "b": "4"})
    assert parsed.row_count == 2


def test_parse_csv_replaces_blank_headers_with_positional_placeholder() -> None:
    parsed = parse_upload(b"a,,c\n1,2,3\n", "data.csv")

    assert parsed.headers == ("a", "Column_2", "c")
    assert parsed.data[0]["Column_2"] == "2"


def test_parse_csv_makes_duplicate_headers_unique() -> None:
    parsed = parse_upload(b"upc,upc\nA1,B2\n", "data.csv")

    assert parsed.headers == ("upc", "upc_1")
    assert parsed.data[0] == {"upc": "A1", "upc_1": "B2"}


def test_parse_csv_detects_semicolon_delimiter() -> None:
    parsed = parse_upload(b"upc;store_id\nA1;S1\nB2;S2\n", "data.csv")

    assert parsed.headers == ("upc", "store_id")
    assert parsed.data[1] == {"upc": "B2", "store_id": "S2"}


def test_parse_csv_honours_explicit_delimiter() -> None:
    parsed = parse_upload(
        b"upc\tstore_id\nA1\tS1\n", "data.csv", ParserOptions(delimiter="\t")
    )

    assert parsed.headers == ("upc", "store_id")
    assert parsed.data == ({"upc": "A1", "store_id": "S1"},)


def test_sniff_delimiter_defaults_to_comma_for_single_column() -> None:
    assert sniff_delimiter("upc\nA1\nB2\n") == ","
    assert sniff_delimiter("a|b|c\n1|2|3\n") == "|"


def test_parse_csv_keeps_header_only_file_with_zero_rows() -> None:
    parsed = parse_upload(b"upc,sale_price\n", "data.csv")

    assert parsed.headers == ("upc", "sale_price")
    assert parsed.row_count == 0
    assert parsed.preview == ()


def test_parse_csv_preview_is_bounded_by_options() -> None:
    content = "n\n" + "".join(f"{i}\n" for i in range(10))

    parsed = parse_upload(content.encode(), "data.csv", ParserOptions(max_preview_rows=3))

    assert parsed.row_count == 10
    assert [row["n"] for row in parsed.preview] == ["0", "1", "2"]


def test_single_column_fallback_matches_direct_parse(monkeypatch: pytest.MonkeyPatch) -> None:
    content = (
        b"upc,sale_price,sale_quantity\n"
        b"A1,1.50,2\n"
        b'B2,"3,5",4\n'
    )
    direct = parse_upload(content, "data.csv", ParserOptions(delimiter=","))

    monkeypatch.setattr(io_mod, "sniff_delimiter", lambda sample: ";")
    recovered = parse_upload(content, "data.csv")

    assert recovered.headers == ("upc", "sale_price", "sale_quantity")
    assert recovered.headers == direct.headers
    assert recovered.data == direct.data
    assert recovered.data[1] == {"upc": "B2", "sale_price": "3,5", "sale_quantity": "4"}


def test_parse_csv_empty_file_raises() -> None:
    with pytest.raises(FileParseError, match="empty"):
        parse_upload(b"", "data.csv")

    with pytest.raises(FileParseError, match="empty"):
        parse_upload(b"\n\n", "data.csv")


def test_parse_csv_wraps_parser_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_read_csv(*args: object, **kwargs: object) -> pd.DataFrame:
        del args, kwargs
        raise pd.errors.ParserError("unexpected end of data")

    monkeypatch.setattr(pd, "read_csv", _fake_read_csv)

    with pytest.raises(FileParseError, match="CSV parsing error: unexpected end of data"):
        parse_upload(b'a,b\n"1,2\n', "broken.csv")


def test_parse_csv_bom_reads_headers_correctly() -> None:
    content = "col1,col2\n1,2\n".encode("utf-8-sig")

    parsed = parse_upload(content, "bom.csv")

    assert parsed.headers == ("col1", "col2")


def test_parse_csv_latin1_fallback_reads_non_utf_chars() -> None:
    content = "name,city\nAndré,Paris\n".encode("latin-1")

    parsed = parse_upload(content, "latin1.csv")

    assert parsed.data[0]["name"] == "André"


# ── Extension dispatch ───────────────────────────────────────────


def test_parse_upload_rejects_missing_extension() -> None:
    with pytest.raises(FileParseError, match="no extension"):
        parse_upload(b"a,b\n1,2\n", "data")


def test_parse_upload_rejects_unsupported_extension() -> None:
    with pytest.raises(FileParseError, match="Unsupported file format: txt"):
        parse_upload(b"a,b\n1,2\n", "data.txt")


def test_file_type_helpers() -> None:
    assert is_supported_file("A.CSV")
    assert is_supported_file("book.xls")
    assert not is_supported_file("notes.txt")
    assert file_kind_label("a.csv") == "CSV"
    assert file_kind_label("a.xlsx") == "Excel"
    assert file_kind_label("a") is None


def test_parse_file_missing_path_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        parse_file(tmp_path / "nope.csv")


def test_parse_file_rejects_directory(tmp_path: Path) -> None:
    folder = tmp_path / "fake.csv"
    folder.mkdir()

    with pytest.raises(FileParseError, match="not a file"):
        parse_file(folder)


def test_parse_file_reads_from_disk(tmp_path: Path) -> None:
    path = tmp_path / "lookup.csv"
    path.write_text("upc,brand\nA1,Acme\n", encoding="utf-8")

    parsed = parse_file(path)

    assert parsed.file_name == "lookup.csv"
    assert parsed.data == ({"upc": "A1", "brand": "Acme"},)


# ── Excel ────────────────────────────────────────────────────────


def test_parse_xlsx_reads_first_sheet_and_stringifies(tmp_path: Path) -> None:
    content = _xlsx_bytes(
        tmp_path,
        [
            ["upc", "sale_price", " "],
            ["A1", 9.99, "x"],
            [None, None, None],
            ["B2", 3, None],
        ],
        extra_sheet=True,
    )

    parsed = parse_upload(content, "book.xlsx")

    assert parsed.headers == ("upc", "sale_price", "Column_3")
    assert parsed.row_count == 2
    assert parsed.data[0] == {"upc": "A1", "sale_price": "9.99", "Column_3": "x"}
    assert parsed.data[1] == {"upc": "B2", "sale_price": "3", "Column_3": None}


def test_parse_xlsx_empty_sheet_raises(tmp_path: Path) -> None:
    content = _xlsx_bytes(tmp_path, [])

    with pytest.raises(FileParseError, match="Excel file is empty"):
        parse_upload(content, "empty.xlsx")


def test_parse_xlsx_corrupt_file_raises() -> None:
    with pytest.raises(FileParseError, match="Failed to parse Excel file"):
        parse_upload(b"definitely not a zip archive", "broken.xlsx")


def test_parse_xlsx_without_worksheets_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    class _FakeExcelFile:
        sheet_names: list[str] = []

        def __init__(self, *args: object, **kwargs: object) -> None:
            del args, kwargs

        def __enter__(self) -> _FakeExcelFile:
            return self

        def __exit__(self, *exc: object) -> None:
            return None

    monkeypatch.setattr(pd, "ExcelFile", _FakeExcelFile)

    with pytest.raises(FileParseError, match="no worksheets"):
        parse_upload(b"x", "book.xlsx")


def test_parse_xls_missing_xlrd_raises_friendly_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_excel_file(*args: object, **kwargs: object) -> None:
        del args, kwargs
        raise ImportError("No module named xlrd")

    monkeypatch.setattr(pd, "ExcelFile", _fake_excel_file)

    with pytest.raises(FileParseError, match="xlrd"):
        parse_upload(b"x", "legacy.xls")


# ── Writing ──────────────────────────────────────────────────────


def test_write_json_is_atomic_and_deterministic(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "artifact.json"
    payload = {
        "b": 1,
        "a": datetime(2024, 1, 2, 3, 4, 5),
        "path": Path("foo/bar"),
    }

    out = write_json(path, payload)

    assert out == path
    text = path.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert '"a": "2024-01-02T03:04:05"' in text
    assert '"path": "foo/bar"' in text
    assert text.index('"a"') < text.index('"b"') < text.index('"path"')
    assert not path.with_suffix(path.suffix + ".tmp").exists()


def test_write_json_raises_on_unknown_type(tmp_path: Path) -> None:
    class Unknown:
        pass

    with pytest.raises(TypeError, match="not JSON serializable"):
        write_json(tmp_path / "artifact.json", {"x": Unknown()})
