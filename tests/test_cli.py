"""CLI integration smoke tests for upload-gate."""

from __future__ import annotations

import json
from pathlib import Path

from openpyxl import Workbook
from typer.testing import CliRunner

import upload_gate.cli as cli_mod
from upload_gate import __version__
from upload_gate.cli import app

runner = CliRunner()

TRANSACTION_HEADER = "upc,sale_price,sale_quantity,household_id,store_id,trip_id,time\n"


def _write_csv(tmp_path: Path, name: str, rows: str) -> Path:
    path = tmp_path / name
    path.write_text(rows, encoding="utf-8")
    return path


def _check(*args: str) -> list[str]:
    return ["check", *args]


def test_check_valid_file_writes_artifacts(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "tx.csv",
        TRANSACTION_HEADER + "ABC123,9.99,2,H1,S1,T1,2024-01-15 10:30:00\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        _check("--input", str(csv_path), "--type", "transaction", "--out-dir", str(out_dir), "--quiet"),
    )

    assert result.exit_code == 0, result.output
    payload = json.loads((out_dir / "validation_result.json").read_text())
    assert payload["isValid"] is True
    assert payload["summary"]["totalRows"] == 1

    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert manifest["status"] == "success"
    assert manifest["error_code"] is None
    assert manifest["file_type"] == "transaction"
    assert manifest["rows_in"] == 1
    assert len(manifest["sha256"]) == 64
    assert "validation_result.json" in manifest["artifacts"]
    assert "validation_report.xlsx" in manifest["artifacts"]
    assert len(list(out_dir.glob("validation-report-transaction-*.txt"))) == 1
    assert (out_dir / "validation_report.xlsx").exists()


def test_check_invalid_file_exits_two(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "tx.csv",
        TRANSACTION_HEADER + "ABC123,free,2,H1,S1,T1,2024-01-15\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, _check("-i", str(csv_path), "-t", "transaction", "-o", str(out_dir))
    )

    assert result.exit_code == 2
    assert "This file has data problems: 1 error found" in result.output
    payload = json.loads((out_dir / "validation_result.json").read_text())
    assert payload["errors"][0]["column"] == "sale_price"
    assert payload["errors"][0]["row"] == 2
    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2
    assert manifest["error_message"] == "1 error found"


def test_check_extra_column_warns_but_accepts(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "products.csv",
        "upc,product_description,category,brand,product_size,notes\n"
        "A1,Pasta,Dry,Acme,500,hello\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, _check("-i", str(csv_path), "-t", "product_lookup", "-o", str(out_dir))
    )

    assert result.exit_code == 0, result.output
    assert "Valid with 1 warning" in result.output
    payload = json.loads((out_dir / "validation_result.json").read_text())
    assert payload["summary"]["extraColumns"] == ["notes"]


def test_check_unreadable_file_exits_three(tmp_path: Path) -> None:
    path = _write_csv(tmp_path, "upload", "a,b\n1,2\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, _check("-i", str(path), "-t", "transaction", "-o", str(out_dir), "--quiet")
    )

    assert result.exit_code == 3
    assert "Could not read this file" in result.output
    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 3
    assert "no extension" in manifest["error_message"]
    assert not (out_dir / "validation_result.json").exists()


def test_check_no_xlsx_skips_workbook(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "tx.csv",
        TRANSACTION_HEADER + "ABC123,9.99,2,H1,S1,T1,2024-01-15\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        _check("-i", str(csv_path), "-t", "transaction", "-o", str(out_dir), "--no-xlsx", "-q"),
    )

    assert result.exit_code == 0, result.output
    assert not (out_dir / "validation_report.xlsx").exists()
    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert "validation_report.xlsx" not in manifest["artifacts"]


def test_check_reads_xlsx_with_explicit_options(tmp_path: Path) -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(["upc", "store_id", "feature", "display", "start_time", "end_time"])
    ws.append(["A1", "S1", 1, 0, "2024-01-01", "2024-01-31"])
    path = tmp_path / "causal.xlsx"
    wb.save(path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        _check("-i", str(path), "-t", "causal_lookup", "-o", str(out_dir), "--preview-rows", "1", "-q"),
    )

    assert result.exit_code == 0, result.output
    payload = json.loads((out_dir / "validation_result.json").read_text())
    assert payload["parsedData"]["preview"][0]["feature"] == "1"


def test_check_tab_delimiter_alias(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "tx.csv",
        TRANSACTION_HEADER.replace(",", "\t") + "ABC123\t9.99\t2\tH1\tS1\tT1\t2024-01-15\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        _check("-i", str(csv_path), "-t", "transaction", "-o", str(out_dir), "-d", "tab", "-q"),
    )

    assert result.exit_code == 0, result.output


def test_check_internal_error_exits_one(tmp_path: Path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    csv_path = _write_csv(
        tmp_path,
        "tx.csv",
        TRANSACTION_HEADER + "ABC123,9.99,2,H1,S1,T1,2024-01-15\n",
    )
    out_dir = tmp_path / "out"

    def _boom(*args: object, **kwargs: object) -> None:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cli_mod, "validate", _boom)

    result = runner.invoke(
        app, _check("-i", str(csv_path), "-t", "transaction", "-o", str(out_dir), "-q")
    )

    assert result.exit_code == 1
    assert "Unexpected internal error: disk on fire" in result.output
    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert manifest["error_code"] == 1


def test_check_rejects_unknown_file_type(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "tx.csv", TRANSACTION_HEADER)

    result = runner.invoke(app, _check("-i", str(csv_path), "-t", "inventory"))

    assert result.exit_code != 0


def test_quiet_mode_prints_nothing_on_success(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "tx.csv",
        TRANSACTION_HEADER + "ABC123,9.99,2,H1,S1,T1,2024-01-15\n",
    )

    result = runner.invoke(
        app, _check("-i", str(csv_path), "-t", "transaction", "-o", str(tmp_path / "out"), "-q")
    )

    assert result.exit_code == 0
    assert result.output.strip() == ""


def test_schemas_command_lists_columns() -> None:
    result = runner.invoke(app, ["schemas", "--type", "causal_lookup"])

    assert result.exit_code == 0, result.output
    assert "Causal Lookup" in result.output
    assert "start_time" in result.output
    assert "Transaction Data" not in result.output


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"upload-gate v{__version__}" in result.output
