"""CLI entry point for upload-gate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table as RichTable

from upload_gate import FILE_TYPES, __version__
from upload_gate.io import FileParseError, file_kind_label, parse_file, write_json
from upload_gate.models import ParserOptions, RunManifest, ValidationResult
from upload_gate.qc import write_validation_json
from upload_gate.report import build_preview_grid, write_text_report, write_validation_workbook
from upload_gate.schemas import (
    VALIDATION_SCHEMAS,
    describe_rule,
    file_type_label,
    get_schema_by_file_type,
)
from upload_gate.utils import sha256_file, utcnow
from upload_gate.validator import (
    categorize_errors,
    error_summary,
    gate_decision,
    validate,
    validation_status,
)

EXIT_INTERNAL = 1
EXIT_REJECTED = 2
EXIT_UNREADABLE = 3

_MAX_LISTED_ERRORS = 10

app = typer.Typer(
    name="ugate",
    help="upload-gate — Validate retail dataset uploads before they reach the pipeline.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


class FileTypeOption(str, Enum):
    transaction = "transaction"
    product_lookup = "product_lookup"
    causal_lookup = "causal_lookup"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"upload-gate v{__version__}")
        raise typer.Exit()


def _parse_delimiter(raw: str | None) -> str | None:
    if raw is None:
        return None
    if raw.lower() in ("\\t", "tab"):
        return "\t"
    return raw


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: datetime,
    file_type: str,
    result: ValidationResult | None,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
    artifacts: list[Path] | None = None,
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        pass

    summary = result.summary if result is not None else None
    manifest = RunManifest(
        run_id=run_id,
        version=__version__,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        file_type=file_type,
        created_at_utc=created_at.isoformat(),
        rows_in=summary.total_rows if summary else 0,
        valid_rows=summary.valid_rows if summary else 0,
        error_count=summary.error_count if summary else 0,
        warning_count=summary.warning_count if summary else 0,
        sha256=sha256,
        status=status,
        error_code=error_code,
        error_message=error_message,
        artifacts=[path.name for path in artifacts or []],
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _print_summary(result: ValidationResult) -> None:
    summary = result.summary
    tbl = RichTable(title="Validation Summary", show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")

    tbl.add_row("Total rows", str(summary.total_rows))
    tbl.add_row("Valid rows", str(summary.valid_rows))
    tbl.add_row("Errors", str(summary.error_count))
    tbl.add_row("Warnings", str(summary.warning_count))
    tbl.add_row("Column coverage", f"{summary.column_coverage:.1f}%")
    if summary.missing_columns:
        tbl.add_row("Missing columns", f"[red]{escape(', '.join(summary.missing_columns))}[/red]")
    else:
        tbl.add_row("Missing columns", "[green]none[/green]")
    if summary.extra_columns:
        tbl.add_row(
            "Unexpected columns", f"[yellow]{escape(', '.join(summary.extra_columns))}[/yellow]"
        )

    status = validation_status(result)
    if not result.is_valid:
        tbl.add_row("Status", f"[red]{status}[/red]")
    elif result.warnings:
        tbl.add_row("Status", f"[yellow]{status}[/yellow]")
    else:
        tbl.add_row("Status", f"[green]{status}[/green]")
    console.print(tbl)


def _print_findings(result: ValidationResult) -> None:
    titles = {
        "missing_columns": "Missing Required Columns",
        "data_type_errors": "Invalid Data Types",
        "empty_fields": "Empty Required Fields",
        "validation_errors": "Format Validation Errors",
    }
    for category, errors in categorize_errors(result).items():
        if not errors:
            continue
        console.print(f"[bold red]{titles[category]} ({len(errors)})[/bold red]")
        for error in errors[:_MAX_LISTED_ERRORS]:
            console.print(f"  [red]-[/red] {escape(error.message)}")
        if len(errors) > _MAX_LISTED_ERRORS:
            console.print(f"  ... and {len(errors) - _MAX_LISTED_ERRORS} more errors")
    for warning in result.warnings[:_MAX_LISTED_ERRORS]:
        console.print(f"  [yellow]![/yellow] {escape(warning.message)}")
    if len(result.warnings) > _MAX_LISTED_ERRORS:
        console.print(f"  ... and {len(result.warnings) - _MAX_LISTED_ERRORS} more warnings")


def _print_preview(result: ValidationResult) -> None:
    grid = build_preview_grid(result)
    if not grid:
        return
    error_columns = {
        cell.column for preview_row in grid for cell in preview_row.cells if cell.has_error
    }
    tbl = RichTable(title="Data Preview")
    tbl.add_column("Row", style="dim")
    for header in result.parsed_data.headers:
        style = "bold red" if header in error_columns else "bold"
        tbl.add_column(escape(header), header_style=style)
    for preview_row in grid:
        cells: list[str] = [str(preview_row.row_number)]
        for cell in preview_row.cells:
            text = "" if cell.value is None else escape(str(cell.value))
            cells.append(f"[red]{text or '(empty)'}[/red]" if cell.has_error else text)
        tbl.add_row(*cells)
    console.print(tbl)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """upload-gate CLI."""


# ── check command ────────────────────────────────────────────────


@app.command()
def check(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the CSV, XLSX or XLS file to validate.",
        exists=True, readable=True,
    ),
    file_type: FileTypeOption = typer.Option(
        ..., "--type", "-t",
        help="Dataset kind: transaction, product_lookup or causal_lookup.",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the result JSON, reports and manifest.",
    ),
    preview_rows: int = typer.Option(
        5, "--preview-rows",
        min=0,
        help="Number of rows kept in the data preview.",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="CSV delimiter (default: auto-detect among , tab | ;). Use 'tab' for tabs.",
    ),
    encoding: str = typer.Option(
        "utf-8", "--encoding",
        help="Preferred CSV encoding; utf-8 and latin-1 are tried as fallbacks.",
    ),
    xlsx: bool = typer.Option(
        True, "--xlsx/--no-xlsx",
        help="Also write validation_report.xlsx with an annotated preview.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log parser and validator details.",
    ),
) -> None:
    """Validate a dataset file against its schema.

    Exit 0 = accepted (possibly with warnings), exit 2 = rejected,
    exit 3 = the file could not be read.
    """
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow()
    run_id = created_at.isoformat()
    kind = file_type.value
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        options = ParserOptions(
            max_preview_rows=preview_rows,
            encoding=encoding,
            delimiter=_parse_delimiter(delimiter),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if not quiet:
        console.print(Panel(
            f"[bold]upload-gate[/bold] v{__version__}\n"
            f"Input: {input_file} ({file_kind_label(input_file.name) or 'unknown format'})\n"
            f"Type:  {file_type_label(kind)}",
            title="Validate", border_style="cyan",
        ))

    # ── Parse ────────────────────────────────────────────────────
    echo("[blue]>[/blue] Reading file …")
    try:
        parsed = parse_file(input_file, options)
    except (FileNotFoundError, FileParseError, OSError) as exc:
        manifest_path = _write_manifest(
            out_dir,
            input_file,
            run_id,
            created_at,
            kind,
            None,
            status="failed",
            error_code=EXIT_UNREADABLE,
            error_message=str(exc),
        )
        _err(f"Could not read this file: {escape(str(exc))}")
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=EXIT_UNREADABLE)

    echo(f"  {parsed.row_count} rows x {len(parsed.headers)} columns")

    try:
        schema = get_schema_by_file_type(kind)
        if schema is None:
            raise RuntimeError(f"No validation schema found for file type: {kind}")

        # ── Validate ─────────────────────────────────────────────
        echo("[blue]>[/blue] Validating …")
        result = validate(schema, parsed)

        artifacts = [
            write_validation_json(out_dir, result),
            write_text_report(out_dir, result, kind, generated_at=created_at),
        ]
        if xlsx:
            artifacts.append(write_validation_workbook(out_dir, result, kind))

        decision = gate_decision(result)
        rejected = decision == "reject"
        manifest_path = _write_manifest(
            out_dir,
            input_file,
            run_id,
            created_at,
            kind,
            result,
            status="failed" if rejected else "success",
            error_code=EXIT_REJECTED if rejected else None,
            error_message=error_summary(result),
            artifacts=artifacts,
        )

        if not quiet:
            _print_summary(result)
            _print_findings(result)
            _print_preview(result)
        for path in artifacts:
            echo(f"  {path.name} -> {path}")
        echo(f"  run_manifest.json -> {manifest_path}")

        if rejected:
            _err(f"This file has data problems: {error_summary(result)}")
            raise typer.Exit(code=EXIT_REJECTED)
        if decision == "warn":
            echo(
                f"[yellow]![/yellow] {validation_status(result)}; "
                "unexpected columns won't prevent processing."
            )
        elif not quiet:
            console.print(Panel(
                f"[green]Ready to upload[/green] — {result.summary.total_rows} rows",
                title="Valid", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        message = f"Unexpected internal error: {exc}"
        manifest_path = _write_manifest(
            out_dir,
            input_file,
            run_id,
            created_at,
            kind,
            None,
            status="failed",
            error_code=EXIT_INTERNAL,
            error_message=message,
        )
        _err(escape(message))
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=EXIT_INTERNAL)


# ── schemas command ──────────────────────────────────────────────


@app.command()
def schemas(
    file_type: FileTypeOption | None = typer.Option(
        None, "--type", "-t",
        help="Only show this file type.",
    ),
) -> None:
    """List the expected columns for each file type."""
    kinds = [file_type.value] if file_type else list(FILE_TYPES)
    for kind in kinds:
        schema = VALIDATION_SCHEMAS[kind]
        tbl = RichTable(title=f"{file_type_label(kind)} ({kind})", show_lines=True)
        tbl.add_column("Column", style="bold")
        tbl.add_column("Type")
        tbl.add_column("Required")
        tbl.add_column("Rules")
        for column in schema.columns:
            rules = "; ".join(
                f"{describe_rule(rule)}: {rule.message}" for rule in column.validation
            )
            tbl.add_row(
                column.name,
                column.type,
                "yes" if column.required else "no",
                escape(rules) or "-",
            )
        console.print(tbl)
