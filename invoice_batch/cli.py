"""
Command-line interface for the Invoice Batch Extraction Service.

Provides the main commands:
- extract: Extract invoice fields from a folder of PDFs to JSON
- validate: Validate extracted records against ground truth spreadsheets
- correct: Fix fields of a successful record by hand
- quota, layouts, history: Inspect and manage persisted state
"""

import json
import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from .config import DAILY_EXTRACTION_LIMIT, logger
from .exceptions import ConfigurationError, QuotaExhaustedError
from .gemini import GeminiExtractor
from .ground_truth import parse_ground_truth
from .history import ExtractionHistory
from .layouts import LayoutRegistry
from .planner import load_documents_from_dir, start_batch
from .quota import QuotaTracker
from .rasterizer import PdfRasterizer
from .runner import ExtractionRunner, format_batch_text, summarize_batch
from .schemas import (
    RECORDS_ADAPTER,
    ColumnMapping,
    ExtractionMode,
    ExtractionRecord,
    GroundTruthSet,
    SourceDocument,
    SuccessRecord,
)
from .store import get_store
from .validator import format_verdict_text, summarize_verdicts, validate_records


# Create Typer app
app = typer.Typer(
    name="invoice-batch",
    help="Invoice Batch Extraction & Ground Truth Validation CLI",
    add_completion=False,
)
layouts_app = typer.Typer(help="Manage extraction layouts")
history_app = typer.Typer(help="Browse saved extractions")
app.add_typer(layouts_app, name="layouts")
app.add_typer(history_app, name="history")


# ============================================================================
# Helpers
# ============================================================================

def read_records(path: Path) -> list[ExtractionRecord]:
    with open(path, "rb") as f:
        return RECORDS_ADAPTER.validate_json(f.read())


def write_records(records: list[ExtractionRecord], path: Path) -> None:
    path.write_bytes(RECORDS_ADAPTER.dump_json(records, indent=2))
    logger.info(f"Wrote {len(records)} record(s) to: {path}")


def parse_ground_truth_option(value: str) -> tuple[Path, ColumnMapping, Optional[str]]:
    """
    Parse "FILE=VENDOR_COLUMN,AMOUNT_COLUMN[,LABEL]".

    Raises:
        typer.BadParameter: If the value does not follow the format
    """
    path_part, sep, columns_part = value.partition("=")
    parts = [p.strip() for p in columns_part.split(",")] if sep else []
    if not path_part or len(parts) not in (2, 3) or not all(parts):
        raise typer.BadParameter(
            f"Expected FILE=VENDOR_COLUMN,AMOUNT_COLUMN[,LABEL], got: {value}"
        )
    label = parts[2] if len(parts) == 3 else None
    return Path(path_part), ColumnMapping(vendor_column=parts[0], amount_column=parts[1]), label


# ============================================================================
# Commands
# ============================================================================

@app.command()
def extract(
    pdf_dir: Path = typer.Option(
        ...,
        "--pdf-dir",
        "-p",
        help="Directory containing invoice PDF files",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    output: Path = typer.Option(
        "extracted_records.json",
        "--output",
        "-o",
        help="Output JSON file path",
    ),
    all_pages: bool = typer.Option(
        False,
        "--all-pages",
        help="Extract every page instead of only the first page of each file",
    ),
    detailed: bool = typer.Option(
        False,
        "--detailed",
        help="Extract the detailed service-invoice field set",
    ),
    layout_id: Optional[str] = typer.Option(
        None,
        "--layout",
        "-l",
        help="Layout id whose instruction is sent to the AI (default: first layout)",
    ),
    no_save: bool = typer.Option(
        False,
        "--no-save",
        help="Do not add this batch to the extraction history",
    ),
) -> None:
    """
    Extract invoice fields from every PDF in a folder.

    Pages are processed one at a time. Pages beyond today's remaining quota
    are reported as errors without being sent to the AI. Press Ctrl+C to stop
    after the current page; unprocessed pages are recorded as cancelled.
    """
    try:
        extractor = GeminiExtractor.from_env()
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    store = get_store()
    quota = QuotaTracker(store)

    try:
        layout = LayoutRegistry(store).get(layout_id)
    except KeyError:
        typer.echo(f"Error: Unknown layout: {layout_id}", err=True)
        raise typer.Exit(code=1)

    documents = load_documents_from_dir(pdf_dir)
    if not documents:
        typer.echo("No PDF files found.", err=True)
        raise typer.Exit(code=1)

    rasterizer = PdfRasterizer()
    mode = ExtractionMode.ALL_PAGES if all_pages else ExtractionMode.FIRST_PAGE

    try:
        batch = start_batch(documents, mode, quota, rasterizer.page_count)
    except QuotaExhaustedError as e:
        typer.echo(f"Error: {e}. Try again tomorrow.", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Extracting {len(batch.to_process)} page(s) from {len(documents)} file(s) in: {pdf_dir}")
    typer.echo(f"Layout: {layout.name}")
    if batch.skipped:
        typer.echo(f"Warning: {batch.skipped} page(s) will be skipped for exceeding the daily limit.")

    def on_progress(done: int, total: int, record: ExtractionRecord) -> None:
        outcome = "ok" if isinstance(record, SuccessRecord) else f"failed: {getattr(record, 'error', '')}"
        typer.echo(f"  [{done}/{total}] {record.file_name} p{record.page_number} - {outcome}")

    cancel_event = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel_event.set())
    try:
        ExtractionRunner(rasterizer, extractor, quota).run(
            batch,
            layout.prompt,
            on_progress=on_progress,
            cancel_event=cancel_event,
            detailed=detailed,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    write_records(batch.records, output)
    summary = summarize_batch(batch.records)

    typer.echo("\n" + format_batch_text(summary))
    typer.echo(f"\n[OK] Records saved to: {output}")

    if not no_save and not detailed:
        saved = ExtractionHistory(store).save_batch(batch.records, pdf_dir.name)
        if saved:
            typer.echo(f"[OK] Added to history as: {saved.name}")


@app.command()
def validate(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Input JSON file containing extraction records",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    ground_truth: list[str] = typer.Option(
        ...,
        "--ground-truth",
        "-g",
        help="FILE=VENDOR_COLUMN,AMOUNT_COLUMN[,LABEL]; repeat in priority order",
    ),
    report: Path = typer.Option(
        "validation_report.json",
        "--report",
        "-r",
        help="Output validation report JSON file path",
    ),
) -> None:
    """
    Validate extracted net amounts against ground truth spreadsheets.

    Spreadsheets are consulted in the order given; the first one with a
    matching vendor decides the verdict.
    """
    try:
        records = read_records(input_file)
    except Exception as e:
        typer.echo(f"Error: Invalid records file: {e}", err=True)
        raise typer.Exit(code=1)

    truth_sets: list[GroundTruthSet] = []
    for value in ground_truth:
        path, mapping, label = parse_ground_truth_option(value)
        if not path.is_file():
            typer.echo(f"Error: Spreadsheet not found: {path}", err=True)
            raise typer.Exit(code=1)

        truth_set = parse_ground_truth(SourceDocument.from_path(path), mapping, label)
        truth_sets.append(truth_set)

        if truth_set.is_ready:
            typer.echo(f"[OK] {truth_set.label}: {truth_set.message}")
        else:
            typer.echo(f"[ERROR] {truth_set.label}: {truth_set.message}", err=True)
            if truth_set.detected_columns:
                typer.echo(f"        Detected columns: {', '.join(truth_set.detected_columns)}", err=True)

    if not any(s.is_ready for s in truth_sets):
        typer.echo("No ground truth spreadsheet could be loaded.", err=True)
        raise typer.Exit(code=1)

    verdicts = validate_records(records, truth_sets)
    summary = summarize_verdicts(verdicts)

    with open(report, "w", encoding="utf-8") as f:
        json.dump(
            {
                "summary": summary.model_dump(),
                "verdicts": {k: v.model_dump(mode="json") for k, v in verdicts.items()},
            },
            f,
            indent=2,
            ensure_ascii=False,
        )

    typer.echo("\n" + format_verdict_text(summary, records, verdicts))
    typer.echo(f"\n[OK] Validation report saved to: {report}")


@app.command()
def correct(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="JSON file containing extraction records (updated in place)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    record_id: str = typer.Option(..., "--record-id", help="Id of the record to correct"),
    vendor: Optional[str] = typer.Option(None, "--vendor"),
    invoice_number: Optional[str] = typer.Option(None, "--invoice-number"),
    issue_date: Optional[str] = typer.Option(None, "--issue-date"),
    net_amount: Optional[float] = typer.Option(None, "--net-amount"),
) -> None:
    """
    Correct the fields of a successfully extracted record.
    """
    records = read_records(input_file)

    for i, record in enumerate(records):
        if record.id != record_id:
            continue
        if not isinstance(record, SuccessRecord):
            typer.echo(f"Error: Record {record_id} is '{record.status}', only successful records can be corrected", err=True)
            raise typer.Exit(code=1)
        try:
            records[i] = record.correct(
                vendor=vendor,
                invoice_number=invoice_number,
                issue_date=issue_date,
                net_amount=net_amount,
            )
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1)
        break
    else:
        typer.echo(f"Error: Record not found: {record_id}", err=True)
        raise typer.Exit(code=1)

    write_records(records, input_file)
    typer.echo(f"[OK] Record {record_id} updated")


@app.command()
def quota() -> None:
    """Show today's extraction count and remaining quota."""
    tracker = QuotaTracker(get_store())
    count = tracker.current_count()
    typer.echo(f"Today: {count} / {DAILY_EXTRACTION_LIMIT} ({tracker.remaining()} remaining)")


@layouts_app.command("list")
def layouts_list() -> None:
    """List saved layouts."""
    for layout in LayoutRegistry(get_store()).all_layouts():
        typer.echo(f"{layout.id}\t{layout.name}\n    {layout.prompt}")


@layouts_app.command("add")
def layouts_add(
    name: str = typer.Option(..., "--name", "-n"),
    prompt: str = typer.Option(..., "--prompt", help="Natural-language extraction instruction"),
) -> None:
    """Save a new layout."""
    layout = LayoutRegistry(get_store()).add(name, prompt)
    typer.echo(f"[OK] Saved layout {layout.id}")


@layouts_app.command("remove")
def layouts_remove(layout_id: str = typer.Argument(...)) -> None:
    """Delete a layout."""
    if not LayoutRegistry(get_store()).remove(layout_id):
        typer.echo(f"Error: Unknown layout: {layout_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] Removed layout {layout_id}")


@history_app.command("list")
def history_list() -> None:
    """List saved extractions, newest first."""
    items = ExtractionHistory(get_store()).entries()
    if not items:
        typer.echo("No saved extractions.")
        return
    for item in items:
        typer.echo(
            f"{item.id}\t{item.timestamp:%d/%m/%Y %H:%M}\t{item.name}\t"
            f"{len(item.records)} record(s)\t{item.total_net_amount:,.2f}"
        )


@history_app.command("show")
def history_show(
    item_id: str = typer.Argument(...),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the records to this JSON file"),
) -> None:
    """Show the records of a saved extraction."""
    item = ExtractionHistory(get_store()).get(item_id)
    if item is None:
        typer.echo(f"Error: Saved extraction not found: {item_id}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{item.name} ({item.timestamp:%d/%m/%Y %H:%M})")
    for record in item.records:
        if isinstance(record, SuccessRecord):
            d = record.data
            typer.echo(f"  - {record.file_name} | {d.vendor} | {d.invoice_number} | {d.issue_date} | {d.net_amount:,.2f}")
        else:
            typer.echo(f"  - {record.file_name} | {record.status} | {getattr(record, 'error', '-')}")
    if output:
        write_records(item.records, output)


@history_app.command("delete")
def history_delete(item_id: str = typer.Argument(...)) -> None:
    """Delete a saved extraction."""
    if not ExtractionHistory(get_store()).delete(item_id):
        typer.echo(f"Error: Saved extraction not found: {item_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] Deleted {item_id}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Batch v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
