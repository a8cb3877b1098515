"""
Command-line interface for the Invoice Audit Service.

Provides the following commands:
- process: Check one invoice (PDF or extracted text) against history
- process-dir: Check every PDF in a directory
- stats: Show the current historical statistics
- recalculate: Rebuild the statistics from history
- report: Render a saved report
- clear-history: Remove all invoice history
"""

import json
from pathlib import Path
from typing import Optional

import typer

from .config import HISTORY_FILE, REPORTS_DIR, DetectionMode, logger
from .extractor import ExtractionError
from .pipeline import ProcessingOutcome, process_invoice_pdf, process_invoice_text
from .report import format_report_html, format_report_text, load_report, write_report
from .stats import update_statistics
from .store import HistoryStore, HistoryWriteError, JsonFileBackend


# Create Typer app
app = typer.Typer(
    name="invoice-audit",
    help="Invoice Discrepancy Detection Service CLI",
    add_completion=False,
)


HistoryOption = typer.Option(
    HISTORY_FILE,
    "--history",
    help="Invoice history JSON file",
)

ReportsDirOption = typer.Option(
    REPORTS_DIR,
    "--reports-dir",
    help="Directory for discrepancy report files",
)


def _open_store(history: Path) -> HistoryStore:
    return HistoryStore(JsonFileBackend(history))


def _detection_overrides(
    percentage_threshold: Optional[float],
    std_dev_threshold: Optional[float],
    mode: Optional[DetectionMode],
    min_samples: Optional[int],
    skip_line_items: bool,
    skip_totals: bool,
) -> dict:
    return {
        "percentage_threshold": percentage_threshold,
        "std_dev_threshold": std_dev_threshold,
        "mode": mode,
        "min_samples": min_samples,
        "check_line_items": not skip_line_items,
        "check_totals": not skip_totals,
    }


def _print_outcome(outcome: ProcessingOutcome, saved: Path) -> None:
    typer.echo("\n" + format_report_text(outcome.report))
    typer.echo(f"\n[OK] Report saved to: {saved}")
    if outcome.record is not None:
        typer.echo(f"[OK] Added to history as: {outcome.record.id}")


@app.command()
def process(
    pdf: Optional[Path] = typer.Option(
        None,
        "--pdf",
        "-p",
        help="Invoice PDF file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    text_file: Optional[Path] = typer.Option(
        None,
        "--text-file",
        "-t",
        help="Plain text file with already-extracted invoice text",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    percentage_threshold: Optional[float] = typer.Option(
        None, "--percentage-threshold", help="Relative deviation threshold (0.15 = 15%)"
    ),
    std_dev_threshold: Optional[float] = typer.Option(
        None, "--std-dev-threshold", help="Deviation threshold in standard deviations"
    ),
    mode: Optional[DetectionMode] = typer.Option(
        None, "--mode", "-m", help="Detection mode", case_sensitive=False
    ),
    min_samples: Optional[int] = typer.Option(
        None, "--min-samples", help="Historical samples required before comparing"
    ),
    skip_line_items: bool = typer.Option(False, "--skip-line-items", help="Do not check line items"),
    skip_totals: bool = typer.Option(False, "--skip-totals", help="Do not check vendor totals"),
    no_save: bool = typer.Option(
        False, "--no-save", help="Check only; do not add the invoice to history"
    ),
    history: Path = HistoryOption,
    reports_dir: Path = ReportsDirOption,
    fail_on_discrepancy: bool = typer.Option(
        False,
        "--fail-on-discrepancy",
        help="Exit with non-zero status if any discrepancy is found",
    ),
) -> None:
    """
    Check a single invoice against historical averages.

    The invoice is parsed, compared with the stored statistics, reported,
    and then added to history (unless --no-save is given).
    """
    if (pdf is None) == (text_file is None):
        typer.echo("Error: pass exactly one of --pdf or --text-file", err=True)
        raise typer.Exit(code=2)

    store = _open_store(history)
    overrides = _detection_overrides(
        percentage_threshold, std_dev_threshold, mode, min_samples, skip_line_items, skip_totals
    )

    try:
        if pdf is not None:
            outcome = process_invoice_pdf(pdf, store, config=overrides, persist=not no_save)
        else:
            text = text_file.read_text(encoding="utf-8")
            outcome = process_invoice_text(
                text, store, filename=text_file.name, config=overrides, persist=not no_save
            )

        saved = write_report(outcome.report, reports_dir)
    except (ExtractionError, HistoryWriteError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during processing: {e}", err=True)
        logger.exception("Processing failed")
        raise typer.Exit(code=1)

    _print_outcome(outcome, saved)

    if fail_on_discrepancy and outcome.discrepancies.has_discrepancies:
        raise typer.Exit(code=1)


@app.command("process-dir")
def process_dir(
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
    history: Path = HistoryOption,
    reports_dir: Path = ReportsDirOption,
) -> None:
    """
    Check every PDF in a directory, in file name order.

    Each invoice is added to history before the next one is checked.
    Unreadable PDFs are reported and skipped.
    """
    pdf_files = sorted(
        {p for p in pdf_dir.iterdir() if p.is_file() and p.suffix.lower() == ".pdf"}
    )
    if not pdf_files:
        typer.echo(f"No PDF files found in: {pdf_dir}", err=True)
        raise typer.Exit(code=1)

    store = _open_store(history)
    failures = 0

    for pdf_path in pdf_files:
        try:
            outcome = process_invoice_pdf(pdf_path, store)
            write_report(outcome.report, reports_dir)
        except ExtractionError as e:
            failures += 1
            typer.echo(f"  [FAIL] {pdf_path.name}: {e}", err=True)
            continue
        except HistoryWriteError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1)

        status = "DISCREPANCIES" if outcome.discrepancies.has_discrepancies else "ok"
        typer.echo(f"  - {pdf_path.name}: {outcome.discrepancies.discrepancy_count} finding(s) [{status}]")

    typer.echo(f"\n[OK] Processed {len(pdf_files) - failures} of {len(pdf_files)} file(s)")
    if failures:
        raise typer.Exit(code=1)


@app.command()
def stats(
    history: Path = HistoryOption,
    as_json: bool = typer.Option(False, "--json", help="Print the aggregate tables as JSON"),
) -> None:
    """Show the current historical statistics."""
    state = _open_store(history).load()

    if as_json:
        payload = {
            "item_averages": {k: v.model_dump() for k, v in state.item_averages.items()},
            "vendor_averages": {k: v.model_dump() for k, v in state.vendor_averages.items()},
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"Invoices in history: {len(state.invoices)}")
    typer.echo(f"Tracked items:       {len(state.item_averages)}")
    typer.echo(f"Tracked vendors:     {len(state.vendor_averages)}")
    typer.echo(f"Last updated:        {state.last_updated or 'never'}")

    if state.item_averages:
        typer.echo("\nItems:")
        for item in state.item_averages.values():
            typer.echo(
                f"  {item.original_name}: avg unit price {item.avg_unit_price:.2f} "
                f"(std {item.unit_price_std_dev:.2f}, n={item.count})"
            )

    if state.vendor_averages:
        typer.echo("\nVendors:")
        for vendor, agg in state.vendor_averages.items():
            typer.echo(f"  {vendor}: avg total {agg.avg_total:.2f} (std {agg.total_std_dev:.2f}, n={agg.count})")


@app.command()
def recalculate(history: Path = HistoryOption) -> None:
    """Rebuild item and vendor statistics from the full history."""
    try:
        aggregates = update_statistics(_open_store(history))
    except HistoryWriteError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"[OK] Statistics recalculated: {len(aggregates.item_averages)} item(s), "
        f"{len(aggregates.vendor_averages)} vendor(s)"
    )


@app.command()
def report(
    name: str = typer.Argument(..., help="Report name (source file name without .pdf)"),
    html: bool = typer.Option(False, "--html", help="Render as HTML instead of text"),
    reports_dir: Path = ReportsDirOption,
) -> None:
    """Render a previously saved discrepancy report."""
    try:
        saved = load_report(name, reports_dir)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(format_report_html(saved) if html else format_report_text(saved))


@app.command("clear-history")
def clear_history(
    history: Path = HistoryOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove every invoice and all statistics from history."""
    if not yes:
        typer.confirm("This deletes all invoice history. Continue?", abort=True)

    _open_store(history).clear()
    typer.echo("[OK] History cleared")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Audit Service v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
