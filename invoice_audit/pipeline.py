"""
Processing pipeline for a single invoice.

Runs parse -> detect -> report, then (optionally) appends the invoice to
history and refreshes the statistics. Detection always sees the aggregates
as they were before the invoice was added.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .config import logger
from .detector import detect_discrepancies
from .extractor import extract_text_from_bytes, extract_text_from_pdf, parse_invoice
from .schemas import (
    DetectionConfig,
    DiscrepancyReport,
    DiscrepancyResult,
    InvoiceRecord,
    ParsedInvoice,
)
from .report import generate_report
from .stats import update_statistics
from .store import HistoryStore


ConfigOverrides = Union[DetectionConfig, Mapping[str, Any], None]


@dataclass
class ProcessingOutcome:
    """Everything produced while processing one invoice."""
    invoice: ParsedInvoice
    discrepancies: DiscrepancyResult
    report: DiscrepancyReport
    record: Optional[InvoiceRecord] = None


def process_invoice_text(
    text: str,
    store: HistoryStore,
    filename: Optional[str] = None,
    config: ConfigOverrides = None,
    persist: bool = True,
) -> ProcessingOutcome:
    """
    Process already-extracted invoice text.

    Args:
        text: Invoice text
        store: History store supplying the baselines
        filename: Source document name, used for the report
        config: Detection config or overrides
        persist: Append the invoice to history and refresh statistics afterwards

    Returns:
        ProcessingOutcome with the parsed invoice, detection result and report
    """
    invoice = parse_invoice(text, filename=filename)

    history = store.load()
    result = detect_discrepancies(invoice, history, config)
    report = generate_report(invoice, result)

    record = None
    if persist:
        record = store.append(invoice)
        update_statistics(store)

    logger.info(
        f"Processed {filename or 'invoice'}: "
        f"{len(invoice.line_items)} line item(s), {result.discrepancy_count} discrepancy(ies)"
    )
    return ProcessingOutcome(invoice=invoice, discrepancies=result, report=report, record=record)


def process_invoice_pdf(
    pdf_path: Path,
    store: HistoryStore,
    config: ConfigOverrides = None,
    persist: bool = True,
) -> ProcessingOutcome:
    """
    Extract text from a PDF and process it.

    Raises:
        ExtractionError: If the PDF cannot be read
    """
    pdf_path = Path(pdf_path)
    logger.info(f"Processing invoice from: {pdf_path.name}")

    text = extract_text_from_pdf(pdf_path)
    return process_invoice_text(text, store, filename=pdf_path.name, config=config, persist=persist)


def process_invoice_bytes(
    pdf_bytes: bytes,
    filename: str,
    store: HistoryStore,
    config: ConfigOverrides = None,
    persist: bool = True,
) -> ProcessingOutcome:
    """Same as process_invoice_pdf for uploaded content."""
    text = extract_text_from_bytes(pdf_bytes, filename)
    return process_invoice_text(text, store, filename=filename, config=config, persist=persist)
