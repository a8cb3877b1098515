"""
Invoice text extraction and parsing.

This module provides functionality to:
- Extract raw text from invoice PDFs using pdfplumber
- Parse extracted text into invoice metadata, line items and totals
- Skip anything that does not match rather than failing the whole invoice

Parsing is pattern-based and best-effort: every field is optional, and a line
that does not look like a complete line item is ignored.
"""

import io
import math
import re
from pathlib import Path
from typing import Optional

import pdfplumber

from .config import logger
from .schemas import InvoiceMetadata, LineItem, ParsedInvoice, Totals


class ExtractionError(Exception):
    """Raised when a document cannot be turned into text."""


# ============================================================================
# Patterns
# ============================================================================

# Money amount with optional thousands separators and two-digit cents
_AMOUNT = r"\d+(?:,\d{3})*(?:\.\d{2})?"

PATTERNS: dict[str, re.Pattern] = {
    # Invoice identifiers
    # The number must contain a digit so an "INVOICE" heading is not taken for it
    "invoice_number": re.compile(
        r"\binvoice[ \t]*(?:#|number|no\.?)?[ \t]*:?[ \t]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE
    ),
    "invoice_date": re.compile(r"(?:invoice\s*)?date\s*:?\s*(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})", re.IGNORECASE),
    "vendor": re.compile(r"\b(?:from|vendor|company)\b\s*:?\s*([A-Z][A-Za-z\s&.,]+?)(?:\n|$)", re.IGNORECASE),

    # "Description  Qty  Price  Amount"
    "line_item": re.compile(
        rf"^(.+?)\s{{2,}}(\d+)\s+\$?\s*({_AMOUNT})\s+\$?\s*({_AMOUNT})$"
    ),
    # "Description, Qty, Price, Amount"
    "line_item_comma": re.compile(
        rf"^([^,]+),\s*(\d+),\s*\$?\s*({_AMOUNT}),\s*\$?\s*({_AMOUNT})$"
    ),

    # Totals
    "subtotal": re.compile(rf"\bsub\s*total\s*:?\s*\$?\s*({_AMOUNT})", re.IGNORECASE),
    "tax": re.compile(rf"\btax\s*(?:\([\d.]+%\))?\s*:?\s*\$?\s*({_AMOUNT})", re.IGNORECASE),
    "total": re.compile(rf"\b(?:grand\s*)?total\s*(?:amount)?\s*:?\s*\$?\s*({_AMOUNT})", re.IGNORECASE),
}


# ============================================================================
# Text Extraction
# ============================================================================

def _read_pdf_text(source, name: str) -> str:
    text_parts = []

    try:
        with pdfplumber.open(source) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    text_parts.append(page_text)
    except Exception as e:
        logger.error(f"Error extracting text from {name}: {e}")
        raise ExtractionError(f"Could not extract text from {name}: {e}") from e

    return "\n".join(text_parts)


def extract_text_from_pdf(pdf_path: Path) -> str:
    """
    Extract all text content from a PDF file.

    Args:
        pdf_path: Path to the PDF file

    Returns:
        Concatenated text from all pages (empty if the PDF has no text layer)

    Raises:
        ExtractionError: If the file cannot be opened or read as a PDF
    """
    return _read_pdf_text(pdf_path, Path(pdf_path).name)


def extract_text_from_bytes(pdf_bytes: bytes, filename: str = "uploaded.pdf") -> str:
    """Extract text from in-memory PDF content (for API uploads)."""
    return _read_pdf_text(io.BytesIO(pdf_bytes), filename)


# ============================================================================
# Field Extraction Helpers
# ============================================================================

def parse_number(value) -> Optional[float]:
    """
    Parse a numeric value, dropping currency symbols and thousands separators.

    Returns None instead of raising when the value is not a finite number.
    """
    if value is None:
        return None

    value_str = re.sub(r"[\$,\s]", "", str(value))
    if not value_str:
        return None

    try:
        number = float(value_str)
    except ValueError:
        return None

    # Digit runs too long for a float come back as inf
    return number if math.isfinite(number) else None


def extract_invoice_metadata(text: str) -> InvoiceMetadata:
    """
    Extract invoice number, date and vendor.

    Each field uses a single pattern; the first match wins and an unmatched
    field stays None.
    """
    metadata = InvoiceMetadata()

    match = PATTERNS["invoice_number"].search(text)
    if match:
        metadata.invoice_number = match.group(1)

    match = PATTERNS["invoice_date"].search(text)
    if match:
        metadata.invoice_date = match.group(1)

    match = PATTERNS["vendor"].search(text)
    if match:
        metadata.vendor = match.group(1).strip()

    return metadata


def _parse_line_item(line: str) -> Optional[LineItem]:
    match = PATTERNS["line_item"].match(line) or PATTERNS["line_item_comma"].match(line)
    if not match:
        return None

    quantity = parse_number(match.group(2))
    unit_price = parse_number(match.group(3))
    amount = parse_number(match.group(4))

    if quantity is None or unit_price is None or amount is None:
        return None

    return LineItem(
        description=match.group(1).strip(),
        quantity=quantity,
        unit_price=unit_price,
        amount=amount,
    )


def extract_line_items(text: str) -> list[LineItem]:
    """
    Extract line items from invoice text, one candidate per line.

    Handles formats like:
    - "Widget Large  10  $5.00  $50.00"
    - "Widget Large, 10, 5.00, 50.00"

    Lines are evaluated independently; anything that is not a complete
    line item is skipped.
    """
    line_items = []

    for line in text.splitlines():
        item = _parse_line_item(line)
        if item is not None:
            line_items.append(item)

    return line_items


def extract_totals(text: str) -> Totals:
    """Extract subtotal, tax and total with independent searches over the text."""
    totals = Totals()

    for field in ("subtotal", "tax", "total"):
        match = PATTERNS[field].search(text)
        if match:
            setattr(totals, field, parse_number(match.group(1)))

    return totals


# ============================================================================
# Main Parsing Function
# ============================================================================

def parse_invoice(text: str, filename: Optional[str] = None) -> ParsedInvoice:
    """
    Parse invoice text into a structured invoice.

    Args:
        text: Text extracted from the invoice document
        filename: Optional source document name carried along for reporting

    Returns:
        ParsedInvoice; fields that could not be found are None or empty
    """
    text = text or ""

    invoice = ParsedInvoice(
        metadata=extract_invoice_metadata(text),
        line_items=extract_line_items(text),
        totals=extract_totals(text),
        raw_text=text,
        filename=filename,
    )

    logger.debug(
        f"Parsed invoice {invoice.metadata.invoice_number or '<unknown>'}: "
        f"{len(invoice.line_items)} line item(s)"
    )
    return invoice
