"""
Shared fixtures for the Invoice Audit test suite.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from invoice_audit.schemas import (
    HistoryState,
    InvoiceMetadata,
    InvoiceRecord,
    LineItem,
    ParsedInvoice,
    Totals,
)
from invoice_audit.store import HistoryStore, MemoryBackend


SAMPLE_INVOICE_TEXT = """INVOICE
Invoice Number: INV-1001
Invoice Date: 03/15/2024
Vendor: Acme Supplies Inc.

Description  Qty  Unit Price  Amount
Widget Large  10  $5.00  $50.00
Gadget Small  2  $12.50  $25.00

Subtotal: $75.00
Tax (8%): $6.00
Total: $81.00
"""


def make_invoice(
    items: list[tuple[str, float, float, float]],
    vendor: Optional[str] = "Acme Supplies Inc.",
    subtotal: Optional[float] = None,
    tax: Optional[float] = None,
    total: Optional[float] = None,
    filename: Optional[str] = None,
) -> ParsedInvoice:
    """Build a parsed invoice from (description, quantity, unit_price, amount) tuples."""
    return ParsedInvoice(
        metadata=InvoiceMetadata(invoice_number="INV-TEST", vendor=vendor),
        line_items=[
            LineItem(description=d, quantity=q, unit_price=p, amount=a) for d, q, p, a in items
        ],
        totals=Totals(subtotal=subtotal, tax=tax, total=total),
        filename=filename,
    )


def make_history(invoices: list[ParsedInvoice]) -> HistoryState:
    """History containing one record per invoice, without aggregates."""
    return HistoryState(
        invoices=[
            InvoiceRecord(
                id=f"inv_test_{i}",
                filename=inv.filename,
                processed_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
                metadata=inv.metadata,
                line_items=inv.line_items,
                totals=inv.totals,
            )
            for i, inv in enumerate(invoices)
        ]
    )


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_INVOICE_TEXT


@pytest.fixture
def store() -> HistoryStore:
    """Empty history store kept in memory."""
    return HistoryStore(MemoryBackend())
