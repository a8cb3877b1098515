"""
Tests for the invoice extractor module.

These tests verify the field extraction helpers, line item parsing,
and PDF text extraction error handling.
"""

import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

from invoice_audit.extractor import (
    ExtractionError,
    extract_invoice_metadata,
    extract_line_items,
    extract_text_from_bytes,
    extract_text_from_pdf,
    extract_totals,
    parse_invoice,
    parse_number,
)


class TestExtractInvoiceMetadata:
    """Tests for invoice number, date and vendor extraction."""

    def test_extract_all_fields(self, sample_text):
        metadata = extract_invoice_metadata(sample_text)
        assert metadata.invoice_number == "INV-1001"
        assert metadata.invoice_date == "03/15/2024"
        assert metadata.vendor == "Acme Supplies Inc."

    def test_heading_not_taken_as_number(self):
        text = "INVOICE\nInvoice #: 12345"
        metadata = extract_invoice_metadata(text)
        assert metadata.invoice_number == "12345"

    def test_invoice_no_label(self):
        metadata = extract_invoice_metadata("Invoice No. INV-2024-001")
        assert metadata.invoice_number == "INV-2024-001"

    def test_date_without_invoice_prefix(self):
        metadata = extract_invoice_metadata("Date: 1/5/24")
        assert metadata.invoice_date == "1/5/24"

    def test_vendor_from_label(self):
        metadata = extract_invoice_metadata("From: Globex Corporation\nTo: Initech")
        assert metadata.vendor == "Globex Corporation"

    def test_vendor_is_not_normalized(self):
        metadata = extract_invoice_metadata("Company:   ACME  Co.   \nother")
        assert metadata.vendor == "ACME  Co."

    def test_no_metadata(self):
        metadata = extract_invoice_metadata("nothing useful here 42")
        assert metadata.invoice_number is None
        assert metadata.invoice_date is None
        assert metadata.vendor is None


class TestExtractLineItems:
    """Tests for line item extraction."""

    def test_whitespace_format(self, sample_text):
        items = extract_line_items(sample_text)
        assert len(items) == 2

        assert items[0].description == "Widget Large"
        assert items[0].quantity == 10
        assert items[0].unit_price == 5.00
        assert items[0].amount == 50.00

        assert items[1].description == "Gadget Small"
        assert items[1].unit_price == 12.50

    def test_comma_format(self):
        items = extract_line_items("Widget Large, 10, $5.00, $50.00")
        assert len(items) == 1
        assert items[0].description == "Widget Large"
        assert items[0].quantity == 10
        assert items[0].amount == 50.00

    def test_thousands_separators_stripped(self):
        items = extract_line_items("Server Rack  2  $1,250.00  $2,500.00")
        assert len(items) == 1
        assert items[0].unit_price == 1250.00
        assert items[0].amount == 2500.00

    def test_non_numeric_quantity_skipped(self):
        text = "Widget Large  ten  $5.00  $50.00\nGadget  3  $1.00  $3.00"
        items = extract_line_items(text)
        assert [item.description for item in items] == ["Gadget"]

    def test_missing_amount_skipped(self):
        assert extract_line_items("Widget Large  10  $5.00") == []

    def test_overflowing_amount_skipped(self):
        text = "Widget Large  1  $5.00  $" + "9" * 400 + "\nGadget  3  $1.00  $3.00"
        items = extract_line_items(text)
        assert [item.description for item in items] == ["Gadget"]

    def test_single_space_separator_skipped(self):
        assert extract_line_items("Widget 10 $5.00 $50.00") == []

    def test_header_and_totals_skipped(self, sample_text):
        descriptions = [item.description for item in extract_line_items(sample_text)]
        assert "Description" not in descriptions
        assert not any("total" in d.lower() for d in descriptions)

    def test_windows_line_endings(self):
        items = extract_line_items("Widget Large  10  $5.00  $50.00\r\nGadget  3  $1.00  $3.00\r\n")
        assert len(items) == 2

    def test_no_partial_entries(self):
        text = "Half Line  4\nAnother  x  y  z\n, , ,"
        assert extract_line_items(text) == []


class TestExtractTotals:
    """Tests for subtotal, tax and total extraction."""

    def test_extract_all(self, sample_text):
        totals = extract_totals(sample_text)
        assert totals.subtotal == 75.00
        assert totals.tax == 6.00
        assert totals.total == 81.00

    def test_subtotal_not_taken_as_total(self):
        totals = extract_totals("Subtotal: $75.00")
        assert totals.subtotal == 75.00
        assert totals.total is None

    def test_grand_total_with_separators(self):
        totals = extract_totals("Grand Total: $1,081.00")
        assert totals.total == 1081.00

    def test_each_total_optional(self):
        totals = extract_totals("Tax: 12.00")
        assert totals.tax == 12.00
        assert totals.subtotal is None
        assert totals.total is None

    def test_overflowing_total_left_empty(self):
        totals = extract_totals("Subtotal: $10.00\nTotal: $" + "9" * 400)
        assert totals.subtotal == 10.00
        assert totals.total is None

    def test_no_cross_validation(self):
        totals = extract_totals("Subtotal: 10.00\nTax: 1.00\nTotal: 500.00")
        assert (totals.subtotal, totals.tax, totals.total) == (10.00, 1.00, 500.00)


class TestParseNumber:
    """Tests for number parsing."""

    def test_simple_number(self):
        assert parse_number("123.45") == 123.45

    def test_with_comma(self):
        assert parse_number("1,234.56") == 1234.56

    def test_with_currency_symbol(self):
        assert parse_number("$1,234.56") == 1234.56

    def test_none_input(self):
        assert parse_number(None) is None

    def test_empty_string(self):
        assert parse_number("") is None

    def test_invalid_string(self):
        assert parse_number("abc") is None

    def test_overflowing_number(self):
        assert parse_number("9" * 400) is None

    def test_nan_and_inf_strings(self):
        assert parse_number("nan") is None
        assert parse_number("inf") is None


class TestParseInvoice:
    """Tests for the full parse."""

    def test_full_invoice(self, sample_text):
        invoice = parse_invoice(sample_text, filename="acme.pdf")
        assert invoice.metadata.invoice_number == "INV-1001"
        assert len(invoice.line_items) == 2
        assert invoice.totals.total == 81.00
        assert invoice.raw_text == sample_text
        assert invoice.filename == "acme.pdf"

    def test_empty_text(self):
        invoice = parse_invoice("")
        assert invoice.metadata.invoice_number is None
        assert invoice.line_items == []
        assert invoice.totals.total is None

    def test_garbage_text_does_not_raise(self):
        invoice = parse_invoice("\x00\x01 %%% ,,, $$$ \n\n\t")
        assert invoice.line_items == []


class TestExtractText:
    """Tests for PDF text extraction."""

    def _mock_pdf(self, mock_open, page_texts):
        pages = []
        for text in page_texts:
            page = MagicMock()
            page.extract_text.return_value = text
            pages.append(page)
        mock_open.return_value.__enter__.return_value.pages = pages

    @patch("invoice_audit.extractor.pdfplumber.open")
    def test_pages_joined(self, mock_open):
        self._mock_pdf(mock_open, ["Page one", None, "Page two"])
        assert extract_text_from_pdf(Path("invoice.pdf")) == "Page one\nPage two"

    @patch("invoice_audit.extractor.pdfplumber.open")
    def test_bytes_input(self, mock_open):
        self._mock_pdf(mock_open, ["Invoice #: 777"])
        assert extract_text_from_bytes(b"%PDF-1.4", "upload.pdf") == "Invoice #: 777"

    @patch("invoice_audit.extractor.pdfplumber.open")
    def test_unreadable_pdf_raises(self, mock_open):
        mock_open.side_effect = ValueError("not a PDF")
        with pytest.raises(ExtractionError):
            extract_text_from_pdf(Path("broken.pdf"))

    @patch("invoice_audit.extractor.pdfplumber.open")
    def test_unreadable_bytes_raise(self, mock_open):
        mock_open.side_effect = ValueError("not a PDF")
        with pytest.raises(ExtractionError):
            extract_text_from_bytes(b"not a pdf", "broken.pdf")
