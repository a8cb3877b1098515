"""
Discrepancy reports.

Builds a report from a parsed invoice and its detection result, renders it
as plain text or HTML, and reads and writes report JSON files.
"""

import json
import re
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Optional, Union

from .config import FindingType, Severity, logger
from .schemas import (
    DiscrepancyReport,
    DiscrepancyResult,
    ParsedInvoice,
    ReportInvoiceInfo,
    ReportSummary,
)


# ============================================================================
# Report Assembly
# ============================================================================

def generate_summary(result: DiscrepancyResult) -> ReportSummary:
    """Count findings by severity and by type."""
    summary = ReportSummary(
        has_discrepancies=result.has_discrepancies,
        total_count=result.discrepancy_count,
    )

    for finding in result.discrepancies:
        summary.severity_breakdown[finding.severity.value] += 1
        summary.type_breakdown[finding.type.value] += 1

    return summary


def generate_report(invoice: ParsedInvoice, result: DiscrepancyResult) -> DiscrepancyReport:
    """Assemble the full report for one processed invoice."""
    return DiscrepancyReport(
        invoice=ReportInvoiceInfo(
            filename=invoice.filename,
            invoice_number=invoice.metadata.invoice_number,
            invoice_date=invoice.metadata.invoice_date,
            vendor=invoice.metadata.vendor,
            total=invoice.totals.total,
            subtotal=invoice.totals.subtotal,
            tax=invoice.totals.tax,
        ),
        summary=generate_summary(result),
        discrepancies=list(result.discrepancies),
        line_items=list(invoice.line_items),
        timestamp=datetime.now(timezone.utc),
    )


# ============================================================================
# Renderers
# ============================================================================

def _money(value: Optional[float]) -> str:
    return f"${value:,.2f}" if value is not None else "$0.00"


def format_report_text(report: DiscrepancyReport) -> str:
    """
    Format a report as human-readable text for CLI output.

    Args:
        report: DiscrepancyReport to format

    Returns:
        Formatted string for display
    """
    info = report.invoice
    summary = report.summary

    lines = [
        "INVOICE DISCREPANCY REPORT",
        "=" * 60,
        "",
        f"Invoice: {info.invoice_number or 'Unknown'}",
        f"Date:    {info.invoice_date or 'Unknown'}",
        f"Vendor:  {info.vendor or 'Unknown'}",
        f"Total:   {_money(info.total)}",
        "",
        "SUMMARY",
        "-" * 60,
        f"Status: {'DISCREPANCIES FOUND' if summary.has_discrepancies else 'NO DISCREPANCIES'}",
        f"Total Discrepancies: {summary.total_count}",
        (
            f"Severity: High ({summary.severity_breakdown.get(Severity.HIGH.value, 0)}) | "
            f"Medium ({summary.severity_breakdown.get(Severity.MEDIUM.value, 0)}) | "
            f"Low ({summary.severity_breakdown.get(Severity.LOW.value, 0)})"
        ),
    ]

    if report.discrepancies:
        lines.extend(["", "DISCREPANCIES", "-" * 60])
        for i, finding in enumerate(report.discrepancies, start=1):
            lines.append("")
            lines.append(f"{i}. {finding.type.value.upper()} - {finding.field}")
            if finding.description:
                lines.append(f"   Item: {finding.description}")
            if finding.vendor:
                lines.append(f"   Vendor: {finding.vendor}")
            lines.append(f"   Current Value: {finding.current_value:g}")
            lines.append(f"   Historical Average: {finding.historical_average:.2f}")
            lines.append(f"   Variance: {finding.percentage_variance * 100:.1f}%")
            lines.append(f"   Severity: {finding.severity.value.upper()}")
            lines.append(f"   Based on {finding.historical_count} historical samples")

    lines.extend([
        "",
        "=" * 60,
        f"Generated: {report.timestamp.isoformat()}",
    ])

    return "\n".join(lines)


_HTML_STYLE = """
    body { font-family: -apple-system, 'Segoe UI', Arial, sans-serif; margin: 0; padding: 20px; background: #f5f5f5; }
    .container { max-width: 1000px; margin: 0 auto; }
    .card { background: white; padding: 20px; border-radius: 8px; margin-bottom: 20px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
    .grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 15px; }
    .label { font-size: 0.85em; font-weight: 600; color: #666; }
    .has-discrepancy { border-left: 4px solid #dc3545; }
    .no-discrepancy { border-left: 4px solid #28a745; }
    .badge { display: inline-block; padding: 5px 12px; border-radius: 4px; margin-right: 10px; font-weight: 600; }
    .badge.high, .discrepancy.high { border-color: #dc3545; }
    .badge.medium, .discrepancy.medium { border-color: #fd7e14; }
    .badge.low, .discrepancy.low { border-color: #ffc107; }
    .badge.high { background: #dc3545; color: white; }
    .badge.medium { background: #fd7e14; color: white; }
    .badge.low { background: #ffc107; color: #333; }
    .discrepancy { border-left: 4px solid; }
    .footer { text-align: center; color: #666; font-size: 0.9em; }
"""


def _html_field(label: str, value) -> str:
    return f'<div><div class="label">{escape(label)}</div><div>{escape(str(value))}</div></div>'


def format_report_html(report: DiscrepancyReport) -> str:
    """Render a report as a standalone HTML page."""
    info = report.invoice
    summary = report.summary
    status_class = "has-discrepancy" if summary.has_discrepancies else "no-discrepancy"
    status_text = "DISCREPANCIES FOUND" if summary.has_discrepancies else "NO DISCREPANCIES"

    header = "".join([
        _html_field("Invoice Number", info.invoice_number or "Unknown"),
        _html_field("Date", info.invoice_date or "Unknown"),
        _html_field("Vendor", info.vendor or "Unknown"),
        _html_field("Total Amount", _money(info.total)),
    ])

    badges = ""
    if summary.total_count > 0:
        badges = "".join(
            f'<span class="badge {severity.value}">'
            f'{severity.value.capitalize()}: {summary.severity_breakdown.get(severity.value, 0)}</span>'
            for severity in (Severity.HIGH, Severity.MEDIUM, Severity.LOW)
        )

    cards = []
    for i, finding in enumerate(report.discrepancies, start=1):
        title = finding.description if finding.type == FindingType.LINE_ITEM else finding.field.upper()
        details = "".join([
            _html_field("Field", finding.field),
            _html_field("Current Value", f"{finding.current_value:g}"),
            _html_field("Historical Average", f"{finding.historical_average:.2f}"),
            _html_field("Variance", f"{finding.percentage_variance * 100:.1f}%"),
            _html_field("Severity", finding.severity.value.upper()),
            _html_field("Historical Samples", finding.historical_count),
        ])
        cards.append(
            f'<div class="card discrepancy {finding.severity.value}">'
            f"<h3>#{i}: {escape(title or '')}</h3>"
            f'<div class="grid">{details}</div></div>'
        )

    details_section = ""
    if cards:
        details_section = "<h2>Discrepancy Details</h2>" + "".join(cards)

    return f"""<!DOCTYPE html>
<html>
<head>
  <title>Invoice Discrepancy Report</title>
  <meta charset="utf-8">
  <style>{_HTML_STYLE}</style>
</head>
<body>
  <div class="container">
    <div class="card">
      <h1>Invoice Discrepancy Report</h1>
      <div class="grid">{header}</div>
    </div>
    <div class="card {status_class}">
      <h2>Summary</h2>
      <p><strong>{status_text}</strong></p>
      <p><strong>Total Discrepancies:</strong> {summary.total_count}</p>
      <div>{badges}</div>
    </div>
    {details_section}
    <div class="footer">
      Generated: {escape(report.timestamp.isoformat())}<br>
      Filename: {escape(info.filename or 'Unknown')}
    </div>
  </div>
</body>
</html>"""


# ============================================================================
# Report Files
# ============================================================================

def report_basename(filename: Optional[str]) -> str:
    """
    Clean report name for a source document.

    Drops directories, a leading upload timestamp like ``1760313416568_``
    and the ``.pdf`` extension.
    """
    name = Path(filename).name if filename else ""
    name = re.sub(r"^\d+_", "", name)
    name = re.sub(r"\.pdf$", "", name, flags=re.IGNORECASE)
    return name or "invoice"


def report_name(report: DiscrepancyReport) -> str:
    """
    Name a report is saved under.

    Reports for a source file are named after the file. Without one, the
    invoice number (or "invoice") plus the report timestamp keeps each
    report in its own file.
    """
    if report.invoice.filename:
        return report_basename(report.invoice.filename)

    prefix = re.sub(r"[^\w.-]", "_", report.invoice.invoice_number or "") or "invoice"
    return f"{prefix}-{report.timestamp.strftime('%Y%m%d%H%M%S%f')}"


def write_report(report: DiscrepancyReport, reports_dir: Union[str, Path]) -> Path:
    """
    Write a report to ``<reports_dir>/<name>_report.json``.

    Returns:
        Path of the written file
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)

    output_path = reports_dir / f"{report_name(report)}_report.json"
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report.model_dump(mode="json"), f, indent=2)

    logger.info(f"Wrote discrepancy report to: {output_path}")
    return output_path


def load_report(name: str, reports_dir: Union[str, Path]) -> DiscrepancyReport:
    """
    Load a saved report by its base name.

    Raises:
        FileNotFoundError: If no report with that name exists
    """
    reports_dir = Path(reports_dir)
    report_path = reports_dir / f"{Path(name).name}_report.json"
    if not report_path.exists():
        report_path = reports_dir / f"{report_basename(name)}_report.json"
    if not report_path.exists():
        raise FileNotFoundError(f"Report not found: {report_path.name}")

    with open(report_path, "r", encoding="utf-8") as f:
        return DiscrepancyReport.model_validate(json.load(f))
