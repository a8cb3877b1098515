"""
Pydantic models for invoice data, history statistics and discrepancy results.

This module defines the core data structures used throughout the Invoice Audit Service:
- ParsedInvoice, LineItem and Totals for data parsed out of invoice text
- InvoiceRecord and HistoryState for the persisted invoice history
- ItemAggregate and VendorAggregate for the derived historical baselines
- DetectionConfig, DiscrepancyFinding and DiscrepancyResult for detection output
- DiscrepancyReport for the assembled per-invoice report
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .config import (
    DEFAULT_DETECTION_MODE,
    DEFAULT_MIN_SAMPLES,
    DEFAULT_PERCENTAGE_THRESHOLD,
    DEFAULT_STD_DEV_THRESHOLD,
    DetectionMode,
    FindingType,
    Severity,
)


# ============================================================================
# Parsed Invoice Models
# ============================================================================

class InvoiceMetadata(BaseModel):
    """
    Header fields captured from the invoice text.

    Values are kept exactly as captured. The vendor in particular is the raw
    display string and is not normalized for matching.
    """
    invoice_number: Optional[str] = Field(None, description="Invoice identifier")
    invoice_date: Optional[str] = Field(None, description="Invoice date as written on the document")
    vendor: Optional[str] = Field(None, description="Vendor display name")


class LineItem(BaseModel):
    """
    A single fully-parsed line item.

    Attributes:
        description: Text description of the item or service
        quantity: Number of units
        unit_price: Price per unit
        amount: Line amount as printed on the invoice
    """
    description: str = Field(..., description="Item or service description")
    quantity: float = Field(..., description="Number of units")
    unit_price: float = Field(..., description="Price per unit")
    amount: float = Field(..., description="Line amount")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "description": "Widget Large",
                    "quantity": 10,
                    "unit_price": 5.00,
                    "amount": 50.00,
                }
            ]
        }
    }


class Totals(BaseModel):
    """Invoice-level totals. Each one is independently optional."""
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None


class ParsedInvoice(BaseModel):
    """Structured view of an invoice as produced by the parser."""
    metadata: InvoiceMetadata = Field(default_factory=InvoiceMetadata)
    line_items: list[LineItem] = Field(default_factory=list)
    totals: Totals = Field(default_factory=Totals)
    raw_text: str = ""
    filename: Optional[str] = None


# ============================================================================
# History Models
# ============================================================================

class InvoiceRecord(BaseModel):
    """
    An invoice accepted into history.

    Records are created by the history store only and never modified afterwards.
    """
    id: str = Field(..., description="Unique record identifier")
    filename: Optional[str] = Field(None, description="Source document name")
    processed_date: datetime = Field(..., description="When the invoice was added to history")
    metadata: InvoiceMetadata = Field(default_factory=InvoiceMetadata)
    line_items: list[LineItem] = Field(default_factory=list)
    totals: Totals = Field(default_factory=Totals)


class ItemAggregate(BaseModel):
    """
    Historical baseline for one normalized line item description.

    ``count`` is the number of unit price samples and gates all three fields.
    """
    original_name: str = Field(..., description="First raw description seen for this key")
    avg_unit_price: float = 0.0
    unit_price_std_dev: float = 0.0
    avg_quantity: float = 0.0
    quantity_std_dev: float = 0.0
    avg_amount: float = 0.0
    amount_std_dev: float = 0.0
    count: int = 0


class VendorAggregate(BaseModel):
    """Historical baseline for one vendor. ``count`` is the number of total samples."""
    avg_total: float = 0.0
    total_std_dev: float = 0.0
    avg_subtotal: float = 0.0
    subtotal_std_dev: float = 0.0
    avg_tax: float = 0.0
    tax_std_dev: float = 0.0
    count: int = 0


class Aggregates(BaseModel):
    """Both derived aggregate tables."""
    item_averages: dict[str, ItemAggregate] = Field(default_factory=dict)
    vendor_averages: dict[str, VendorAggregate] = Field(default_factory=dict)


class HistoryState(Aggregates):
    """The whole persisted history: invoice records plus derived aggregates."""
    invoices: list[InvoiceRecord] = Field(default_factory=list)
    last_updated: Optional[datetime] = None


# ============================================================================
# Detection Models
# ============================================================================

class DetectionConfig(BaseModel):
    """
    Thresholds and switches for a detection pass.

    Use ``detector.resolve_config`` to build one from untrusted overrides;
    invalid values there fall back to these defaults instead of raising.
    """
    percentage_threshold: float = Field(
        DEFAULT_PERCENTAGE_THRESHOLD,
        gt=0,
        allow_inf_nan=False,
        description="Relative deviation from the mean that counts as a discrepancy",
    )
    std_dev_threshold: float = Field(
        DEFAULT_STD_DEV_THRESHOLD,
        gt=0,
        allow_inf_nan=False,
        description="Deviation in standard deviations that counts as a discrepancy",
    )
    mode: DetectionMode = Field(
        DEFAULT_DETECTION_MODE,
        description="percentage, stddev, or both (either signal flags)",
    )
    min_samples: int = Field(
        DEFAULT_MIN_SAMPLES,
        ge=1,
        description="Historical samples required before comparing an item or vendor",
    )
    check_line_items: bool = True
    check_totals: bool = True


class DiscrepancyFinding(BaseModel):
    """A single field flagged against its historical baseline."""
    type: FindingType
    line_index: Optional[int] = None
    field: str
    description: Optional[str] = None
    vendor: Optional[str] = None
    current_value: float
    historical_average: float
    percentage_variance: float
    std_dev_variance: float
    severity: Severity
    historical_count: int

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "type": "line_item",
                    "line_index": 0,
                    "field": "unit_price",
                    "description": "Widget Large",
                    "current_value": 7.0,
                    "historical_average": 5.0,
                    "percentage_variance": 0.4,
                    "std_dev_variance": 0.0,
                    "severity": "high",
                    "historical_count": 5,
                }
            ]
        }
    }


class DiscrepancyResult(BaseModel):
    """Outcome of one detection pass over one invoice."""
    has_discrepancies: bool
    discrepancy_count: int
    discrepancies: list[DiscrepancyFinding] = Field(default_factory=list)
    config: DetectionConfig


# ============================================================================
# Report Models
# ============================================================================

class ReportInvoiceInfo(BaseModel):
    """Invoice header shown at the top of a report."""
    filename: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    vendor: Optional[str] = None
    total: Optional[float] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None


class ReportSummary(BaseModel):
    """Counts of findings by severity and by type."""
    has_discrepancies: bool
    total_count: int
    severity_breakdown: dict[str, int] = Field(
        default_factory=lambda: {severity.value: 0 for severity in (Severity.HIGH, Severity.MEDIUM, Severity.LOW)}
    )
    type_breakdown: dict[str, int] = Field(
        default_factory=lambda: {kind.value: 0 for kind in FindingType}
    )


class DiscrepancyReport(BaseModel):
    """Complete per-invoice discrepancy report."""
    invoice: ReportInvoiceInfo
    summary: ReportSummary
    discrepancies: list[DiscrepancyFinding] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    timestamp: datetime


# ============================================================================
# API Request/Response Models
# ============================================================================

class ProcessTextRequest(BaseModel):
    """Request body for the /process-text endpoint."""
    text: str = Field(..., description="Invoice text already extracted from the document")
    filename: Optional[str] = Field(None, description="Name used for the saved report")
    config: Optional[dict] = Field(None, description="Detection config overrides")
    persist: bool = Field(True, description="Append the invoice to history after detection")


class ProcessInvoiceResponse(BaseModel):
    """Response for the invoice processing endpoints."""
    invoice: ParsedInvoice
    discrepancies: DiscrepancyResult
    report: DiscrepancyReport
    record_id: Optional[str] = None
    saved: Optional[str] = None


class StatisticsResponse(BaseModel):
    """Response for the /statistics endpoint."""
    invoice_count: int
    item_count: int
    vendor_count: int
    item_averages: dict[str, ItemAggregate]
    vendor_averages: dict[str, VendorAggregate]
    last_updated: Optional[datetime] = None
