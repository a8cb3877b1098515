"""
Invoice Audit Service

A Python service that parses invoice text, keeps per-item and per-vendor
historical statistics, and flags invoice values that deviate abnormally
from those baselines.
"""

__version__ = "0.1.0"
__author__ = "Invoice Audit Team"

from .schemas import (
    Aggregates,
    DetectionConfig,
    DiscrepancyFinding,
    DiscrepancyResult,
    HistoryState,
    InvoiceRecord,
    LineItem,
    ParsedInvoice,
)
from .extractor import ExtractionError, parse_invoice
from .stats import calculate_stats, normalize_item_description, recompute_aggregates, update_statistics
from .store import HistoryStore, HistoryWriteError, JsonFileBackend, MemoryBackend
from .detector import check_value, detect_discrepancies, resolve_config
from .pipeline import process_invoice_text, process_invoice_pdf

__all__ = [
    "Aggregates",
    "DetectionConfig",
    "DiscrepancyFinding",
    "DiscrepancyResult",
    "HistoryState",
    "InvoiceRecord",
    "LineItem",
    "ParsedInvoice",
    "ExtractionError",
    "parse_invoice",
    "calculate_stats",
    "normalize_item_description",
    "recompute_aggregates",
    "update_statistics",
    "HistoryStore",
    "HistoryWriteError",
    "JsonFileBackend",
    "MemoryBackend",
    "check_value",
    "detect_discrepancies",
    "resolve_config",
    "process_invoice_text",
    "process_invoice_pdf",
]
