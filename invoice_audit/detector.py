"""
Discrepancy detection against historical baselines.

For each invoice the detector compares line item fields with the per-item
aggregates and invoice totals with the per-vendor aggregates, and flags values
that deviate from the historical mean by more than the configured thresholds.

Detection is read-only: it never writes history and never recomputes
statistics. Callers decide whether to persist the invoice afterwards.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from .config import DetectionMode, FindingType, Severity, logger
from .schemas import (
    Aggregates,
    DetectionConfig,
    DiscrepancyFinding,
    DiscrepancyResult,
    ParsedInvoice,
)
from .stats import normalize_item_description


@dataclass(frozen=True)
class FieldCheck:
    """
    A field compared against its historical baseline.

    Attributes:
        field: Name of the field on the line item or totals
        mean_attr: Aggregate attribute holding the historical mean
        std_dev_attr: Aggregate attribute holding the historical standard deviation
    """
    field: str
    mean_attr: str
    std_dev_attr: str


# Line item fields, in the order findings are reported
ITEM_FIELD_CHECKS: list[FieldCheck] = [
    FieldCheck("unit_price", "avg_unit_price", "unit_price_std_dev"),
    FieldCheck("quantity", "avg_quantity", "quantity_std_dev"),
    FieldCheck("amount", "avg_amount", "amount_std_dev"),
]

# Vendor totals. Tax is aggregated but deliberately not compared.
VENDOR_FIELD_CHECKS: list[FieldCheck] = [
    FieldCheck("total", "avg_total", "total_std_dev"),
    FieldCheck("subtotal", "avg_subtotal", "subtotal_std_dev"),
]


@dataclass(frozen=True)
class ValueCheck:
    """Outcome of comparing one value with its baseline."""
    is_discrepancy: bool
    percentage_variance: float = 0.0
    std_dev_variance: float = 0.0
    severity: Severity = Severity.LOW


# ============================================================================
# Configuration
# ============================================================================

def resolve_config(overrides: Union[DetectionConfig, Mapping[str, Any], None] = None) -> DetectionConfig:
    """
    Build a detection config from caller overrides.

    Every override is validated on its own. Values that are out of range or
    of the wrong type are logged and replaced by the default, so a bad
    threshold never stops the detection pass.
    """
    if overrides is None:
        return DetectionConfig()
    if isinstance(overrides, DetectionConfig):
        return overrides.model_copy()

    accepted: dict[str, Any] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        if key not in DetectionConfig.model_fields:
            logger.debug(f"Ignoring unknown detection option: {key}")
            continue
        if isinstance(value, str):
            value = value.strip()
            if key == "mode":
                value = value.lower()

        try:
            candidate = DetectionConfig.model_validate({key: value})
        except ValidationError:
            logger.warning(f"Invalid value {value!r} for {key}, using default")
            continue
        accepted[key] = getattr(candidate, key)

    return DetectionConfig(**accepted)


# ============================================================================
# Value Check
# ============================================================================

def check_value(
    current_value: Optional[float],
    historical_mean: Optional[float],
    historical_std_dev: Optional[float],
    config: DetectionConfig,
) -> ValueCheck:
    """
    Decide whether a value deviates from its historical baseline.

    A missing or zero mean means there is no baseline and nothing is flagged.
    In ``both`` mode either signal is enough; the standard deviation signal
    only counts when the historical standard deviation is non-zero.
    """
    if current_value is None or historical_mean is None or historical_mean == 0:
        return ValueCheck(is_discrepancy=False)

    std_dev = historical_std_dev or 0.0
    deviation = abs(current_value - historical_mean)

    percentage_variance = abs(deviation / historical_mean)
    std_dev_variance = deviation / std_dev if std_dev > 0 else 0.0

    over_percentage = percentage_variance > config.percentage_threshold
    over_std_dev = std_dev_variance > config.std_dev_threshold

    if config.mode == DetectionMode.PERCENTAGE:
        is_discrepancy = over_percentage
    elif config.mode == DetectionMode.STDDEV:
        is_discrepancy = over_std_dev
    else:
        is_discrepancy = over_percentage or (std_dev > 0 and over_std_dev)

    # Exactly twice the percentage threshold is already high
    if (percentage_variance >= config.percentage_threshold * 2
            or std_dev_variance > config.std_dev_threshold * 1.5):
        severity = Severity.HIGH
    elif (percentage_variance > config.percentage_threshold * 1.5
            or std_dev_variance > config.std_dev_threshold * 1.2):
        severity = Severity.MEDIUM
    else:
        severity = Severity.LOW

    return ValueCheck(
        is_discrepancy=is_discrepancy,
        percentage_variance=percentage_variance,
        std_dev_variance=std_dev_variance,
        severity=severity,
    )


# ============================================================================
# Detection
# ============================================================================

def _check_line_items(
    invoice: ParsedInvoice,
    aggregates: Aggregates,
    config: DetectionConfig,
) -> list[DiscrepancyFinding]:
    findings = []

    for index, item in enumerate(invoice.line_items):
        historical = aggregates.item_averages.get(normalize_item_description(item.description))

        # Not enough history for this item
        if historical is None or historical.count < config.min_samples:
            continue

        for check in ITEM_FIELD_CHECKS:
            current = getattr(item, check.field)
            mean = getattr(historical, check.mean_attr)
            if current is None or not mean > 0:
                continue

            result = check_value(current, mean, getattr(historical, check.std_dev_attr), config)
            if result.is_discrepancy:
                findings.append(DiscrepancyFinding(
                    type=FindingType.LINE_ITEM,
                    line_index=index,
                    field=check.field,
                    description=item.description,
                    current_value=current,
                    historical_average=mean,
                    percentage_variance=result.percentage_variance,
                    std_dev_variance=result.std_dev_variance,
                    severity=result.severity,
                    historical_count=historical.count,
                ))

    return findings


def _check_totals(
    invoice: ParsedInvoice,
    aggregates: Aggregates,
    config: DetectionConfig,
) -> list[DiscrepancyFinding]:
    vendor = invoice.metadata.vendor
    if not vendor:
        return []

    # Vendor names are matched exactly, unlike item descriptions
    historical = aggregates.vendor_averages.get(vendor)
    if historical is None or historical.count < config.min_samples:
        return []

    findings = []
    for check in VENDOR_FIELD_CHECKS:
        current = getattr(invoice.totals, check.field)
        mean = getattr(historical, check.mean_attr)
        if current is None or not mean > 0:
            continue

        result = check_value(current, mean, getattr(historical, check.std_dev_attr), config)
        if result.is_discrepancy:
            findings.append(DiscrepancyFinding(
                type=FindingType.TOTAL,
                field=check.field,
                vendor=vendor,
                current_value=current,
                historical_average=mean,
                percentage_variance=result.percentage_variance,
                std_dev_variance=result.std_dev_variance,
                severity=result.severity,
                historical_count=historical.count,
            ))

    return findings


def detect_discrepancies(
    invoice: ParsedInvoice,
    aggregates: Aggregates,
    config: Union[DetectionConfig, Mapping[str, Any], None] = None,
) -> DiscrepancyResult:
    """
    Compare an invoice with the historical aggregates.

    Args:
        invoice: The parsed invoice to check
        aggregates: Current item and vendor aggregates (a HistoryState works too)
        config: DetectionConfig or mapping of overrides; invalid overrides fall back to defaults

    Returns:
        DiscrepancyResult with every flagged field and the effective config
    """
    cfg = resolve_config(config)
    discrepancies: list[DiscrepancyFinding] = []

    if cfg.check_line_items:
        discrepancies.extend(_check_line_items(invoice, aggregates, cfg))

    if cfg.check_totals:
        discrepancies.extend(_check_totals(invoice, aggregates, cfg))

    if discrepancies:
        logger.info(
            f"Found {len(discrepancies)} discrepancy(ies) in invoice "
            f"{invoice.metadata.invoice_number or invoice.filename or '<unknown>'}"
        )

    return DiscrepancyResult(
        has_discrepancies=len(discrepancies) > 0,
        discrepancy_count=len(discrepancies),
        discrepancies=discrepancies,
        config=cfg,
    )
