"""
Historical statistics for line items and vendors.

The aggregate tables are always rebuilt from the full invoice history, never
updated incrementally, so they match the history at the time they were
computed. Standard deviations are population standard deviations.
"""

import math
import re
from dataclasses import dataclass
from statistics import fmean, pstdev
from typing import TYPE_CHECKING, Iterable, Optional

from .config import UNKNOWN_VENDOR, logger
from .schemas import Aggregates, HistoryState, ItemAggregate, VendorAggregate

if TYPE_CHECKING:
    from .store import HistoryStore


@dataclass(frozen=True)
class SampleStats:
    """Mean, population standard deviation and size of a sample."""
    mean: float
    std_dev: float
    count: int


def calculate_stats(values: Optional[Iterable[float]]) -> SampleStats:
    """
    Population mean and standard deviation; an empty sample gives all zeros.

    Non-finite values (inf, nan) are left out of the sample.
    """
    samples = [v for v in values or [] if math.isfinite(v)]
    if not samples:
        return SampleStats(mean=0.0, std_dev=0.0, count=0)

    return SampleStats(
        mean=fmean(samples),
        std_dev=pstdev(samples),
        count=len(samples),
    )


def normalize_item_description(description: str) -> str:
    """
    Canonical key for grouping line items across invoices.

    "Widget,  Large" and "widget large" map to the same key.
    """
    key = description.lower().strip()
    key = re.sub(r"\s+", " ", key)
    return re.sub(r"[^\w\s]", "", key)


# ============================================================================
# Aggregation
# ============================================================================

def calculate_item_averages(history: HistoryState) -> dict[str, ItemAggregate]:
    """Per-item baselines keyed by normalized description."""
    item_data: dict[str, dict] = {}

    for invoice in history.invoices:
        for item in invoice.line_items:
            key = normalize_item_description(item.description)

            data = item_data.setdefault(key, {
                "original_name": item.description,
                "unit_prices": [],
                "quantities": [],
                "amounts": [],
            })

            data["unit_prices"].append(item.unit_price)
            data["quantities"].append(item.quantity)
            data["amounts"].append(item.amount)

    item_averages = {}
    for key, data in item_data.items():
        price = calculate_stats(data["unit_prices"])
        qty = calculate_stats(data["quantities"])
        amount = calculate_stats(data["amounts"])

        item_averages[key] = ItemAggregate(
            original_name=data["original_name"],
            avg_unit_price=price.mean,
            unit_price_std_dev=price.std_dev,
            avg_quantity=qty.mean,
            quantity_std_dev=qty.std_dev,
            avg_amount=amount.mean,
            amount_std_dev=amount.std_dev,
            count=price.count,
        )

    return item_averages


def calculate_vendor_averages(history: HistoryState) -> dict[str, VendorAggregate]:
    """Per-vendor baselines keyed by the raw vendor string."""
    vendor_data: dict[str, dict[str, list[float]]] = {}

    for invoice in history.invoices:
        vendor = invoice.metadata.vendor or UNKNOWN_VENDOR
        data = vendor_data.setdefault(vendor, {"totals": [], "subtotals": [], "taxes": []})

        if invoice.totals.total is not None:
            data["totals"].append(invoice.totals.total)
        if invoice.totals.subtotal is not None:
            data["subtotals"].append(invoice.totals.subtotal)
        if invoice.totals.tax is not None:
            data["taxes"].append(invoice.totals.tax)

    vendor_averages = {}
    for vendor, data in vendor_data.items():
        total = calculate_stats(data["totals"])
        subtotal = calculate_stats(data["subtotals"])
        tax = calculate_stats(data["taxes"])

        vendor_averages[vendor] = VendorAggregate(
            avg_total=total.mean,
            total_std_dev=total.std_dev,
            avg_subtotal=subtotal.mean,
            subtotal_std_dev=subtotal.std_dev,
            avg_tax=tax.mean,
            tax_std_dev=tax.std_dev,
            count=total.count,
        )

    return vendor_averages


def recompute_aggregates(history: HistoryState) -> Aggregates:
    """Rebuild both aggregate tables from the full history."""
    return Aggregates(
        item_averages=calculate_item_averages(history),
        vendor_averages=calculate_vendor_averages(history),
    )


def update_statistics(store: "HistoryStore") -> Aggregates:
    """
    Recompute the aggregates for everything in the store and persist them.

    Both tables are replaced wholesale. Callers trigger this after appending
    an invoice, or on demand.
    """
    history = store.load()
    aggregates = recompute_aggregates(history)

    history.item_averages = aggregates.item_averages
    history.vendor_averages = aggregates.vendor_averages
    store.save(history)

    logger.info(
        f"Statistics updated from {len(history.invoices)} invoice(s): "
        f"{len(aggregates.item_averages)} item(s), {len(aggregates.vendor_averages)} vendor(s)"
    )
    return aggregates
