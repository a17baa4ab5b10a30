"""
Stock status, alerts and cost valuation rules.

Responsibility:
    Pure functions that derive a product's status and alert from its
    counters and policy thresholds, and the weighted-average cost update
    applied on inbound movements.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Status is derived, never stored.
    - At most one alert per product.
    - Cost arithmetic is Decimal only, rounded ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum


class InventoryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OVERSTOCKED = "OVERSTOCKED"


class AlertType(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    MEDIUM = "medium"


def derive_status(
    quantity: int,
    low_stock_threshold: int,
    overstock_multiplier: int,
) -> InventoryStatus:
    """
    Derive the status of a product from its on-hand quantity.

    OUT_OF_STOCK if quantity <= 0; LOW_STOCK if 0 < quantity <= threshold;
    OVERSTOCKED if quantity > multiplier * threshold (only when a threshold
    is configured); otherwise ACTIVE.
    """
    if quantity <= 0:
        return InventoryStatus.OUT_OF_STOCK
    if quantity <= low_stock_threshold:
        return InventoryStatus.LOW_STOCK
    if low_stock_threshold > 0 and quantity > overstock_multiplier * low_stock_threshold:
        return InventoryStatus.OVERSTOCKED
    return InventoryStatus.ACTIVE


def evaluate_alert(
    quantity: int,
    low_stock_threshold: int,
) -> tuple[AlertType, AlertSeverity] | None:
    """Primary alert for a product, or None when stock is healthy."""
    if quantity <= 0:
        return AlertType.OUT_OF_STOCK, AlertSeverity.CRITICAL
    if quantity <= low_stock_threshold:
        return AlertType.LOW_STOCK, AlertSeverity.MEDIUM
    return None


def quantize_cost(value: Decimal, precision: int) -> Decimal:
    """Round a cost to ``precision`` decimal places, ROUND_HALF_UP."""
    return value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def weighted_average_cost(
    previous_quantity: int,
    previous_average: Decimal,
    quantity: int,
    unit_cost: Decimal,
    precision: int,
) -> Decimal:
    """
    Weighted moving average after receiving ``quantity`` units at ``unit_cost``.

    When nothing valuable is on hand (previous_quantity <= 0, e.g. after
    backorders), the incoming unit cost becomes the average.
    """
    if previous_quantity <= 0:
        return quantize_cost(Decimal(unit_cost), precision)

    total_value = Decimal(previous_quantity) * Decimal(previous_average) + Decimal(quantity) * Decimal(unit_cost)
    return quantize_cost(total_value / Decimal(previous_quantity + quantity), precision)
