"""Pure domain layer: movement classification, status rules, clock, DTOs."""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    AvailabilityCheck,
    InventorySnapshot,
    MovementFilter,
    MovementPage,
    MovementSnapshot,
    MovementSummary,
    ProductReservationStats,
    ReleaseResult,
    ReorderSuggestion,
    ReservationOutcome,
    ReservationRequest,
    ReservationSnapshot,
    ReservationState,
    ReservationStats,
    StockAlert,
    SweepResult,
    ValuationSummary,
)
from inventory_kernel.domain.movement_types import (
    MovementDirection,
    MovementType,
    classify,
    is_inbound,
    is_outbound,
    sign,
)
from inventory_kernel.domain.stock_status import (
    AlertSeverity,
    AlertType,
    InventoryStatus,
    derive_status,
    evaluate_alert,
    weighted_average_cost,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "MovementDirection",
    "MovementType",
    "classify",
    "sign",
    "is_inbound",
    "is_outbound",
    "InventoryStatus",
    "AlertType",
    "AlertSeverity",
    "derive_status",
    "evaluate_alert",
    "weighted_average_cost",
    "InventorySnapshot",
    "MovementSnapshot",
    "ReservationSnapshot",
    "ReservationState",
    "MovementFilter",
    "MovementPage",
    "MovementSummary",
    "StockAlert",
    "AvailabilityCheck",
    "ReorderSuggestion",
    "ValuationSummary",
    "ReservationRequest",
    "ReservationOutcome",
    "ReleaseResult",
    "SweepResult",
    "ProductReservationStats",
    "ReservationStats",
]
