"""
DTOs -- immutable data crossing the kernel boundary.

Responsibility:
    Frozen dataclasses returned to collaborators: inventory, movement and
    reservation snapshots, ledger query filters and pages, summaries,
    alerts, availability checks, reorder suggestions, valuation and
    reservation bookkeeping results.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters called only from services and selectors; no ORM
    object ever leaves the kernel.

Invariants enforced:
    - Collaborators never receive live ORM entities (no lazy loads or
      accidental writes outside a transaction).
    - available_quantity is derived as quantity - reserved_quantity at
      snapshot time, using the live (non-expired) reserved total.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from inventory_kernel.domain.movement_types import MovementDirection, MovementType, classify
from inventory_kernel.domain.stock_status import (
    AlertSeverity,
    AlertType,
    InventoryStatus,
    derive_status,
)

if TYPE_CHECKING:
    from inventory_kernel.models.inventory_record import InventoryRecord
    from inventory_kernel.models.movement import MovementRecord
    from inventory_kernel.models.reservation import Reservation


class ReservationState(str, Enum):
    """
    Lifecycle of a reservation.

    CREATED is the only non-terminal state.  Terminal states are not stored:
    the row is deleted and the state appears only in logs and results.
    """

    CREATED = "CREATED"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class InventorySnapshot:
    """Point-in-time view of one product's stock counters and policy."""

    product_id: str
    quantity: int
    reserved_quantity: int
    available_quantity: int
    low_stock_threshold: int
    reorder_point: int
    reorder_quantity: int
    allow_backorder: bool
    average_cost: Decimal
    last_cost: Decimal
    status: InventoryStatus
    version: int
    created_at: datetime
    updated_at: datetime | None = None
    last_restocked_at: datetime | None = None
    last_sold_at: datetime | None = None
    last_movement_at: datetime | None = None

    @classmethod
    def from_model(
        cls,
        record: InventoryRecord,
        reserved_quantity: int,
        overstock_multiplier: int,
    ) -> InventorySnapshot:
        return cls(
            product_id=record.product_id,
            quantity=record.quantity,
            reserved_quantity=reserved_quantity,
            available_quantity=record.quantity - reserved_quantity,
            low_stock_threshold=record.low_stock_threshold,
            reorder_point=record.reorder_point,
            reorder_quantity=record.reorder_quantity,
            allow_backorder=record.allow_backorder,
            average_cost=record.average_cost,
            last_cost=record.last_cost,
            status=derive_status(
                record.quantity, record.low_stock_threshold, overstock_multiplier
            ),
            version=record.version,
            created_at=record.created_at,
            updated_at=record.updated_at,
            last_restocked_at=record.last_restocked_at,
            last_sold_at=record.last_sold_at,
            last_movement_at=record.last_movement_at,
        )


@dataclass(frozen=True)
class MovementSnapshot:
    """One committed ledger row."""

    id: UUID
    product_id: str
    sequence: int
    movement_type: MovementType
    direction: MovementDirection
    quantity: int
    previous_quantity: int
    new_quantity: int
    created_by: str
    created_at: datetime
    reason: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    batch_id: UUID | None = None
    unit_cost: Decimal | None = None
    total_cost: Decimal | None = None

    @property
    def signed_quantity(self) -> int:
        return self.new_quantity - self.previous_quantity

    @classmethod
    def from_model(cls, movement: MovementRecord) -> MovementSnapshot:
        movement_type = MovementType(movement.movement_type)
        return cls(
            id=movement.id,
            product_id=movement.product_id,
            sequence=movement.sequence,
            movement_type=movement_type,
            direction=classify(movement_type),
            quantity=movement.quantity,
            previous_quantity=movement.previous_quantity,
            new_quantity=movement.new_quantity,
            created_by=movement.created_by,
            created_at=movement.created_at,
            reason=movement.reason,
            reference_type=movement.reference_type,
            reference_id=movement.reference_id,
            batch_id=movement.batch_id,
            unit_cost=movement.unit_cost,
            total_cost=movement.total_cost,
        )


@dataclass(frozen=True)
class ReservationSnapshot:
    """A live hold against a product's available stock."""

    id: UUID
    product_id: str
    quantity: int
    expires_at: datetime
    created_at: datetime
    reason: str | None = None
    order_id: str | None = None
    cart_id: str | None = None
    created_by: str | None = None

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    @classmethod
    def from_model(cls, reservation: Reservation) -> ReservationSnapshot:
        return cls(
            id=reservation.id,
            product_id=reservation.product_id,
            quantity=reservation.quantity,
            expires_at=reservation.expires_at,
            created_at=reservation.created_at,
            reason=reservation.reason,
            order_id=reservation.order_id,
            cart_id=reservation.cart_id,
            created_by=reservation.created_by,
        )


# =============================================================================
# Ledger queries
# =============================================================================


@dataclass(frozen=True)
class MovementFilter:
    """
    Filters for ledger queries.  All fields are optional and AND-ed.

    ``start_date`` is inclusive, ``end_date`` is exclusive.  ``page`` is
    1-based; ``limit`` of None means the configured default page size.
    """

    product_id: str | None = None
    movement_type: MovementType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_by: str | None = None
    batch_id: UUID | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    page: int = 1
    limit: int | None = None


@dataclass(frozen=True)
class MovementPage:
    items: tuple[MovementSnapshot, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass(frozen=True)
class MovementSummary:
    """Inbound/outbound totals for a product over a trailing window."""

    product_id: str
    window_days: int
    window_start: datetime
    total_movements: int
    total_inbound: int
    total_outbound: int
    net_change: int
    by_type: dict[MovementType, int] = field(default_factory=dict)
    recent_movements: tuple[MovementSnapshot, ...] = ()


# =============================================================================
# Read-side projections
# =============================================================================


@dataclass(frozen=True)
class StockAlert:
    product_id: str
    alert_type: AlertType
    severity: AlertSeverity
    quantity: int
    available_quantity: int
    low_stock_threshold: int


@dataclass(frozen=True)
class AvailabilityCheck:
    product_id: str
    requested: int
    available: int
    is_available: bool
    shortfall: int


@dataclass(frozen=True)
class ReorderSuggestion:
    product_id: str
    quantity: int
    available_quantity: int
    reorder_point: int
    suggested_quantity: int


@dataclass(frozen=True)
class ValuationSummary:
    total_products: int
    total_units: int
    total_value: Decimal
    low_stock_count: int
    out_of_stock_count: int


# =============================================================================
# Reservation bookkeeping
# =============================================================================


@dataclass(frozen=True)
class ReservationRequest:
    """One line of a multi-item reservation."""

    product_id: str
    quantity: int


@dataclass(frozen=True)
class ReservationOutcome:
    """Per-item result of reserve_many."""

    product_id: str
    quantity: int
    reservation: ReservationSnapshot | None = None
    error_code: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.reservation is not None


@dataclass(frozen=True)
class ReleaseResult:
    released_count: int
    total_quantity: int


@dataclass(frozen=True)
class SweepResult:
    released_count: int
    total_quantity: int
    cutoff: datetime
    products_affected: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProductReservationStats:
    product_id: str
    reservation_count: int
    reserved_quantity: int


@dataclass(frozen=True)
class ReservationStats:
    active_count: int
    total_reserved_quantity: int
    expiring_soon_count: int
    by_product: tuple[ProductReservationStats, ...] = ()
