"""
InventoryOrchestrator -- operations facade and transaction owner.

Responsibility:
    Exposes every inventory operation to collaborators (checkout, admin
    tools, dashboards).  Each write runs as one atomic unit in its own
    session and transaction, retried a bounded number of times on lost
    races.  Reads run in a short-lived session that is always closed.

Architecture position:
    Kernel > Services -- the outermost kernel layer.  Wires
    InventoryRecordStore, MovementLedger, AdjustmentEngine and
    ReservationManager per unit of work; delegates reads to selectors.
    MUST NOT import from inventory_batch.

Invariants enforced:
    - One transaction per public write call.  Services only flush; the
      orchestrator commits (via run_in_transaction).
    - Every write binds LogContext (correlation_id, actor_id and the
      entity keys it touches) for the lifetime of the call.
    - The same Clock and InventoryConfig flow into every service and
      selector it builds.

Failure modes:
    - Domain errors (InsufficientStockError, ValidationError, NotFoundError)
      propagate after rollback; nothing from the failed call is persisted.
    - ConcurrencyConflictError after ``config.max_retries`` lost races.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AvailabilityCheck,
    InventorySnapshot,
    MovementFilter,
    MovementPage,
    MovementSnapshot,
    MovementSummary,
    ReleaseResult,
    ReorderSuggestion,
    ReservationOutcome,
    ReservationRequest,
    ReservationSnapshot,
    ReservationStats,
    StockAlert,
    SweepResult,
    ValuationSummary,
)
from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.domain.stock_status import AlertType, InventoryStatus
from inventory_kernel.logging_config import LogContext
from inventory_kernel.selectors.alert_selector import StockAlertEvaluator
from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.reservation_selector import ReservationSelector
from inventory_kernel.services.adjustment_engine import AdjustmentEngine
from inventory_kernel.services.reservation_manager import ReservationManager
from inventory_kernel.services.retry import run_in_transaction
from inventory_kernel.services.sweeper import ReservationSweeper

T = TypeVar("T")


class InventoryOrchestrator:
    """
    Facade over the inventory kernel.

    Contract:
        - Write methods commit before returning and return DTOs.
        - Read methods never write.
        - ``create_sweeper()`` returns a background sweeper sharing this
          orchestrator's session factory, clock and config.

    Non-goals:
        - Does NOT check that a product exists in a catalog.
        - Does NOT start the sweeper automatically.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: InventoryConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or InventoryConfig()
        self._clock = clock or SystemClock()
        register_immutability_listeners()

    @property
    def config(self) -> InventoryConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Unit-of-work plumbing
    # -------------------------------------------------------------------------

    def _write(
        self,
        operation: str,
        work: Callable[[Session], T],
        *,
        entity_type: str,
        entity_id: str,
        actor_id: str | None = None,
        **context: object,
    ) -> T:
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(correlation_id=correlation_id, actor_id=actor_id, **context):
            return run_in_transaction(
                self._session_factory,
                work,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                max_attempts=self._config.max_retries,
                backoff_seconds=self._config.retry_backoff_seconds,
            )

    def _read(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            return work(session)
        finally:
            session.close()

    def _engine(self, session: Session) -> AdjustmentEngine:
        return AdjustmentEngine(session, self._clock, self._config)

    def _reservations(self, session: Session) -> ReservationManager:
        return ReservationManager(session, self._clock, self._config)

    # -------------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------------

    def adjust(
        self,
        product_id: str,
        movement_type: MovementType | str,
        quantity: int,
        *,
        created_by: str,
        unit_cost: Decimal | str | int | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        batch_id: UUID | None = None,
    ) -> InventorySnapshot:
        """Apply one stock movement and return the updated record."""
        return self._write(
            "adjust",
            lambda s: self._engine(s).adjust(
                product_id,
                movement_type,
                quantity,
                created_by=created_by,
                unit_cost=unit_cost,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
                batch_id=batch_id,
            ),
            entity_type="InventoryRecord",
            entity_id=product_id,
            actor_id=created_by,
            product_id=product_id,
            batch_id=batch_id,
        )

    def set_quantity(
        self,
        product_id: str,
        target_quantity: int,
        *,
        created_by: str,
        reason: str | None = None,
        unit_cost: Decimal | str | int | None = None,
    ) -> InventorySnapshot:
        return self._write(
            "set_quantity",
            lambda s: self._engine(s).set_quantity(
                product_id,
                target_quantity,
                created_by=created_by,
                reason=reason,
                unit_cost=unit_cost,
            ),
            entity_type="InventoryRecord",
            entity_id=product_id,
            actor_id=created_by,
            product_id=product_id,
        )

    def update_policy(
        self,
        product_id: str,
        *,
        low_stock_threshold: int | None = None,
        reorder_point: int | None = None,
        reorder_quantity: int | None = None,
        allow_backorder: bool | None = None,
    ) -> InventorySnapshot:
        return self._write(
            "update_policy",
            lambda s: self._engine(s).update_policy(
                product_id,
                low_stock_threshold=low_stock_threshold,
                reorder_point=reorder_point,
                reorder_quantity=reorder_quantity,
                allow_backorder=allow_backorder,
            ),
            entity_type="InventoryRecord",
            entity_id=product_id,
            product_id=product_id,
        )

    # -------------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------------

    def reserve(
        self,
        product_id: str,
        quantity: int,
        *,
        ttl_minutes: int | None = None,
        reason: str | None = None,
        order_id: str | None = None,
        cart_id: str | None = None,
        created_by: str | None = None,
    ) -> ReservationSnapshot:
        """Hold stock for a checkout.  Raises InsufficientStockError when short."""
        return self._write(
            "reserve",
            lambda s: self._reservations(s).reserve(
                product_id,
                quantity,
                ttl_minutes=ttl_minutes,
                reason=reason,
                order_id=order_id,
                cart_id=cart_id,
                created_by=created_by,
            ),
            entity_type="InventoryRecord",
            entity_id=product_id,
            actor_id=created_by,
            product_id=product_id,
            order_id=order_id,
        )

    def reserve_many(
        self,
        items: list[ReservationRequest],
        *,
        ttl_minutes: int | None = None,
        reason: str | None = None,
        order_id: str | None = None,
        cart_id: str | None = None,
        created_by: str | None = None,
    ) -> list[ReservationOutcome]:
        """Reserve several lines; each line succeeds or fails on its own."""
        return self._write(
            "reserve_many",
            lambda s: self._reservations(s).reserve_many(
                items,
                ttl_minutes=ttl_minutes,
                reason=reason,
                order_id=order_id,
                cart_id=cart_id,
                created_by=created_by,
            ),
            entity_type="Reservation",
            entity_id=order_id or cart_id or "bulk",
            actor_id=created_by,
            order_id=order_id,
        )

    def release(
        self,
        reservation_id: UUID | None = None,
        *,
        order_id: str | None = None,
        reason: str | None = None,
    ) -> bool:
        """Idempotent release.  False when nothing live was released."""
        return self._write(
            "release",
            lambda s: self._reservations(s).release(
                reservation_id, order_id=order_id, reason=reason
            ),
            entity_type="Reservation",
            entity_id=str(reservation_id or order_id),
            reservation_id=reservation_id,
            order_id=order_id,
        )

    def release_all(
        self,
        *,
        order_id: str | None = None,
        cart_id: str | None = None,
        reason: str | None = None,
    ) -> ReleaseResult:
        return self._write(
            "release_all",
            lambda s: self._reservations(s).release_all(
                order_id=order_id, cart_id=cart_id, reason=reason
            ),
            entity_type="Reservation",
            entity_id=str(order_id or cart_id),
            order_id=order_id,
        )

    def extend(self, reservation_id: UUID, additional_minutes: int) -> ReservationSnapshot:
        return self._write(
            "extend",
            lambda s: self._reservations(s).extend(reservation_id, additional_minutes),
            entity_type="Reservation",
            entity_id=str(reservation_id),
            reservation_id=reservation_id,
        )

    def consume(
        self,
        reservation_id: UUID | None = None,
        *,
        order_id: str | None = None,
        created_by: str,
        reason: str | None = None,
    ) -> list[InventorySnapshot]:
        """Turn live reservations into a SALE, atomically."""
        return self._write(
            "consume",
            lambda s: self._reservations(s).consume(
                reservation_id,
                order_id=order_id,
                created_by=created_by,
                reason=reason,
            ),
            entity_type="Reservation",
            entity_id=str(reservation_id or order_id),
            actor_id=created_by,
            reservation_id=reservation_id,
            order_id=order_id,
        )

    def sweep_expired(self) -> SweepResult:
        return self._write(
            "sweep_expired",
            lambda s: self._reservations(s).sweep_expired(),
            entity_type="Reservation",
            entity_id="sweep",
        )

    def get_reservation(self, reservation_id: UUID) -> ReservationSnapshot:
        return self._read(
            lambda s: ReservationSelector(s, self._clock, self._config).get(reservation_id)
        )

    def list_reservations(
        self,
        product_id: str | None = None,
        order_id: str | None = None,
        cart_id: str | None = None,
    ) -> list[ReservationSnapshot]:
        return self._read(
            lambda s: ReservationSelector(s, self._clock, self._config).list_active(
                product_id=product_id, order_id=order_id, cart_id=cart_id
            )
        )

    def reservation_stats(self) -> ReservationStats:
        return self._read(lambda s: ReservationSelector(s, self._clock, self._config).stats())

    # -------------------------------------------------------------------------
    # Inventory reads
    # -------------------------------------------------------------------------

    def _inventory(self, session: Session) -> InventorySelector:
        return InventorySelector(session, self._clock, self._config)

    def get_inventory(self, product_id: str) -> InventorySnapshot:
        return self._read(lambda s: self._inventory(s).get(product_id))

    def list_inventory(
        self,
        status: InventoryStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[InventorySnapshot]:
        return self._read(lambda s: self._inventory(s).list_records(status, limit, offset))

    def check_availability(self, product_id: str, requested: int) -> AvailabilityCheck:
        return self._read(lambda s: self._inventory(s).check_availability(product_id, requested))

    def check_availability_many(self, requests: list[ReservationRequest]) -> list[AvailabilityCheck]:
        return self._read(lambda s: self._inventory(s).check_availability_many(requests))

    def reorder_suggestions(self) -> list[ReorderSuggestion]:
        return self._read(lambda s: self._inventory(s).reorder_suggestions())

    def valuation(self) -> ValuationSummary:
        return self._read(lambda s: self._inventory(s).valuation())

    # -------------------------------------------------------------------------
    # Ledger reads
    # -------------------------------------------------------------------------

    def _movements(self, session: Session) -> MovementSelector:
        return MovementSelector(session, self._clock, self._config)

    def query_movements(self, filters: MovementFilter | None = None) -> MovementPage:
        return self._read(lambda s: self._movements(s).query(filters))

    def summarize(self, product_id: str, window_days: int = 30) -> MovementSummary:
        return self._read(lambda s: self._movements(s).summarize(product_id, window_days))

    def history(self, product_id: str, limit: int = 50) -> list[MovementSnapshot]:
        return self._read(lambda s: self._movements(s).history(product_id, limit))

    def replay(self, product_id: str) -> int:
        return self._read(lambda s: self._movements(s).replay(product_id))

    def verify_chain(self, product_id: str) -> int:
        return self._read(lambda s: self._movements(s).verify_chain(product_id))

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def alerts(self, alert_type: AlertType | None = None) -> list[StockAlert]:
        return self._read(
            lambda s: StockAlertEvaluator(s, self._clock, self._config).alerts(alert_type)
        )

    def alert_for(self, product_id: str) -> StockAlert | None:
        return self._read(
            lambda s: StockAlertEvaluator(s, self._clock, self._config).alert_for(product_id)
        )

    # -------------------------------------------------------------------------
    # Background expiry
    # -------------------------------------------------------------------------

    def create_sweeper(self, interval_seconds: float | None = None) -> ReservationSweeper:
        """Build a ReservationSweeper (not started)."""
        return ReservationSweeper(
            session_factory=self._session_factory,
            clock=self._clock,
            config=self._config,
            interval_seconds=interval_seconds,
        )
