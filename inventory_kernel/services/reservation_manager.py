"""
ReservationManager -- time-boxed holds against available stock.

Responsibility:
    Creates, releases, extends, consumes and expires reservations, keeping
    the product's cached reserved_quantity equal to the sum of its live
    reservations.

Architecture position:
    Kernel > Services -- imperative shell.  Uses InventoryRecordStore for
    locking and AdjustmentEngine for consumption.

State machine (per reservation):
    CREATED -> RELEASED | EXPIRED | CONSUMED

    Terminal states are represented by deleting the row.  Deletion is the
    completion signal, so each reservation is terminated at most once, even
    under concurrent release/sweep/consume.

Invariants enforced:
    - Every mutation locks the product's inventory record first, then
      re-reads the reservation rows it will touch.
    - A reserve succeeds only if requested <= quantity - live reserved.
      Together with the adjustment engine's available-quantity check this
      keeps live reserved <= quantity at all times.
    - Expiry is checked passively (every read filters expires_at > now and
      every mutation reconciles the cached total) and actively
      (``sweep_expired``).
    - ``sweep_expired`` fixes its cutoff before selecting, so reservations
      created while it runs are never deleted by it.
    - Multi-product operations lock products in product_id order.

Failure modes:
    - InsufficientStockError on reserve (nothing persisted).
    - ReservationNotFoundError on extend/consume of a missing or expired
      reservation.  release() returns False instead.
    - ValidationError for malformed requests.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import (
    InventorySnapshot,
    ReleaseResult,
    ReservationOutcome,
    ReservationRequest,
    ReservationSnapshot,
    ReservationState,
    SweepResult,
)
from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InventoryKernelError,
    ReservationNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.reservation import Reservation
from inventory_kernel.services.adjustment_engine import AdjustmentEngine
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.inventory_store import InventoryRecordStore
from inventory_kernel.services.movement_ledger import require_positive_quantity

logger = get_logger("services.reservation_manager")


class ReservationManager(BaseService[Reservation]):
    """
    Reservation lifecycle service.

    Contract:
        Every public method runs inside the caller's transaction and flushes
        its changes; the caller commits.

    Non-goals:
        - No per-reservation timers.  Expiry is declarative (expires_at).
        - Read-only queries (get, list, stats) live in ReservationSelector.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
        store: InventoryRecordStore | None = None,
        engine: AdjustmentEngine | None = None,
    ):
        super().__init__(session, clock, config)
        self._store = store or InventoryRecordStore(session, self._clock, self._config)
        self._engine = engine or AdjustmentEngine(
            session, self._clock, self._config, store=self._store
        )

    # -------------------------------------------------------------------------
    # Reserve
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
        """
        Hold ``quantity`` units of ``product_id`` until the TTL elapses.

        Raises:
            InsufficientStockError: requested exceeds available quantity.
            InvalidQuantityError: quantity is not a positive integer.
            ValidationError: ttl_minutes is not positive.
        """
        require_positive_quantity("quantity", quantity)
        ttl = self._config.reservation_ttl_minutes if ttl_minutes is None else ttl_minutes
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            raise ValidationError(f"ttl_minutes must be a positive integer, got {ttl_minutes!r}")

        record = self._store.get(product_id)
        now = self._clock.now()
        reserved = self._store.reconcile_reserved(record, now)
        available = record.quantity - reserved

        if quantity > available:
            logger.info(
                "reservation_rejected",
                extra={
                    "product_id": product_id,
                    "requested": quantity,
                    "available": available,
                },
            )
            raise InsufficientStockError(product_id, quantity, max(available, 0))

        reservation = Reservation(
            product_id=product_id,
            quantity=quantity,
            order_id=order_id,
            cart_id=cart_id,
            reason=reason,
            created_by=created_by,
            expires_at=now + timedelta(minutes=ttl),
            created_at=now,
        )
        self.session.add(reservation)
        record.reserved_quantity = reserved + quantity
        record.updated_at = now
        self.session.flush()

        logger.info(
            "stock_reserved",
            extra={
                "product_id": product_id,
                "reservation_id": str(reservation.id),
                "quantity": quantity,
                "reserved_quantity": record.reserved_quantity,
                "available_quantity": record.quantity - record.reserved_quantity,
                "expires_at": reservation.expires_at,
                "state": ReservationState.CREATED.value,
            },
        )
        return ReservationSnapshot.from_model(reservation)

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
        """
        Reserve several lines, each in its own SAVEPOINT.

        A failing line is reported in its outcome and does not undo the
        others.  Lines are processed in product_id order (consistent lock
        order); outcomes are returned in input order.
        """
        outcomes: dict[int, ReservationOutcome] = {}
        ordered = sorted(enumerate(items), key=lambda pair: pair[1].product_id)

        for index, item in ordered:
            savepoint = self.session.begin_nested()
            try:
                reservation = self.reserve(
                    item.product_id,
                    item.quantity,
                    ttl_minutes=ttl_minutes,
                    reason=reason,
                    order_id=order_id,
                    cart_id=cart_id,
                    created_by=created_by,
                )
                savepoint.commit()
                outcomes[index] = ReservationOutcome(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    reservation=reservation,
                )
            except InventoryKernelError as exc:
                savepoint.rollback()
                outcomes[index] = ReservationOutcome(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    error_code=exc.code,
                    error=str(exc),
                )

        failed = sum(1 for o in outcomes.values() if not o.success)
        logger.info(
            "reservations_created",
            extra={
                "requested": len(items),
                "succeeded": len(items) - failed,
                "failed": failed,
            },
        )
        return [outcomes[i] for i in range(len(items))]

    # -------------------------------------------------------------------------
    # Release
    # -------------------------------------------------------------------------

    def release(
        self,
        reservation_id: UUID | None = None,
        *,
        order_id: str | None = None,
        reason: str | None = None,
    ) -> bool:
        """
        Release a reservation (or all of an order's reservations).

        Idempotent: returns False when nothing live was released (already
        released, already expired, or never existed).
        """
        if reservation_id is None:
            if order_id is None:
                raise ValidationError("release requires reservation_id or order_id")
            return self.release_all(order_id=order_id, reason=reason).released_count > 0

        found = self.session.execute(
            select(Reservation.product_id).where(Reservation.id == reservation_id)
        ).scalar_one_or_none()
        if found is None:
            logger.debug(
                "reservation_release_noop",
                extra={"reservation_id": str(reservation_id)},
            )
            return False

        record = self._store.get(found)
        reservation = self._reload(reservation_id)
        if reservation is None:
            # Terminated by a concurrent transaction while we waited for the lock
            return False

        now = self._clock.now()
        live = reservation.expires_at > now
        quantity = reservation.quantity
        self.session.delete(reservation)
        self.session.flush()
        reserved = self._store.reconcile_reserved(record, now)
        record.updated_at = now
        self.session.flush()

        state = ReservationState.RELEASED if live else ReservationState.EXPIRED
        logger.info(
            "reservation_released" if live else "reservation_expired",
            extra={
                "product_id": record.product_id,
                "reservation_id": str(reservation_id),
                "quantity": quantity,
                "reserved_quantity": reserved,
                "reason": reason,
                "state": state.value,
            },
        )
        return live

    def release_all(
        self,
        *,
        order_id: str | None = None,
        cart_id: str | None = None,
        reason: str | None = None,
    ) -> ReleaseResult:
        """
        Release every reservation of an order and/or cart.

        Expired rows are removed as well but not counted as released.
        """
        if order_id is None and cart_id is None:
            raise ValidationError("release_all requires order_id or cart_id")

        product_ids = self.session.execute(
            select(Reservation.product_id).where(*self._key_filter(order_id, cart_id)).distinct()
        ).scalars().all()

        released = 0
        total = 0
        for product_id in sorted(product_ids):
            record = self._store.get(product_id)
            now = self._clock.now()
            rows = self.session.execute(
                select(Reservation)
                .where(Reservation.product_id == product_id, *self._key_filter(order_id, cart_id))
                .execution_options(populate_existing=True)
            ).scalars().all()
            for row in rows:
                if row.expires_at > now:
                    released += 1
                    total += row.quantity
                self.session.delete(row)
            self.session.flush()
            self._store.reconcile_reserved(record, now)
            record.updated_at = now
            self.session.flush()

        logger.info(
            "reservations_released",
            extra={
                "order_id": order_id,
                "cart_id": cart_id,
                "released_count": released,
                "total_quantity": total,
                "reason": reason,
                "state": ReservationState.RELEASED.value,
            },
        )
        return ReleaseResult(released_count=released, total_quantity=total)

    # -------------------------------------------------------------------------
    # Sweep
    # -------------------------------------------------------------------------

    def sweep_expired(self) -> SweepResult:
        """
        Delete reservations whose expires_at was already past when the sweep
        started, and reconcile each affected product.

        Safe to run concurrently with itself: a second sweep finds the rows
        already gone (delete rowcount 0) for every product the first handled.
        """
        cutoff = self._clock.now()
        product_ids = self.session.execute(
            select(Reservation.product_id).where(Reservation.expires_at < cutoff).distinct()
        ).scalars().all()

        released = 0
        total = 0
        affected: list[str] = []
        for product_id in sorted(product_ids):
            record = self._store.get(product_id)
            expired = self.session.execute(
                select(Reservation.id, Reservation.quantity).where(
                    Reservation.product_id == product_id,
                    Reservation.expires_at < cutoff,
                )
            ).all()
            if not expired:
                continue

            result = self.session.execute(
                delete(Reservation).where(Reservation.id.in_([row.id for row in expired]))
            )
            released += result.rowcount
            total += sum(row.quantity for row in expired)
            affected.append(product_id)

            self._store.reconcile_reserved(record, self._clock.now())
            self.session.flush()

        sweep = SweepResult(
            released_count=released,
            total_quantity=total,
            cutoff=cutoff,
            products_affected=tuple(affected),
        )
        logger.info(
            "reservations_swept",
            extra={
                "released_count": released,
                "total_quantity": total,
                "products_affected": len(affected),
                "cutoff": cutoff,
                "state": ReservationState.EXPIRED.value,
            },
        )
        return sweep

    # -------------------------------------------------------------------------
    # Extend / consume
    # -------------------------------------------------------------------------

    def extend(self, reservation_id: UUID, additional_minutes: int) -> ReservationSnapshot:
        """
        Push a live reservation's expiry out by ``additional_minutes``.

        Raises:
            ReservationNotFoundError: missing or already expired.
        """
        if isinstance(additional_minutes, bool) or not isinstance(additional_minutes, int) or additional_minutes <= 0:
            raise ValidationError(
                f"additional_minutes must be a positive integer, got {additional_minutes!r}"
            )

        product_id = self.session.execute(
            select(Reservation.product_id).where(Reservation.id == reservation_id)
        ).scalar_one_or_none()
        if product_id is None:
            raise ReservationNotFoundError(str(reservation_id))

        self._store.get(product_id)
        reservation = self._reload(reservation_id)
        now = self._clock.now()
        if reservation is None or reservation.expires_at <= now:
            raise ReservationNotFoundError(str(reservation_id))

        reservation.expires_at = reservation.expires_at + timedelta(minutes=additional_minutes)
        self.session.flush()

        logger.info(
            "reservation_extended",
            extra={
                "product_id": product_id,
                "reservation_id": str(reservation_id),
                "expires_at": reservation.expires_at,
            },
        )
        return ReservationSnapshot.from_model(reservation)

    def consume(
        self,
        reservation_id: UUID | None = None,
        *,
        order_id: str | None = None,
        created_by: str,
        reason: str | None = None,
    ) -> list[InventorySnapshot]:
        """
        Convert live reservations into sales (the CONSUMED transition).

        For each product: delete the reservation rows, reconcile
        reserved_quantity, then write a SALE movement for the consumed
        total.  All products commit together or not at all.

        Raises:
            ReservationNotFoundError: no live reservation matched.
        """
        if reservation_id is None and order_id is None:
            raise ValidationError("consume requires reservation_id or order_id")

        if reservation_id is not None:
            key_filter = [Reservation.id == reservation_id]
            missing_key = str(reservation_id)
            reference_type, reference_id = "reservation", str(reservation_id)
        else:
            key_filter = [Reservation.order_id == order_id]
            missing_key = f"order:{order_id}"
            reference_type, reference_id = "order", order_id

        now = self._clock.now()
        product_ids = self.session.execute(
            select(Reservation.product_id)
            .where(*key_filter, Reservation.expires_at > now)
            .distinct()
        ).scalars().all()
        if not product_ids:
            raise ReservationNotFoundError(missing_key)

        snapshots: list[InventorySnapshot] = []
        for product_id in sorted(product_ids):
            record = self._store.get(product_id)
            now = self._clock.now()
            rows = self.session.execute(
                select(Reservation)
                .where(
                    Reservation.product_id == product_id,
                    Reservation.expires_at > now,
                    *key_filter,
                )
                .execution_options(populate_existing=True)
            ).scalars().all()
            if not rows:
                raise ReservationNotFoundError(missing_key)

            consumed = sum(row.quantity for row in rows)
            for row in rows:
                self.session.delete(row)
            self.session.flush()
            self._store.reconcile_reserved(record, now)

            snapshot = self._engine.adjust(
                product_id,
                MovementType.SALE,
                consumed,
                created_by=created_by,
                reason=reason or "Reservation consumed",
                reference_type=reference_type,
                reference_id=reference_id,
            )
            snapshots.append(snapshot)

            logger.info(
                "reservation_consumed",
                extra={
                    "product_id": product_id,
                    "reservation_count": len(rows),
                    "quantity": consumed,
                    "order_id": order_id,
                    "state": ReservationState.CONSUMED.value,
                },
            )
        return snapshots

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _reload(self, reservation_id: UUID) -> Reservation | None:
        return self.session.execute(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _key_filter(order_id: str | None, cart_id: str | None) -> list:
        clauses = []
        if order_id is not None:
            clauses.append(Reservation.order_id == order_id)
        if cart_id is not None:
            clauses.append(Reservation.cart_id == cart_id)
        return clauses

