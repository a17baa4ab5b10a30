"""Tests for ReservationManager: the reservation lifecycle against available stock."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_kernel.domain.dtos import ReservationRequest
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ReservationNotFoundError,
    ValidationError,
)
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.movement import MovementRecord
from inventory_kernel.models.reservation import Reservation

from tests.conftest import TEST_ACTOR


def _record(session, product_id) -> InventoryRecord:
    return session.execute(
        select(InventoryRecord).where(InventoryRecord.product_id == product_id)
    ).scalar_one()


def _reservation_rows(session, product_id):
    return session.execute(
        select(Reservation).where(Reservation.product_id == product_id)
    ).scalars().all()


class TestReserve:
    def test_reserve_within_available(self, reservation_manager, stock, session, deterministic_clock):
        stock("sku-1", 10)

        reservation = reservation_manager.reserve("sku-1", 6, order_id="o-1", ttl_minutes=30)

        assert reservation.quantity == 6
        assert reservation.order_id == "o-1"
        assert reservation.expires_at == deterministic_clock.now() + timedelta(minutes=30)
        assert _record(session, "sku-1").reserved_quantity == 6

    def test_second_reserve_beyond_available_rejected(self, reservation_manager, stock, session):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 6)

        with pytest.raises(InsufficientStockError) as exc_info:
            reservation_manager.reserve("sku-1", 5)

        assert exc_info.value.available == 4
        assert len(_reservation_rows(session, "sku-1")) == 1
        assert _record(session, "sku-1").reserved_quantity == 6

    def test_release_makes_room_for_waiting_request(self, reservation_manager, stock, session):
        stock("sku-1", 10)
        first = reservation_manager.reserve("sku-1", 6)
        with pytest.raises(InsufficientStockError):
            reservation_manager.reserve("sku-1", 5)

        reservation_manager.release(first.id)
        assert _record(session, "sku-1").reserved_quantity == 0

        second = reservation_manager.reserve("sku-1", 5)
        assert second.quantity == 5
        assert _record(session, "sku-1").reserved_quantity == 5

    def test_default_ttl_from_config(self, reservation_manager, stock, config, deterministic_clock):
        stock("sku-1", 1)

        reservation = reservation_manager.reserve("sku-1", 1)

        expected = deterministic_clock.now() + timedelta(minutes=config.reservation_ttl_minutes)
        assert reservation.expires_at == expected

    def test_unknown_product_has_nothing_available(self, reservation_manager):
        with pytest.raises(InsufficientStockError) as exc_info:
            reservation_manager.reserve("sku-never-stocked", 1)
        assert exc_info.value.available == 0

    def test_rejects_bad_quantity(self, reservation_manager):
        with pytest.raises(InvalidQuantityError):
            reservation_manager.reserve("sku-1", 0)

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_rejects_bad_ttl(self, reservation_manager, ttl):
        with pytest.raises(ValidationError):
            reservation_manager.reserve("sku-1", 1, ttl_minutes=ttl)

    def test_expired_reservation_frees_stock_without_sweep(
        self, reservation_manager, stock, deterministic_clock
    ):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 10, ttl_minutes=5)

        deterministic_clock.advance(minutes=6)

        reservation = reservation_manager.reserve("sku-1", 10)
        assert reservation.quantity == 10

    def test_reserve_is_logged(self, reservation_manager, stock, captured_logs):
        stock("sku-1", 3)
        reservation = reservation_manager.reserve("sku-1", 2)

        logged = [r for r in captured_logs() if r["message"] == "stock_reserved"]
        assert logged[0]["reservation_id"] == str(reservation.id)
        assert logged[0]["state"] == "CREATED"


class TestReserveMany:
    def test_partial_success_keeps_good_lines(self, reservation_manager, stock, session):
        stock("sku-a", 5)
        stock("sku-b", 1)

        outcomes = reservation_manager.reserve_many(
            [
                ReservationRequest("sku-b", 2),
                ReservationRequest("sku-a", 3),
            ],
            order_id="o-7",
        )

        assert [o.product_id for o in outcomes] == ["sku-b", "sku-a"]
        assert outcomes[0].success is False
        assert outcomes[0].error_code == "INSUFFICIENT_STOCK"
        assert outcomes[1].success is True
        assert outcomes[1].reservation.order_id == "o-7"
        assert _record(session, "sku-a").reserved_quantity == 3
        assert _record(session, "sku-b").reserved_quantity == 0


class TestRelease:
    def test_release_is_idempotent(self, reservation_manager, stock, session):
        stock("sku-1", 10)
        reservation = reservation_manager.reserve("sku-1", 4)

        assert reservation_manager.release(reservation.id) is True
        assert reservation_manager.release(reservation.id) is False
        assert _record(session, "sku-1").reserved_quantity == 0
        assert _reservation_rows(session, "sku-1") == []

    def test_release_unknown_id_returns_false(self, reservation_manager):
        assert reservation_manager.release(uuid4()) is False

    def test_release_of_expired_reservation_returns_false(
        self, reservation_manager, stock, session, deterministic_clock
    ):
        stock("sku-1", 10)
        reservation = reservation_manager.reserve("sku-1", 4, ttl_minutes=1)
        deterministic_clock.advance(minutes=2)

        assert reservation_manager.release(reservation.id) is False
        assert _reservation_rows(session, "sku-1") == []

    def test_release_by_order(self, reservation_manager, stock, session):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 2, order_id="o-1")
        reservation_manager.reserve("sku-1", 3, order_id="o-1")
        reservation_manager.reserve("sku-1", 1, order_id="o-2")

        assert reservation_manager.release(order_id="o-1") is True
        assert _record(session, "sku-1").reserved_quantity == 1

    def test_release_requires_a_key(self, reservation_manager):
        with pytest.raises(ValidationError):
            reservation_manager.release()


class TestReleaseAll:
    def test_release_all_by_cart_across_products(self, reservation_manager, stock, session):
        stock("sku-a", 5)
        stock("sku-b", 5)
        reservation_manager.reserve("sku-a", 2, cart_id="c-1")
        reservation_manager.reserve("sku-b", 3, cart_id="c-1")

        result = reservation_manager.release_all(cart_id="c-1", reason="Cart abandoned")

        assert result.released_count == 2
        assert result.total_quantity == 5
        assert _record(session, "sku-a").reserved_quantity == 0
        assert _record(session, "sku-b").reserved_quantity == 0

    def test_expired_rows_removed_but_not_counted(
        self, reservation_manager, stock, session, deterministic_clock
    ):
        stock("sku-1", 5)
        reservation_manager.reserve("sku-1", 2, order_id="o-1", ttl_minutes=1)
        reservation_manager.reserve("sku-1", 1, order_id="o-1", ttl_minutes=60)
        deterministic_clock.advance(minutes=5)

        result = reservation_manager.release_all(order_id="o-1")

        assert result.released_count == 1
        assert result.total_quantity == 1
        assert _reservation_rows(session, "sku-1") == []

    def test_requires_a_key(self, reservation_manager):
        with pytest.raises(ValidationError):
            reservation_manager.release_all()


class TestSweep:
    def test_sweep_removes_only_expired(self, reservation_manager, stock, session, deterministic_clock):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 2, ttl_minutes=5)
        keeper = reservation_manager.reserve("sku-1", 3, ttl_minutes=30)
        deterministic_clock.advance(minutes=10)

        result = reservation_manager.sweep_expired()

        assert result.released_count == 1
        assert result.total_quantity == 2
        assert result.products_affected == ("sku-1",)
        assert result.cutoff == deterministic_clock.now()
        assert [r.id for r in _reservation_rows(session, "sku-1")] == [keeper.id]
        assert _record(session, "sku-1").reserved_quantity == 3

    def test_second_sweep_is_a_noop(self, reservation_manager, stock, deterministic_clock):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 2, ttl_minutes=5)
        deterministic_clock.advance(minutes=10)

        reservation_manager.sweep_expired()
        result = reservation_manager.sweep_expired()

        assert result.released_count == 0
        assert result.products_affected == ()

    def test_sweep_writes_no_movements(self, reservation_manager, stock, session, deterministic_clock):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 2, ttl_minutes=5)
        deterministic_clock.advance(minutes=10)

        reservation_manager.sweep_expired()

        movements = session.execute(select(MovementRecord)).scalars().all()
        assert [m.movement_type for m in movements] == ["INITIAL_STOCK"]


class TestExtend:
    def test_extend_pushes_expiry(self, reservation_manager, stock, deterministic_clock):
        stock("sku-1", 10)
        reservation = reservation_manager.reserve("sku-1", 2, ttl_minutes=5)

        extended = reservation_manager.extend(reservation.id, 10)

        assert extended.expires_at == reservation.expires_at + timedelta(minutes=10)

    def test_extend_expired_raises(self, reservation_manager, stock, deterministic_clock):
        stock("sku-1", 10)
        reservation = reservation_manager.reserve("sku-1", 2, ttl_minutes=5)
        deterministic_clock.advance(minutes=5)

        with pytest.raises(ReservationNotFoundError):
            reservation_manager.extend(reservation.id, 10)

    def test_extend_unknown_raises(self, reservation_manager):
        with pytest.raises(ReservationNotFoundError):
            reservation_manager.extend(uuid4(), 10)

    def test_rejects_non_positive_minutes(self, reservation_manager):
        with pytest.raises(ValidationError):
            reservation_manager.extend(uuid4(), 0)


class TestConsume:
    def test_consume_by_order_writes_sale(self, reservation_manager, stock, session):
        stock("sku-a", 10)
        stock("sku-b", 4)
        reservation_manager.reserve("sku-a", 3, order_id="o-9")
        reservation_manager.reserve("sku-b", 4, order_id="o-9")

        snapshots = reservation_manager.consume(order_id="o-9", created_by=TEST_ACTOR)

        assert [(s.product_id, s.quantity, s.reserved_quantity) for s in snapshots] == [
            ("sku-a", 7, 0),
            ("sku-b", 0, 0),
        ]
        sale = session.execute(
            select(MovementRecord).where(
                MovementRecord.product_id == "sku-a",
                MovementRecord.movement_type == "SALE",
            )
        ).scalar_one()
        assert sale.quantity == 3
        assert sale.reference_type == "order"
        assert sale.reference_id == "o-9"
        assert sale.reason == "Reservation consumed"

    def test_consume_single_reservation(self, reservation_manager, stock, session):
        stock("sku-1", 10)
        reservation = reservation_manager.reserve("sku-1", 2)

        snapshots = reservation_manager.consume(reservation.id, created_by=TEST_ACTOR)

        assert snapshots[0].quantity == 8
        sale = session.execute(
            select(MovementRecord).where(MovementRecord.movement_type == "SALE")
        ).scalar_one()
        assert sale.reference_type == "reservation"
        assert sale.reference_id == str(reservation.id)

    def test_consume_twice_raises(self, reservation_manager, stock):
        stock("sku-1", 10)
        reservation_manager.reserve("sku-1", 2, order_id="o-1")
        reservation_manager.consume(order_id="o-1", created_by=TEST_ACTOR)

        with pytest.raises(ReservationNotFoundError):
            reservation_manager.consume(order_id="o-1", created_by=TEST_ACTOR)

    def test_consume_expired_raises(self, reservation_manager, stock, deterministic_clock):
        stock("sku-1", 10)
        reservation = reservation_manager.reserve("sku-1", 2, ttl_minutes=1)
        deterministic_clock.advance(minutes=1)

        with pytest.raises(ReservationNotFoundError):
            reservation_manager.consume(reservation.id, created_by=TEST_ACTOR)

    def test_consume_requires_a_key(self, reservation_manager):
        with pytest.raises(ValidationError):
            reservation_manager.consume(created_by=TEST_ACTOR)
