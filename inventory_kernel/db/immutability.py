"""
ORM-Level Immutability Enforcement for the movement ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is the audit trail of every stock change.  A movement
that could be edited or removed after the fact would make the chain
previous_quantity -> new_quantity unverifiable, and with it every figure
derived from it.  Corrections are new movements, never edits.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept them:

    session.flush()
         |
         v
    [before_update event] --> _check_movement_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_movement_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk statements (``session.execute(update(MovementRecord)...)``) never fire
mapper events, so a ``do_orm_execute`` hook rejects ORM-enabled UPDATE and
DELETE statements against the movement table as well.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable          | Why
--------------------|-------------------------|--------------------------------
MovementRecord      | ALWAYS (from creation)  | Ledger rows are the audit trail

Inventory records and reservations are mutable working state; they are not
protected here.

===============================================================================
USAGE
===============================================================================

Called during startup (the orchestrator and create_tables do it):

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    from inventory_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_movement_update(mapper, connection, target):
    """Prevent any update to a persisted movement."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "MovementRecord",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="MovementRecord",
        entity_id=str(target.id),
        reason="Inventory movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    """Prevent deletion of a persisted movement."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "MovementRecord",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="MovementRecord",
        entity_id=str(target.id),
        reason="Inventory movements are append-only and cannot be deleted",
    )


def _check_bulk_movement_statement(orm_execute_state: ORMExecuteState):
    """Reject ORM-enabled bulk UPDATE/DELETE against the movement table."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from inventory_kernel.models.movement import MovementRecord

    mapper = orm_execute_state.bind_mapper
    if mapper is None or mapper.class_ is not MovementRecord:
        return

    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "MovementRecord",
            "entity_id": "*",
            "operation": f"BULK {operation}",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="MovementRecord",
        entity_id="*",
        reason=f"Bulk {operation} of inventory movements is not permitted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already present are not added twice.
    """
    from inventory_kernel.models.movement import MovementRecord

    _safe_add_listener(MovementRecord, "before_update", _check_movement_update)
    _safe_add_listener(MovementRecord, "before_delete", _check_movement_delete)
    _safe_add_listener(Session, "do_orm_execute", _check_bulk_movement_statement)


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove ``listener_fn`` if it is attached; no-op otherwise."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from inventory_kernel.models.movement import MovementRecord

    _safe_remove_listener(MovementRecord, "before_update", _check_movement_update)
    _safe_remove_listener(MovementRecord, "before_delete", _check_movement_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_movement_statement)
