"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (checkout flows, admin tools, batch jobs) must react
to failures precisely: a checkout shows "not enough stock", an admin bulk
job reports the failing row, a request handler retries on contention.
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        orchestrator.reserve(product_id, quantity=2, reason="checkout")
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ValidationError
    |   +-- InvalidMovementError
    |   +-- InvalidQuantityError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- NotFoundError
    |   +-- InventoryRecordNotFoundError
    |   +-- ReservationNotFoundError
    |   +-- BatchNotFoundError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
    |   +-- LedgerIntegrityError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|----------------------------------------
Stock           | INSUFFICIENT_STOCK           | Request exceeds available / on-hand
----------------|------------------------------|----------------------------------------
Validation      | INVALID_MOVEMENT             | Movement triple disagrees with direction
                | INVALID_QUANTITY             | Non-positive or non-integer quantity
----------------|------------------------------|----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT         | Unit of work lost a race (retryable)
----------------|------------------------------|----------------------------------------
Not found       | INVENTORY_RECORD_NOT_FOUND   | Direct lookup of an unknown product
                | RESERVATION_NOT_FOUND        | Reservation gone or expired
                | BATCH_NOT_FOUND              | Unknown adjustment batch id
----------------|------------------------------|----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION       | UPDATE/DELETE of a movement row
----------------|------------------------------|----------------------------------------
Audit           | LEDGER_INTEGRITY_BROKEN      | Movement chain does not reconcile
----------------|------------------------------|----------------------------------------
Configuration   | INVALID_CONFIGURATION        | Config value out of range

===============================================================================
HANDLING PATTERNS
===============================================================================

1. InsufficientStockError and ValidationError are terminal. Nothing was
   persisted; report to the caller.

2. ConcurrencyConflictError is transient. The orchestrator already retries
   the whole unit of work a bounded number of times; when it still escapes,
   the caller may retry the operation.

3. ReservationNotFoundError is a no-op for release (release returns False)
   but an error for direct lookups (get, extend).
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Stock-related exceptions


class StockError(InventoryKernelError):
    """Base exception for stock business-rule violations."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds what the product can supply."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# Validation exceptions


class ValidationError(InventoryKernelError):
    """Malformed request or record. Indicates a caller programming error."""

    code: str = "VALIDATION_ERROR"


class InvalidMovementError(ValidationError):
    """Movement quantities disagree with the direction of its type."""

    code: str = "INVALID_MOVEMENT"

    def __init__(
        self,
        movement_type: str,
        quantity: int,
        previous_quantity: int,
        new_quantity: int,
        reason: str,
    ):
        self.movement_type = movement_type
        self.quantity = quantity
        self.previous_quantity = previous_quantity
        self.new_quantity = new_quantity
        self.reason = reason
        super().__init__(
            f"Invalid {movement_type} movement "
            f"(quantity={quantity}, previous={previous_quantity}, "
            f"new={new_quantity}): {reason}"
        )


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive integer where one is required."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"{field_name} must be a positive integer, got {value!r}")


# Concurrency exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """The atomic unit could not commit due to contention. Safe to retry."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id} "
            f"after {attempts} attempt(s): entity was modified by another transaction"
        )


# Not-found exceptions


class NotFoundError(InventoryKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class InventoryRecordNotFoundError(NotFoundError):
    """No inventory record exists for the product."""

    code: str = "INVENTORY_RECORD_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Inventory record not found for product {product_id}")


class ReservationNotFoundError(NotFoundError):
    """Reservation does not exist or has already expired."""

    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation not found or expired: {reservation_id}")


class BatchNotFoundError(NotFoundError):
    """Adjustment batch with the given id was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Adjustment batch not found: {batch_id}")


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(InventoryKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class LedgerIntegrityError(AuditError):
    """The movement chain for a product does not reconcile."""

    code: str = "LEDGER_INTEGRITY_BROKEN"

    def __init__(self, product_id: str, sequence: int | None, expected: int, actual: int):
        self.product_id = product_id
        self.sequence = sequence
        self.expected = expected
        self.actual = actual
        where = f"at sequence {sequence}" if sequence is not None else "at head"
        super().__init__(
            f"Ledger chain broken for product {product_id} {where}: "
            f"expected {expected}, found {actual}"
        )


# Configuration exceptions


class ConfigurationError(InventoryKernelError):
    """Configuration value is missing or out of range."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"Invalid configuration for {field_name}: {message}")
