"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-side
    service.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The caller
      (InventoryOrchestrator, BulkAdjustmentProcessor's caller, or a test
      harness) owns commit/rollback, so read-validate-write-append is one
      atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.db.base import Base
from inventory_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a ``Session`` from the caller and persists changes with
        ``session.flush()`` inside the caller's transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-side projections -- those belong in
          ``inventory_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig()
