"""
Module: inventory_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the CQRS-lite split, answering stock, ledger,
    reservation and alert queries without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (DTOs, status rules, clock).  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Live reservation totals are always recomputed from reservation rows
      with expires_at > now; the cached reserved_quantity column is never
      trusted on the read path.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.db.base import Base
from inventory_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.

    Non-goals:
        - BaseSelector does NOT define any query methods.
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
