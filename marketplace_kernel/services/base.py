"""
BaseService -- abstract base for all kernel write services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write service.  Services receive a SQLAlchemy ``Session`` and an
    injected ``Clock``; they persist with ``session.flush()`` and never
    commit.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.
      ``MarketplaceService`` (or a test harness) owns commit/rollback.
    - Time: services read the injected clock, never ``datetime.now()``.

Failure modes:
    - If a subclass calls ``session.commit()`` the all-or-nothing
      guarantee of application intake (slot claim plus agreement insert)
      is broken.
"""

from abc import ABC

from sqlalchemy.orm import Session

from marketplace_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel write services.

    Contract:
        Accepts a ``Session`` from the caller and uses ``session.flush()``
        to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-side DTO queries; those live in
          ``marketplace_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source.  Defaults to SystemClock.
        """
        self.session = session
        self.clock = clock or SystemClock()
