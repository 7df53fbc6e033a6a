"""
Module: marketplace_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors form the "Q" side of the CQRS-lite split: they turn ORM rows
    into frozen DTOs and answer listing queries without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (for DTOs).  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Fresh reads: queries use populate_existing so that rows changed by
      conditional UPDATEs earlier in the same transaction are re-read.
"""

from abc import ABC

from sqlalchemy.orm import Session

from marketplace_kernel.domain.clock import Clock, SystemClock


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source for derived fields such as an offer's
                effective status.  Defaults to SystemClock.
        """
        self.session = session
        self.clock = clock or SystemClock()
