"""
Module: marketplace_kernel.models.activity_log
Responsibility: ORM persistence for the append-only activity log that
    records negotiation notes on agreements and milestones, issues, time,
    expenses, reports, checkpoints and feedback on executions.
Architecture position: Kernel > Models.  May import from db/, domain/, and
    exceptions.py.

Invariants enforced:
    - (subject_type, subject_id, seq) is unique (uq_activity_subject_seq).
      seq is taken from the owning row's counter, bumped atomically before
      the INSERT, so positions are gap-free per subject.
    - Entries are never updated or deleted (ORM before_update and
      before_delete listeners).

Failure modes:
    - ImmutabilityViolationError on any ORM UPDATE or DELETE of an entry.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import Base, EnumString, UUIDString
from marketplace_kernel.db.types import ExternalId
from marketplace_kernel.domain.values import LogEntryKind, LogSubject
from marketplace_kernel.exceptions import ImmutabilityViolationError


class ActivityLogEntry(Base):
    """
    One immutable entry in an agreement's or execution's activity log.

    Guarantees:
        - recorded_at comes from the injected clock.
        - payload is a JSON object whose keys depend on entry_kind.
    """

    __tablename__ = "activity_log_entries"

    __table_args__ = (
        UniqueConstraint(
            "subject_type",
            "subject_id",
            "seq",
            name="uq_activity_subject_seq",
        ),
        Index("idx_activity_subject", "subject_type", "subject_id"),
    )

    subject_type: Mapped[LogSubject] = mapped_column(
        EnumString(LogSubject), nullable=False
    )
    subject_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entry_kind: Mapped[LogEntryKind] = mapped_column(
        EnumString(LogEntryKind), nullable=False
    )

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)
    author_id: Mapped[str] = mapped_column(ExternalId, nullable=False)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ActivityLogEntry {self.subject_type.value}:{self.subject_id}"
            f"#{self.seq} {self.entry_kind.value}>"
        )


@event.listens_for(ActivityLogEntry, "before_update")
def prevent_log_entry_update(mapper, connection, target):
    """Activity log entries are append-only."""
    raise ImmutabilityViolationError(
        "ActivityLogEntry", str(target.id), "activity log entries are append-only"
    )


@event.listens_for(ActivityLogEntry, "before_delete")
def prevent_log_entry_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        "ActivityLogEntry", str(target.id), "activity log entries cannot be deleted"
    )
