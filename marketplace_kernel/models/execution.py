"""
Module: marketplace_kernel.models.execution
Responsibility: ORM persistence for service executions -- the progress
    record of an ACTIVE agreement.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One execution per agreement (uq_execution_agreement).
    - 0 <= completion_percentage <= 100 (ck_execution_percentage).
    - satisfaction_rating is NULL or 1..5 (ck_execution_rating).
    - hours_logged and expenses_incurred only grow, via SQL expression
      updates so concurrent writers never lose an increment.
    - Once completed_at is set no tracker mutation matches the row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase, UUIDString
from marketplace_kernel.db.types import ExternalId, Hours, Money


class ServiceExecution(TrackedBase):
    """
    Execution record created when an agreement is started.

    Guarantees:
        - started_at is set at creation.
        - log_seq is the position of the last activity log entry.
    """

    __tablename__ = "service_executions"

    __table_args__ = (
        CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_execution_percentage",
        ),
        CheckConstraint(
            "satisfaction_rating IS NULL OR "
            "(satisfaction_rating >= 1 AND satisfaction_rating <= 5)",
            name="ck_execution_rating",
        ),
    )

    service_agreement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("service_agreements.id"),
        unique=True,
        nullable=False,
    )

    associate_id: Mapped[str] = mapped_column(ExternalId, nullable=False, index=True)

    started_at: Mapped[datetime] = mapped_column(nullable=False)
    paused_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    completion_percentage: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    current_phase: Mapped[str | None] = mapped_column(String(100), nullable=True)

    hours_logged: Mapped[Decimal] = mapped_column(
        Hours, default=Decimal("0"), nullable=False
    )
    expenses_incurred: Mapped[Decimal] = mapped_column(
        Money, default=Decimal("0"), nullable=False
    )

    satisfaction_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)

    log_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ServiceExecution {self.id}: {self.completion_percentage}% "
            f"agreement={self.service_agreement_id}>"
        )

    @property
    def is_closed(self) -> bool:
        return self.completed_at is not None
