"""
Module: marketplace_kernel.models.offer
Responsibility: ORM persistence for service offers -- a location's posting
    of work against a catalog service, with terms, eligibility rules, and a
    bounded number of applicant slots.
Architecture position: Kernel > Models.  May import from db/, domain/, and
    exceptions.py.

Invariants enforced:
    - 0 <= current_applicants <= max_applicants (ck_offer_capacity), and
      max_applicants >= 1 (ck_offer_max_applicants).
    - current_applicants is only changed by CapacityReconciler through
      conditional UPDATEs; every such write bumps ``version``.
    - Offers are never deleted; cancellation is a status.

Failure modes:
    - IntegrityError if a write would break the capacity check constraint.
    - CapacityExceededError / OfferNotOpenError raised by the reconciler when
      a conditional claim matches zero rows.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import EnumString, TrackedBase, UUIDString
from marketplace_kernel.db.types import ExternalId, Hours, LongText, Money
from marketplace_kernel.domain.lifecycle import OfferStatus
from marketplace_kernel.domain.values import PaymentStructure, Urgency


class ServiceOffer(TrackedBase):
    """
    A location's posted request for a service.

    Contract:
        Status moves only along OFFER_TRANSITIONS.  Capacity and status
        changes caused by applications go through the capacity reconciler.

    Guarantees:
        - offer_status defaults to OPEN and current_applicants to 0.
        - posted_at comes from the injected clock, not the database.
    """

    __tablename__ = "service_offers"

    __table_args__ = (
        CheckConstraint(
            "current_applicants >= 0 AND current_applicants <= max_applicants",
            name="ck_offer_capacity",
        ),
        CheckConstraint("max_applicants >= 1", name="ck_offer_max_applicants"),
        Index("idx_offer_location_status", "location_id", "offer_status"),
        Index("idx_offer_status_expires", "offer_status", "expires_at"),
    )

    service_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("services.id"),
        nullable=False,
    )

    location_id: Mapped[str] = mapped_column(ExternalId, nullable=False)

    offer_title: Mapped[str] = mapped_column(String(200), nullable=False)

    custom_instructions: Mapped[str | None] = mapped_column(LongText, nullable=True)

    # Scheduling window
    preferred_start_date: Mapped[datetime] = mapped_column(nullable=False)
    latest_start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    must_complete_by: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Commercial terms
    offered_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    payment_structure: Mapped[PaymentStructure] = mapped_column(
        EnumString(PaymentStructure),
        default=PaymentStructure.FIXED,
        nullable=False,
    )

    hourly_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    max_hours: Mapped[Decimal | None] = mapped_column(Hours, nullable=True)

    expense_reimbursement: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    custom_duration_estimate: Mapped[Decimal | None] = mapped_column(
        Hours, nullable=True
    )

    # Eligibility
    preferred_associates: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    excluded_associates: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    minimum_experience_level: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    required_location_experience: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    urgency: Mapped[Urgency] = mapped_column(
        EnumString(Urgency),
        default=Urgency.ROUTINE,
        nullable=False,
    )

    # Capacity
    max_applicants: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    current_applicants: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    offer_status: Mapped[OfferStatus] = mapped_column(
        EnumString(OfferStatus),
        default=OfferStatus.OPEN,
        nullable=False,
    )

    posted_by: Mapped[str] = mapped_column(ExternalId, nullable=False)
    posted_at: Mapped[datetime] = mapped_column(nullable=False)

    internal_notes: Mapped[str | None] = mapped_column(LongText, nullable=True)

    # Bumped by every capacity or status write
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ServiceOffer {self.id}: {self.offer_status.value} "
            f"{self.current_applicants}/{self.max_applicants}>"
        )

    @property
    def is_full(self) -> bool:
        return self.current_applicants >= self.max_applicants

    def is_lapsed(self, now: datetime) -> bool:
        """True once the application window has passed."""
        return self.expires_at is not None and now > self.expires_at
