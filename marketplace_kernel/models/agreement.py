"""
Module: marketplace_kernel.models.agreement
Responsibility: ORM persistence for service agreements -- one associate's
    application to one offer and its negotiated terms through completion.
Architecture position: Kernel > Models.  May import from db/, domain/, and
    exceptions.py.

Invariants enforced:
    - At most one agreement per (service_offer_id, associate_id)
      (uq_agreement_offer_associate).
    - Status moves only along AGREEMENT_ACTIONS, applied as a
      compare-and-set on agreement_status.
    - COMPLETED and CANCELLED agreements are immutable (ORM before_update
      guard).

Failure modes:
    - IntegrityError on a duplicate (offer, associate) insert; translated to
      DuplicateApplicationError by ApplicationService.
    - ImmutabilityViolationError on an ORM update of a terminal agreement.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from marketplace_kernel.db.base import EnumString, TrackedBase, UUIDString
from marketplace_kernel.db.types import ExternalId, LongText, Money
from marketplace_kernel.domain.lifecycle import (
    TERMINAL_AGREEMENT_STATUSES,
    AgreementStatus,
)
from marketplace_kernel.exceptions import ImmutabilityViolationError


class ServiceAgreement(TrackedBase):
    """
    Agreement between an associate and a location for one offer.

    Guarantees:
        - agreement_status starts at PROPOSED.
        - note_seq is the position of the last negotiation note appended.
    """

    __tablename__ = "service_agreements"

    __table_args__ = (
        UniqueConstraint(
            "service_offer_id",
            "associate_id",
            name="uq_agreement_offer_associate",
        ),
        Index("idx_agreement_associate", "associate_id", "agreement_status"),
        Index("idx_agreement_location", "location_id", "agreement_status"),
    )

    service_offer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("service_offers.id"),
        nullable=False,
    )

    associate_id: Mapped[str] = mapped_column(ExternalId, nullable=False)
    location_id: Mapped[str] = mapped_column(ExternalId, nullable=False)

    # Terms
    agreed_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    agreed_start_time: Mapped[datetime] = mapped_column(nullable=False)
    estimated_completion_time: Mapped[datetime] = mapped_column(nullable=False)
    specific_instructions: Mapped[str | None] = mapped_column(LongText, nullable=True)
    agreed_deliverables: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    quality_requirements: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    cancellation_policy: Mapped[str | None] = mapped_column(LongText, nullable=True)

    agreement_status: Mapped[AgreementStatus] = mapped_column(
        EnumString(AgreementStatus),
        default=AgreementStatus.PROPOSED,
        nullable=False,
    )

    # Lifecycle timestamps and actors
    associate_accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    location_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(ExternalId, nullable=True)
    actual_start_time: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_completion_time: Mapped[datetime | None] = mapped_column(nullable=True)
    final_amount_paid: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(ExternalId, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(LongText, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Position of the last negotiation note
    note_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<ServiceAgreement {self.id}: {self.agreement_status.value}>"

    @property
    def is_terminal(self) -> bool:
        return self.agreement_status in TERMINAL_AGREEMENT_STATUSES


@event.listens_for(ServiceAgreement, "before_update")
def prevent_terminal_agreement_update(mapper, connection, target):
    """Reject ORM updates to an agreement that was already terminal.

    Raises: ImmutabilityViolationError when the persisted status (before
        this flush) is COMPLETED or CANCELLED.
    """
    history = get_history(target, "agreement_status")
    previous = history.deleted[0] if history.deleted else target.agreement_status
    if AgreementStatus(previous) in TERMINAL_AGREEMENT_STATUSES:
        raise ImmutabilityViolationError(
            "ServiceAgreement",
            str(target.id),
            f"agreement is {AgreementStatus(previous).value}",
        )
