"""
AgreementSelector -- agreement snapshots and listings.

Builds ``AgreementInfo`` DTOs with their negotiation notes.  Listing
hides COMPLETED and CANCELLED agreements unless ``include_completed`` or
an explicit status filter asks for them.
"""

from uuid import UUID

from sqlalchemy import select

from marketplace_kernel.domain.dtos import AgreementFilter, AgreementInfo
from marketplace_kernel.domain.lifecycle import TERMINAL_AGREEMENT_STATUSES
from marketplace_kernel.domain.values import LogSubject
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.selectors.activity_log_selector import ActivityLogSelector
from marketplace_kernel.selectors.base import BaseSelector


class AgreementSelector(BaseSelector):
    """Read-side queries over service agreements."""

    def to_info(self, agreement: ServiceAgreement) -> AgreementInfo:
        notes = ActivityLogSelector(self.session, self.clock).entries(
            LogSubject.AGREEMENT, agreement.id
        )
        return AgreementInfo(
            id=agreement.id,
            service_offer_id=agreement.service_offer_id,
            associate_id=agreement.associate_id,
            location_id=agreement.location_id,
            agreed_amount=agreement.agreed_amount,
            agreed_start_time=agreement.agreed_start_time,
            estimated_completion_time=agreement.estimated_completion_time,
            specific_instructions=agreement.specific_instructions,
            agreed_deliverables=tuple(agreement.agreed_deliverables or ()),
            quality_requirements=tuple(agreement.quality_requirements or ()),
            cancellation_policy=agreement.cancellation_policy,
            agreement_status=agreement.agreement_status,
            associate_accepted_at=agreement.associate_accepted_at,
            location_approved_at=agreement.location_approved_at,
            approved_by=agreement.approved_by,
            actual_start_time=agreement.actual_start_time,
            actual_completion_time=agreement.actual_completion_time,
            final_amount_paid=agreement.final_amount_paid,
            cancelled_at=agreement.cancelled_at,
            cancelled_by=agreement.cancelled_by,
            cancellation_reason=agreement.cancellation_reason,
            version=agreement.version,
            negotiation_notes=notes,
        )

    def get(self, agreement_id: UUID) -> AgreementInfo | None:
        agreement = self.session.execute(
            select(ServiceAgreement)
            .where(ServiceAgreement.id == agreement_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if agreement is None:
            return None
        return self.to_info(agreement)

    def list_agreements(
        self,
        agreement_filter: AgreementFilter | None = None,
    ) -> list[AgreementInfo]:
        """Agreements matching the filter, newest first."""
        f = agreement_filter or AgreementFilter()
        stmt = select(ServiceAgreement)

        if f.associate_id is not None:
            stmt = stmt.where(ServiceAgreement.associate_id == f.associate_id)
        if f.location_id is not None:
            stmt = stmt.where(ServiceAgreement.location_id == f.location_id)
        if f.offer_id is not None:
            stmt = stmt.where(ServiceAgreement.service_offer_id == f.offer_id)

        if f.status is not None:
            stmt = stmt.where(ServiceAgreement.agreement_status == f.status)
        elif not f.include_completed:
            stmt = stmt.where(
                ServiceAgreement.agreement_status.not_in(
                    sorted(s.value for s in TERMINAL_AGREEMENT_STATUSES)
                )
            )

        stmt = stmt.order_by(
            ServiceAgreement.associate_accepted_at.desc(),
            ServiceAgreement.id,
        ).execution_options(populate_existing=True)

        return [self.to_info(a) for a in self.session.execute(stmt).scalars()]
