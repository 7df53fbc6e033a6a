"""
OfferSelector -- offer snapshots and the offer listing query.

Responsibility:
    Builds ``OfferInfo`` DTOs (including the derived ``effective_status``)
    and answers ``list_offers`` filters: location, status, urgency,
    expiry, and per-associate eligibility.

Architecture position:
    Kernel > Selectors -- read-only.

Invariants enforced:
    - Without ``include_expired``: offers whose ``expires_at`` has passed
      are excluded unless the EXPIRED status is asked for, and when no
      status filter is given stored EXPIRED offers are excluded too.
    - Ordering: urgency (EMERGENCY first) then ``posted_at`` newest first.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, or_, select

from marketplace_kernel.domain.dtos import OfferFilter, OfferInfo, ServiceInfo
from marketplace_kernel.domain.eligibility import (
    EMPTY_PROFILE,
    AssociateProfile,
    EligibilityTerms,
    is_eligible,
)
from marketplace_kernel.domain.lifecycle import OfferStatus
from marketplace_kernel.domain.values import Urgency
from marketplace_kernel.models.offer import ServiceOffer
from marketplace_kernel.models.service import Service
from marketplace_kernel.selectors.base import BaseSelector

_URGENCY_ORDER = case(
    {u.value: u.rank for u in Urgency},
    value=ServiceOffer.urgency,
    else_=0,
)


def effective_status(offer: ServiceOffer, now: datetime) -> OfferStatus:
    """Stored status, except a lapsed OPEN offer reads as EXPIRED."""
    if offer.offer_status == OfferStatus.OPEN and offer.is_lapsed(now):
        return OfferStatus.EXPIRED
    return offer.offer_status


def eligibility_terms(
    offer: ServiceOffer, service: Service | ServiceInfo | None
) -> EligibilityTerms:
    return EligibilityTerms(
        location_id=offer.location_id,
        preferred_associates=tuple(offer.preferred_associates or ()),
        excluded_associates=tuple(offer.excluded_associates or ()),
        minimum_experience_level=offer.minimum_experience_level,
        required_location_experience=offer.required_location_experience,
        required_certifications=tuple(
            (service.required_certifications if service is not None else None) or ()
        ),
    )


class OfferSelector(BaseSelector):
    """Read-side queries over service offers."""

    def to_info(self, offer: ServiceOffer, now: datetime | None = None) -> OfferInfo:
        now = now or self.clock.now()
        return OfferInfo(
            id=offer.id,
            service_id=offer.service_id,
            location_id=offer.location_id,
            offer_title=offer.offer_title,
            custom_instructions=offer.custom_instructions,
            preferred_start_date=offer.preferred_start_date,
            latest_start_date=offer.latest_start_date,
            must_complete_by=offer.must_complete_by,
            expires_at=offer.expires_at,
            offered_amount=offer.offered_amount,
            payment_structure=offer.payment_structure,
            hourly_rate=offer.hourly_rate,
            max_hours=offer.max_hours,
            expense_reimbursement=offer.expense_reimbursement,
            custom_duration_estimate=offer.custom_duration_estimate,
            preferred_associates=tuple(offer.preferred_associates or ()),
            excluded_associates=tuple(offer.excluded_associates or ()),
            minimum_experience_level=offer.minimum_experience_level,
            required_location_experience=offer.required_location_experience,
            urgency=offer.urgency,
            max_applicants=offer.max_applicants,
            current_applicants=offer.current_applicants,
            offer_status=offer.offer_status,
            effective_status=effective_status(offer, now),
            posted_by=offer.posted_by,
            posted_at=offer.posted_at,
            internal_notes=offer.internal_notes,
            version=offer.version,
        )

    def get(self, offer_id: UUID) -> OfferInfo | None:
        offer = self.session.execute(
            select(ServiceOffer)
            .where(ServiceOffer.id == offer_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if offer is None:
            return None
        return self.to_info(offer)

    def list_offers(
        self,
        offer_filter: OfferFilter | None = None,
        profile: AssociateProfile | None = None,
    ) -> list[OfferInfo]:
        """
        Offers matching the filter, most urgent and newest first.

        With ``offer_filter.associate_id`` set, offers the associate may
        not apply to are dropped using ``profile`` (empty profile when
        omitted).
        """
        f = offer_filter or OfferFilter()
        now = self.clock.now()

        stmt = select(ServiceOffer, Service).join(
            Service, Service.id == ServiceOffer.service_id
        )

        if f.location_id is not None:
            stmt = stmt.where(ServiceOffer.location_id == f.location_id)

        if f.status is not None:
            stmt = stmt.where(ServiceOffer.offer_status == f.status)
        elif not f.include_expired:
            stmt = stmt.where(ServiceOffer.offer_status != OfferStatus.EXPIRED)

        if f.urgency is not None:
            stmt = stmt.where(ServiceOffer.urgency == f.urgency)

        if not f.include_expired and f.status != OfferStatus.EXPIRED:
            stmt = stmt.where(
                or_(ServiceOffer.expires_at.is_(None), ServiceOffer.expires_at >= now)
            )

        stmt = stmt.order_by(
            _URGENCY_ORDER.desc(),
            ServiceOffer.posted_at.desc(),
            ServiceOffer.id,
        ).execution_options(populate_existing=True)

        infos: list[OfferInfo] = []
        for offer, service in self.session.execute(stmt):
            if f.associate_id is not None and not is_eligible(
                eligibility_terms(offer, service),
                f.associate_id,
                profile or EMPTY_PROFILE,
            ):
                continue
            infos.append(self.to_info(offer, now))
        return infos

    def lapsed_open_offer_ids(self, now: datetime | None = None) -> list[UUID]:
        """OPEN offers whose application window has passed."""
        now = now or self.clock.now()
        return list(
            self.session.execute(
                select(ServiceOffer.id).where(
                    ServiceOffer.offer_status == OfferStatus.OPEN,
                    ServiceOffer.expires_at.is_not(None),
                    ServiceOffer.expires_at < now,
                )
            ).scalars()
        )
