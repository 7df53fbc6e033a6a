"""
ApplicationService -- application intake for service offers.

Responsibility:
    Turns an associate's application into a PROPOSED agreement holding
    one of the offer's applicant slots, after checking state, expiry,
    duplicates, capacity, eligibility, the rate band and the start time.

Architecture position:
    Kernel > Services -- imperative shell.  Called by MarketplaceService,
    which owns the transaction.

Invariants enforced:
    - Checks run in a fixed order: offer exists, window not lapsed, offer
      OPEN or PENDING, no prior agreement, capacity, eligibility, rate
      band, start time, duration.  A PENDING offer is full, so it fails
      the capacity check rather than the status check.
    - The slot claim and the agreement INSERT happen in one transaction.
      A lost slot race raises CapacityExceededError, a lost uniqueness race
      raises DuplicateApplicationError; either way the caller rolls back
      and nothing is persisted.
    - A lapsed OPEN offer is flipped to EXPIRED before OfferExpiredError is
      raised.  That error carries ``preserves_writes`` so the flip is
      committed even though the application fails.  An offer already
      stored as EXPIRED fails the same way.

Failure modes:
    - OfferNotFoundError, OfferExpiredError, OfferNotOpenError,
      DuplicateApplicationError, CapacityExceededError, NotEligibleError,
      OutOfRangeError, InvalidStartTimeError, ValidationError.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace_kernel.db.types import round_money, to_decimal
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import AgreementInfo, ProposedTerms
from marketplace_kernel.domain.eligibility import (
    EMPTY_PROFILE,
    AssociateProfile,
    evaluate_eligibility,
)
from marketplace_kernel.domain.lifecycle import AgreementStatus, OfferStatus
from marketplace_kernel.domain.negotiation import (
    RateBand,
    estimate_completion,
    resolve_duration_hours,
    start_time_acceptable,
)
from marketplace_kernel.domain.policy import DEFAULT_POLICY, MarketplacePolicy
from marketplace_kernel.exceptions import (
    CapacityExceededError,
    DuplicateApplicationError,
    InvalidStartTimeError,
    NotEligibleError,
    OfferExpiredError,
    OfferNotFoundError,
    OfferNotOpenError,
    OutOfRangeError,
    ValidationError,
)
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.offer import ServiceOffer
from marketplace_kernel.selectors.agreement_selector import AgreementSelector
from marketplace_kernel.selectors.offer_selector import eligibility_terms
from marketplace_kernel.selectors.service_catalog_selector import ServiceCatalogSelector
from marketplace_kernel.services.activity_log import ActivityLogService
from marketplace_kernel.services.base import BaseService
from marketplace_kernel.services.capacity_reconciler import CapacityReconciler
from marketplace_kernel.services.offer_service import OfferService

logger = get_logger("services.application")


def check_rate_band(
    agreed_amount: Decimal,
    offered_amount: Decimal,
    variance: Decimal,
) -> None:
    """Raise OutOfRangeError unless the amount is inside the band."""
    band = RateBand(offered_amount, variance)
    if not band.contains(agreed_amount):
        raise OutOfRangeError(
            str(agreed_amount),
            str(offered_amount),
            str(band.min_amount),
            str(band.max_amount),
        )


def coerce_amount(field: str, value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except (TypeError, ArithmeticError) as exc:
        raise ValidationError(field, "must be a decimal amount", value) from exc


class ApplicationService(BaseService):
    """
    Application intake.

    Contract:
        ``apply_for_offer`` either returns the new PROPOSED agreement with
        the offer's counter incremented, or raises; on raise the caller
        must roll back (or commit, for ``preserves_writes`` errors).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: MarketplacePolicy | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or DEFAULT_POLICY
        self._offers = OfferService(session, self.clock, self.policy)
        self._reconciler = CapacityReconciler(session, self.clock)
        self._log = ActivityLogService(session, self.clock)
        self._agreements = AgreementSelector(session, self.clock)
        self._catalog = ServiceCatalogSelector(session, self.clock)

    def apply_for_offer(
        self,
        offer_id: UUID,
        associate_id: str,
        terms: ProposedTerms,
        profile: AssociateProfile | None = None,
    ) -> AgreementInfo:
        now = self.clock.now()
        profile = profile or EMPTY_PROFILE

        offer = self.session.execute(
            select(ServiceOffer)
            .where(ServiceOffer.id == offer_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if offer is None:
            raise OfferNotFoundError(str(offer_id))

        if offer.offer_status == OfferStatus.OPEN and offer.is_lapsed(now):
            self._offers.expire_if_lapsed(offer_id)
            self._reject("expired", offer_id, associate_id)
            raise OfferExpiredError(str(offer_id), offer.expires_at.isoformat())

        if offer.offer_status == OfferStatus.EXPIRED:
            # Already flipped by a listing or the sweep.
            self._reject("expired", offer_id, associate_id)
            raise OfferExpiredError(
                str(offer_id),
                offer.expires_at.isoformat() if offer.expires_at else "unknown",
            )

        # PENDING means every slot is held; that is reported as capacity below.
        if offer.offer_status not in (OfferStatus.OPEN, OfferStatus.PENDING):
            self._reject("not_open", offer_id, associate_id)
            raise OfferNotOpenError(str(offer_id), offer.offer_status.value)

        existing = self.session.execute(
            select(ServiceAgreement.id).where(
                ServiceAgreement.service_offer_id == offer_id,
                ServiceAgreement.associate_id == associate_id,
            )
        ).first()
        if existing is not None:
            self._reject("duplicate", offer_id, associate_id)
            raise DuplicateApplicationError(str(offer_id), associate_id)

        # Optimistic pre-check; claim_slot below is authoritative.
        held = self.session.execute(
            select(func.count())
            .select_from(ServiceAgreement)
            .where(
                ServiceAgreement.service_offer_id == offer_id,
                ServiceAgreement.agreement_status != AgreementStatus.CANCELLED,
            )
        ).scalar_one()
        if offer.offer_status == OfferStatus.PENDING or held >= offer.max_applicants:
            self._reject("capacity", offer_id, associate_id)
            raise CapacityExceededError(
                str(offer_id), offer.max_applicants, offer.current_applicants
            )

        service = self._catalog.get(offer.service_id)
        verdict = evaluate_eligibility(
            eligibility_terms(offer, service), associate_id, profile
        )
        if not verdict.eligible:
            self._reject("not_eligible", offer_id, associate_id)
            raise NotEligibleError(
                str(offer_id),
                associate_id,
                tuple(r.value for r in verdict.reasons),
            )

        agreed_amount = coerce_amount("agreed_amount", terms.agreed_amount)
        check_rate_band(agreed_amount, offer.offered_amount, self.policy.max_rate_variance)

        if terms.agreed_start_time.tzinfo is None:
            raise ValidationError(
                "agreed_start_time", "must be timezone-aware", terms.agreed_start_time
            )
        if not start_time_acceptable(terms.agreed_start_time, now):
            raise InvalidStartTimeError(
                terms.agreed_start_time.isoformat(), now.isoformat()
            )

        override = None
        if terms.duration_hours is not None:
            override = coerce_amount("duration_hours", terms.duration_hours)
            if override <= 0:
                raise ValidationError("duration_hours", "must be positive", override)
        duration = resolve_duration_hours(
            override,
            offer.custom_duration_estimate,
            service.estimated_duration_hours,
        )

        self._reconciler.claim_slot(offer_id)

        agreement = ServiceAgreement(
            service_offer_id=offer_id,
            associate_id=associate_id,
            location_id=offer.location_id,
            agreed_amount=round_money(agreed_amount),
            agreed_start_time=terms.agreed_start_time,
            estimated_completion_time=estimate_completion(terms.agreed_start_time, duration),
            specific_instructions=terms.specific_instructions,
            agreed_deliverables=list(terms.agreed_deliverables),
            quality_requirements=list(terms.quality_requirements),
            cancellation_policy=terms.cancellation_policy,
            agreement_status=AgreementStatus.PROPOSED,
            associate_accepted_at=now,
            created_by=associate_id,
            version=1,
            note_seq=0,
        )
        self.session.add(agreement)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # The caller rolls back the whole transaction, claim included.
            logger.info(
                "application_duplicate_race",
                extra={"offer_id": str(offer_id), "associate_id": associate_id},
            )
            raise DuplicateApplicationError(str(offer_id), associate_id) from exc

        if terms.proposal_message:
            self._log.append_negotiation_note(
                agreement.id,
                associate_id,
                terms.proposal_message,
                action="propose",
                proposed_amount=agreed_amount,
            )

        logger.info(
            "application_accepted",
            extra={
                "offer_id": str(offer_id),
                "agreement_id": str(agreement.id),
                "associate_id": associate_id,
                "agreed_amount": str(agreed_amount),
            },
        )
        return self._agreements.get(agreement.id)

    def _reject(self, reason: str, offer_id: UUID, associate_id: str) -> None:
        logger.info(
            "application_rejected",
            extra={
                "offer_id": str(offer_id),
                "associate_id": associate_id,
                "reason": reason,
            },
        )
