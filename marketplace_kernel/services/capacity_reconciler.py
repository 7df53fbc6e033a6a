"""
CapacityReconciler -- applicant slot accounting and offer status derivation.

Responsibility:
    Owns every write to ``ServiceOffer.current_applicants`` and every
    status change of an offer driven by applications and agreements.
    Claims a slot when an application is accepted for review, releases it
    when an agreement is rejected, cancelled or completed, and re-derives
    OPEN/PENDING from the counter.

Architecture position:
    Kernel > Services -- imperative shell.  Called by ApplicationService,
    AgreementService and OfferService inside the caller's transaction.

Invariants enforced:
    - 0 <= current_applicants <= max_applicants.  A claim is a single
      conditional UPDATE guarded by ``offer_status = OPEN AND
      current_applicants < max_applicants``; the database re-evaluates the
      guard after any concurrent writer commits, so two racing claims for
      the last slot cannot both match.
    - current_applicants equals the number of agreements in PROPOSED,
      ACCEPTED or ACTIVE (``verify_offer``).
    - Offer status changes only along OFFER_TRANSITIONS.
    - Scope is one offer row: no process-wide counter or lock exists.

Failure modes:
    - OfferNotFoundError if the offer row is missing.
    - OfferNotOpenError if a claim finds the offer neither OPEN nor PENDING.
    - CapacityExceededError (retryable) if a claim finds the offer full
      (including a racing claim that just moved it to PENDING).
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import case, func, literal, select, update

from marketplace_kernel.domain.lifecycle import (
    BINDING_STATUSES,
    OFFER_TRANSITIONS,
    REOPENABLE_OFFER_STATUSES,
    SLOT_HOLDING_STATUSES,
    OfferStatus,
)
from marketplace_kernel.exceptions import (
    CapacityExceededError,
    OfferNotFoundError,
    OfferNotOpenError,
)
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.offer import ServiceOffer
from marketplace_kernel.services.base import BaseService

logger = get_logger("services.capacity")


@dataclass(frozen=True)
class CapacityCheck:
    """Result of comparing an offer's counter with its agreements."""

    offer_id: UUID
    max_applicants: int
    current_applicants: int
    held_slots: int
    offer_status: OfferStatus

    @property
    def consistent(self) -> bool:
        return (
            self.current_applicants == self.held_slots
            and 0 <= self.current_applicants <= self.max_applicants
        )


class CapacityReconciler(BaseService):
    """
    Slot claims, releases and OPEN/PENDING re-derivation for one offer.

    Non-goals:
        - Does NOT decide whether an associate may apply; intake checks
          run before ``claim_slot``.
    """

    def claim_slot(self, offer_id: UUID) -> ServiceOffer:
        """
        Atomically take one applicant slot.

        Postconditions:
            - current_applicants and version are incremented by 1.
            - offer_status is PENDING if the claim filled the offer.

        Raises:
            OfferNotFoundError, OfferNotOpenError, CapacityExceededError.
        """
        claimed = ServiceOffer.current_applicants + 1
        result = self.session.execute(
            update(ServiceOffer)
            .where(
                ServiceOffer.id == offer_id,
                ServiceOffer.offer_status == OfferStatus.OPEN,
                ServiceOffer.current_applicants < ServiceOffer.max_applicants,
            )
            .values(
                current_applicants=claimed,
                version=ServiceOffer.version + 1,
                offer_status=case(
                    (
                        claimed >= ServiceOffer.max_applicants,
                        literal(OfferStatus.PENDING.value),
                    ),
                    else_=ServiceOffer.offer_status,
                ),
            )
            .execution_options(synchronize_session=False)
        )

        offer = self._load(offer_id)
        if result.rowcount == 0:
            if offer.offer_status not in (OfferStatus.OPEN, OfferStatus.PENDING):
                raise OfferNotOpenError(str(offer_id), offer.offer_status.value)
            logger.info(
                "slot_claim_rejected",
                extra={
                    "offer_id": str(offer_id),
                    "current_applicants": offer.current_applicants,
                    "max_applicants": offer.max_applicants,
                },
            )
            raise CapacityExceededError(
                str(offer_id), offer.max_applicants, offer.current_applicants
            )

        logger.info(
            "slot_claimed",
            extra={
                "offer_id": str(offer_id),
                "current_applicants": offer.current_applicants,
                "max_applicants": offer.max_applicants,
                "offer_status": offer.offer_status.value,
            },
        )
        return offer

    def release_slot(self, offer_id: UUID, reopen: bool = True) -> ServiceOffer:
        """
        Give back one applicant slot.

        Call after the releasing agreement has left the slot-holding
        statuses, so it is not counted as binding.

        Postconditions:
            - current_applicants is decremented by 1 unless already 0.
            - With ``reopen``, a PENDING or ACCEPTED offer with no other
              ACCEPTED/ACTIVE agreement becomes PENDING when still full,
              OPEN otherwise.  EXPIRED, CANCELLED, IN_PROGRESS and
              COMPLETED offers are never reopened.
        """
        self._lock(offer_id)

        result = self.session.execute(
            update(ServiceOffer)
            .where(ServiceOffer.id == offer_id, ServiceOffer.current_applicants > 0)
            .values(
                current_applicants=ServiceOffer.current_applicants - 1,
                version=ServiceOffer.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("slot_release_underflow", extra={"offer_id": str(offer_id)})

        offer = self._load(offer_id)

        if reopen and offer.offer_status in REOPENABLE_OFFER_STATUSES:
            if self.count_binding(offer_id) == 0:
                target = OfferStatus.PENDING if offer.is_full else OfferStatus.OPEN
                if target != offer.offer_status:
                    self.transition_offer(offer_id, target)
                    offer = self._load(offer_id)

        logger.info(
            "slot_released",
            extra={
                "offer_id": str(offer_id),
                "current_applicants": offer.current_applicants,
                "offer_status": offer.offer_status.value,
                "reopen": reopen,
            },
        )
        return offer

    def sync_capacity_status(self, offer: ServiceOffer) -> ServiceOffer:
        """Re-derive OPEN/PENDING after max_applicants changed."""
        if offer.offer_status == OfferStatus.OPEN and offer.is_full:
            self.transition_offer(offer.id, OfferStatus.PENDING)
        elif offer.offer_status == OfferStatus.PENDING and not offer.is_full:
            self.transition_offer(offer.id, OfferStatus.OPEN)
        return self._load(offer.id)

    def transition_offer(
        self,
        offer_id: UUID,
        target: OfferStatus,
        from_statuses: frozenset[OfferStatus] | None = None,
    ) -> bool:
        """
        Compare-and-set the offer status.

        Only sources that may legally move to ``target`` are considered;
        ``from_statuses`` narrows them further.

        Returns:
            True if the row changed, False if its status was not an
            eligible source.
        """
        sources = {s for s, targets in OFFER_TRANSITIONS.items() if target in targets}
        if from_statuses is not None:
            sources &= set(from_statuses)
        if not sources:
            return False

        result = self.session.execute(
            update(ServiceOffer)
            .where(
                ServiceOffer.id == offer_id,
                ServiceOffer.offer_status.in_(sorted(s.value for s in sources)),
            )
            .values(offer_status=target, version=ServiceOffer.version + 1)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if changed:
            logger.info(
                "offer_status_changed",
                extra={"offer_id": str(offer_id), "offer_status": target.value},
            )
        return changed

    def count_held_slots(self, offer_id: UUID) -> int:
        """Agreements currently holding a slot on the offer."""
        return self._count(offer_id, SLOT_HOLDING_STATUSES)

    def count_binding(self, offer_id: UUID) -> int:
        """Agreements that are ACCEPTED or ACTIVE on the offer."""
        return self._count(offer_id, BINDING_STATUSES)

    def verify_offer(self, offer_id: UUID) -> CapacityCheck:
        offer = self._load(offer_id)
        check = CapacityCheck(
            offer_id=offer_id,
            max_applicants=offer.max_applicants,
            current_applicants=offer.current_applicants,
            held_slots=self.count_held_slots(offer_id),
            offer_status=offer.offer_status,
        )
        if not check.consistent:
            logger.error(
                "capacity_invariant_violated",
                extra={
                    "offer_id": str(offer_id),
                    "current_applicants": check.current_applicants,
                    "held_slots": check.held_slots,
                    "max_applicants": check.max_applicants,
                },
            )
        return check

    def _count(self, offer_id: UUID, statuses: frozenset) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(ServiceAgreement)
            .where(
                ServiceAgreement.service_offer_id == offer_id,
                ServiceAgreement.agreement_status.in_(
                    sorted(s.value for s in statuses)
                ),
            )
        ).scalar_one()

    def _lock(self, offer_id: UUID) -> ServiceOffer:
        offer = self.session.execute(
            select(ServiceOffer)
            .where(ServiceOffer.id == offer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        return offer

    def _load(self, offer_id: UUID) -> ServiceOffer:
        offer = self.session.execute(
            select(ServiceOffer)
            .where(ServiceOffer.id == offer_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        return offer
