"""
OfferService -- the offer catalog's write side.

Responsibility:
    Creates, updates, cancels and expires service offers, validating the
    scheduling window and commercial terms.  Lists offers through
    ``OfferSelector`` after persisting any lapsed-window expiries it sees.

Architecture position:
    Kernel > Services -- imperative shell.  Called by MarketplaceService
    and by the expiry sweep script.

Invariants enforced:
    - An offer is created OPEN with zero applicants.
    - Offers with ACCEPTED or ACTIVE agreements are frozen: update and
      cancel fail with OfferHasBindingAgreementsError.
    - COMPLETED and CANCELLED offers are never modified; cancelling an
      already CANCELLED offer is a no-op.  EXPIRED offers, and OPEN offers
      whose window has lapsed, can be cancelled but not updated.
    - Cancelling an offer cancels its PROPOSED agreements and releases
      their slots in the same transaction.
    - Only OPEN offers are flipped to EXPIRED.

Failure modes:
    - ServiceNotFoundError / OfferNotFoundError for unknown ids.
    - ValidationError for malformed terms.
    - OfferClosedError, OfferHasBindingAgreementsError,
      ActorNotAuthorizedError.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace_kernel.db.types import round_money, to_decimal
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import OfferFilter, OfferInfo, OfferPatch, OfferSpec
from marketplace_kernel.domain.eligibility import AssociateProfile
from marketplace_kernel.domain.lifecycle import (
    Actor,
    ActorRole,
    AgreementStatus,
    OfferStatus,
)
from marketplace_kernel.domain.policy import DEFAULT_POLICY, MarketplacePolicy
from marketplace_kernel.exceptions import (
    ActorNotAuthorizedError,
    OfferClosedError,
    OfferHasBindingAgreementsError,
    OfferNotFoundError,
    ServiceNotFoundError,
    ValidationError,
)
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.offer import ServiceOffer
from marketplace_kernel.selectors.offer_selector import OfferSelector, effective_status
from marketplace_kernel.selectors.service_catalog_selector import ServiceCatalogSelector
from marketplace_kernel.services.activity_log import ActivityLogService
from marketplace_kernel.services.base import BaseService
from marketplace_kernel.services.capacity_reconciler import CapacityReconciler

logger = get_logger("services.offer")

_DECIMAL_FIELDS = (
    "offered_amount",
    "hourly_rate",
    "max_hours",
    "custom_duration_estimate",
)
_LIST_FIELDS = ("preferred_associates", "excluded_associates")


def _decimal_or_error(field: str, value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except (TypeError, ArithmeticError) as exc:
        raise ValidationError(field, "must be a decimal amount", value) from exc


class OfferService(BaseService):
    """
    Write operations on service offers.

    Guarantees:
        - Every method flushes and returns an ``OfferInfo`` DTO (or a list
          of ids for the sweep); nothing is committed here.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: MarketplacePolicy | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or DEFAULT_POLICY
        self._reconciler = CapacityReconciler(session, self.clock)
        self._log = ActivityLogService(session, self.clock)
        self._selector = OfferSelector(session, self.clock)
        self._catalog = ServiceCatalogSelector(session, self.clock)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_offer(self, spec: OfferSpec, actor: Actor) -> OfferInfo:
        """
        Post a new offer.

        Preconditions:
            - ``actor`` is a LOCATION actor for ``spec.location_id`` or SYSTEM.

        Postconditions:
            - offer_status = OPEN, current_applicants = 0.
            - urgency, payment_structure and max_applicants fall back to
              the policy defaults.
        """
        self._require_location_authority(actor, spec.location_id, "create offer for", spec.location_id)

        service = self._catalog.get(spec.service_id)
        if service is None:
            raise ServiceNotFoundError(str(spec.service_id))
        if not service.is_active:
            raise ValidationError("service_id", "service is not active", str(spec.service_id))

        now = self.clock.now()
        values: dict[str, Any] = {
            "offer_title": spec.offer_title,
            "custom_instructions": spec.custom_instructions,
            "preferred_start_date": spec.preferred_start_date,
            "latest_start_date": spec.latest_start_date,
            "must_complete_by": spec.must_complete_by,
            "expires_at": spec.expires_at,
            "offered_amount": spec.offered_amount,
            "payment_structure": spec.payment_structure or self.policy.default_payment_structure,
            "hourly_rate": spec.hourly_rate,
            "max_hours": spec.max_hours,
            "expense_reimbursement": spec.expense_reimbursement,
            "custom_duration_estimate": spec.custom_duration_estimate,
            "preferred_associates": spec.preferred_associates,
            "excluded_associates": spec.excluded_associates,
            "minimum_experience_level": spec.minimum_experience_level,
            "required_location_experience": spec.required_location_experience,
            "urgency": spec.urgency or self.policy.default_urgency,
            "max_applicants": (
                spec.max_applicants
                if spec.max_applicants is not None
                else self.policy.default_max_applicants
            ),
            "internal_notes": spec.internal_notes,
        }
        values = self._validate(values, changed=set(values), now=now)

        offer = ServiceOffer(
            service_id=service.id,
            location_id=spec.location_id,
            current_applicants=0,
            offer_status=OfferStatus.OPEN,
            posted_by=actor.actor_id,
            posted_at=now,
            created_by=actor.actor_id,
            version=1,
            **values,
        )
        self.session.add(offer)
        self.session.flush()

        logger.info(
            "offer_created",
            extra={
                "offer_id": str(offer.id),
                "service_id": str(service.id),
                "location_id": offer.location_id,
                "max_applicants": offer.max_applicants,
                "urgency": offer.urgency.value,
            },
        )
        return self._selector.to_info(offer, now)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_offer(self, offer_id: UUID, patch: OfferPatch, actor: Actor) -> OfferInfo:
        """
        Apply a partial update.

        Raises:
            OfferNotFoundError, ActorNotAuthorizedError, OfferClosedError,
            OfferHasBindingAgreementsError, ValidationError.
        """
        offer = self._lock(offer_id)
        self._require_location_authority(actor, offer.location_id, "update", str(offer_id))

        # A lapsed window is closed too; extending expires_at does not reopen it.
        status = effective_status(offer, self.clock.now())
        if status in (OfferStatus.COMPLETED, OfferStatus.CANCELLED, OfferStatus.EXPIRED):
            raise OfferClosedError(str(offer_id), status.value, "update")

        binding = self._reconciler.count_binding(offer_id)
        if binding:
            raise OfferHasBindingAgreementsError(str(offer_id), binding, "update")

        changes = patch.changes()
        if not changes:
            return self._selector.to_info(offer)

        now = self.clock.now()
        merged = {
            name: getattr(offer, name)
            for name in (
                "offer_title",
                "preferred_start_date",
                "latest_start_date",
                "must_complete_by",
                "expires_at",
                "offered_amount",
                "minimum_experience_level",
                "max_applicants",
            )
        }
        merged.update(changes)
        validated = self._validate(merged, changed=set(changes), now=now)

        if "max_applicants" in changes and validated["max_applicants"] < offer.current_applicants:
            raise ValidationError(
                "max_applicants",
                f"cannot be below current applicants ({offer.current_applicants})",
                validated["max_applicants"],
            )

        for name in changes:
            setattr(offer, name, validated.get(name, changes[name]))
        offer.version = offer.version + 1
        offer.updated_by = actor.actor_id
        self.session.flush()

        if "max_applicants" in changes:
            offer = self._reconciler.sync_capacity_status(offer)

        logger.info(
            "offer_updated",
            extra={"offer_id": str(offer_id), "fields": sorted(changes)},
        )
        return self._selector.to_info(offer, now)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel_offer(self, offer_id: UUID, actor: Actor) -> OfferInfo:
        """
        Withdraw an offer.

        Postconditions:
            - offer_status = CANCELLED.
            - Every PROPOSED agreement is CANCELLED with a negotiation note
              and its slot released.
            - Calling again on a CANCELLED offer returns it unchanged.
        """
        offer = self._lock(offer_id)
        self._require_location_authority(actor, offer.location_id, "cancel", str(offer_id))

        if offer.offer_status == OfferStatus.CANCELLED:
            logger.info("offer_cancel_noop", extra={"offer_id": str(offer_id)})
            return self._selector.to_info(offer)

        if offer.offer_status == OfferStatus.COMPLETED:
            raise OfferClosedError(str(offer_id), offer.offer_status.value, "cancel")

        binding = self._reconciler.count_binding(offer_id)
        if binding:
            raise OfferHasBindingAgreementsError(str(offer_id), binding, "cancel")

        now = self.clock.now()
        proposed_ids = list(
            self.session.execute(
                select(ServiceAgreement.id).where(
                    ServiceAgreement.service_offer_id == offer_id,
                    ServiceAgreement.agreement_status == AgreementStatus.PROPOSED,
                )
            ).scalars()
        )
        reason = "Offer cancelled by location"
        for agreement_id in proposed_ids:
            result = self.session.execute(
                update(ServiceAgreement)
                .where(
                    ServiceAgreement.id == agreement_id,
                    ServiceAgreement.agreement_status == AgreementStatus.PROPOSED,
                )
                .values(
                    agreement_status=AgreementStatus.CANCELLED,
                    cancelled_at=now,
                    cancelled_by=actor.actor_id,
                    cancellation_reason=reason,
                    updated_by=actor.actor_id,
                    version=ServiceAgreement.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                self._log.append_negotiation_note(
                    agreement_id, actor.actor_id, reason, action="cancel"
                )
                self._reconciler.release_slot(offer_id, reopen=False)

        self._reconciler.transition_offer(offer_id, OfferStatus.CANCELLED)
        self.session.execute(
            update(ServiceOffer)
            .where(ServiceOffer.id == offer_id)
            .values(updated_by=actor.actor_id)
            .execution_options(synchronize_session=False)
        )

        logger.info(
            "offer_cancelled",
            extra={
                "offer_id": str(offer_id),
                "cancelled_agreements": len(proposed_ids),
            },
        )
        return self._selector.get(offer_id)

    # ------------------------------------------------------------------
    # Reads and expiry
    # ------------------------------------------------------------------

    def get_offer(self, offer_id: UUID) -> OfferInfo:
        info = self._selector.get(offer_id)
        if info is None:
            raise OfferNotFoundError(str(offer_id))
        return info

    def list_offers(
        self,
        offer_filter: OfferFilter | None = None,
        profile: AssociateProfile | None = None,
    ) -> list[OfferInfo]:
        """List offers, first persisting EXPIRED on lapsed OPEN offers."""
        self.expire_lapsed_offers()
        return self._selector.list_offers(offer_filter, profile)

    def expire_if_lapsed(self, offer_id: UUID) -> bool:
        """Flip one OPEN offer to EXPIRED if its window has passed."""
        now = self.clock.now()
        result = self.session.execute(
            update(ServiceOffer)
            .where(
                ServiceOffer.id == offer_id,
                ServiceOffer.offer_status == OfferStatus.OPEN,
                ServiceOffer.expires_at.is_not(None),
                ServiceOffer.expires_at < now,
            )
            .values(offer_status=OfferStatus.EXPIRED, version=ServiceOffer.version + 1)
            .execution_options(synchronize_session=False)
        )
        expired = result.rowcount == 1
        if expired:
            logger.info("offer_expired", extra={"offer_id": str(offer_id)})
        return expired

    def expire_lapsed_offers(self) -> list[UUID]:
        """Sweep: flip every lapsed OPEN offer to EXPIRED."""
        flipped = [
            offer_id
            for offer_id in self._selector.lapsed_open_offer_ids(self.clock.now())
            if self.expire_if_lapsed(offer_id)
        ]
        if flipped:
            logger.info("offers_expired_sweep", extra={"expired_count": len(flipped)})
        return flipped

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

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

    def _require_location_authority(
        self, actor: Actor, location_id: str, action: str, subject_id: str
    ) -> None:
        if actor.role == ActorRole.SYSTEM:
            return
        if actor.role == ActorRole.LOCATION and actor.location_id == location_id:
            return
        raise ActorNotAuthorizedError(actor.actor_id, actor.role.value, action, subject_id)

    def _validate(
        self,
        values: dict[str, Any],
        changed: set[str],
        now: datetime,
    ) -> dict[str, Any]:
        """
        Check offer terms.  ``changed`` names the fields the caller set;
        checks against ``now`` only apply to those.
        """
        out = dict(values)

        if "offer_title" in changed and not (out.get("offer_title") or "").strip():
            raise ValidationError("offer_title", "must not be empty", out.get("offer_title"))

        for name in _DECIMAL_FIELDS:
            if out.get(name) is not None and name in changed:
                out[name] = _decimal_or_error(name, out[name])

        if "offered_amount" in changed:
            if out["offered_amount"] <= 0:
                raise ValidationError("offered_amount", "must be positive", out["offered_amount"])
            out["offered_amount"] = round_money(out["offered_amount"])

        for name in ("hourly_rate", "max_hours", "custom_duration_estimate"):
            if name in changed and out.get(name) is not None and out[name] <= 0:
                raise ValidationError(name, "must be positive", out[name])

        for name in ("preferred_start_date", "latest_start_date", "must_complete_by", "expires_at"):
            value = out.get(name)
            if value is not None and value.tzinfo is None:
                raise ValidationError(name, "must be timezone-aware", value)

        preferred = out["preferred_start_date"]
        if preferred is None:
            raise ValidationError("preferred_start_date", "is required")
        if "preferred_start_date" in changed and preferred < now:
            raise ValidationError("preferred_start_date", "is in the past", preferred)

        latest = out.get("latest_start_date")
        if latest is not None and latest < preferred:
            raise ValidationError(
                "latest_start_date", "is before preferred_start_date", latest
            )

        must_complete_by = out.get("must_complete_by")
        if must_complete_by is not None and must_complete_by < preferred:
            raise ValidationError(
                "must_complete_by", "is before preferred_start_date", must_complete_by
            )

        expires_at = out.get("expires_at")
        if "expires_at" in changed and expires_at is not None and expires_at <= now:
            raise ValidationError("expires_at", "must be in the future", expires_at)

        if "max_applicants" in changed and out["max_applicants"] < 1:
            raise ValidationError("max_applicants", "must be at least 1", out["max_applicants"])

        if "minimum_experience_level" in changed and out["minimum_experience_level"] < 0:
            raise ValidationError(
                "minimum_experience_level",
                "must not be negative",
                out["minimum_experience_level"],
            )

        for name in _LIST_FIELDS:
            if name in changed and out.get(name) is not None:
                out[name] = list(out[name])

        return out
