"""
AgreementService -- the agreement state machine.

Responsibility:
    Applies approve / reject / start / complete / cancel / revise to an
    agreement, together with their effects on the offer (status, slots)
    and on the execution record.

Architecture position:
    Kernel > Services -- imperative shell.  Transition rules come from
    ``domain.lifecycle.AGREEMENT_ACTIONS``; slot and offer-status writes go
    through CapacityReconciler.

Invariants enforced:
    - The status change is a compare-and-set on
      ``(id, agreement_status IN sources)``.  A source state not listed for
      the action raises InvalidTransitionError before anything is written.
    - Lock order is offer row, then agreement row, matching intake and
      offer cancellation.
    - The actor must hold one of the authorities the action lists.
    - reject and cancel release the slot and may reopen the offer;
      complete releases the slot without reopening.
    - Every reject, cancel and revise appends a negotiation note.
    - approve moves the offer to ACCEPTED from OPEN, PENDING or EXPIRED, so
      the result does not depend on whether a listing stored EXPIRED first.

Failure modes:
    - AgreementNotFoundError, ActorNotAuthorizedError,
      InvalidTransitionError, ValidationError, OutOfRangeError,
      InvalidStartTimeError.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace_kernel.db.types import round_money
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import (
    AgreementFilter,
    AgreementInfo,
    ProposedTerms,
    TransitionOutcome,
    TransitionParams,
)
from marketplace_kernel.domain.lifecycle import (
    Actor,
    AgreementAction,
    AgreementStatus,
    OfferStatus,
    is_authorized,
    rule_for,
)
from marketplace_kernel.domain.negotiation import (
    estimate_completion,
    resolve_duration_hours,
    start_time_acceptable,
)
from marketplace_kernel.domain.policy import DEFAULT_POLICY, MarketplacePolicy
from marketplace_kernel.exceptions import (
    ActorNotAuthorizedError,
    AgreementNotFoundError,
    InvalidStartTimeError,
    InvalidTransitionError,
    OfferNotFoundError,
    ValidationError,
)
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.execution import ServiceExecution
from marketplace_kernel.models.offer import ServiceOffer
from marketplace_kernel.models.service import Service
from marketplace_kernel.selectors.agreement_selector import AgreementSelector
from marketplace_kernel.selectors.execution_selector import ExecutionSelector
from marketplace_kernel.services.activity_log import ActivityLogService
from marketplace_kernel.services.application_service import (
    check_rate_band,
    coerce_amount,
)
from marketplace_kernel.services.base import BaseService
from marketplace_kernel.services.capacity_reconciler import CapacityReconciler

logger = get_logger("services.agreement")

_DEFAULT_REASONS = {
    AgreementAction.REJECT: "Rejected by location",
    AgreementAction.CANCEL: "Agreement cancelled",
}


class AgreementService(BaseService):
    """
    Agreement lifecycle transitions.

    Non-goals:
        - Does NOT notify either party; callers observe the returned
          ``TransitionOutcome``.
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
        self._agreements = AgreementSelector(session, self.clock)
        self._executions = ExecutionSelector(session, self.clock)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def transition_agreement(
        self,
        agreement_id: UUID,
        action: AgreementAction | str,
        actor: Actor,
        params: TransitionParams | None = None,
    ) -> TransitionOutcome:
        """
        Apply one action from the transition table.

        Postconditions:
            - agreement_status equals the action's target.
            - The action's offer/slot/execution effects are flushed.
        """
        try:
            rule = rule_for(action)
        except ValueError as exc:
            raise ValidationError("action", "unknown agreement action", action) from exc
        params = params or TransitionParams()

        agreement = self._load(agreement_id)
        if not is_authorized(rule.action, actor, agreement.associate_id, agreement.location_id):
            raise ActorNotAuthorizedError(
                actor.actor_id, actor.role.value, rule.action.value, str(agreement_id)
            )

        from_status = agreement.agreement_status
        if from_status not in rule.sources:
            raise InvalidTransitionError(
                str(agreement_id), rule.action.value, from_status.value
            )

        offer = self._lock_offer(agreement.service_offer_id)
        now = self.clock.now()
        values = self._transition_values(rule.action, agreement, offer, actor, params, now)

        result = self.session.execute(
            update(ServiceAgreement)
            .where(
                ServiceAgreement.id == agreement_id,
                ServiceAgreement.agreement_status.in_(
                    sorted(s.value for s in rule.sources)
                ),
            )
            .values(
                agreement_status=rule.target,
                version=ServiceAgreement.version + 1,
                updated_by=actor.actor_id,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self._load(agreement_id).agreement_status
            raise InvalidTransitionError(
                str(agreement_id), rule.action.value, current.value
            )

        execution = self._apply_effects(rule.action, agreement, actor, params, values, now)

        if rule.releases_slot:
            self._reconciler.release_slot(offer.id, reopen=rule.reopens_offer)

        if rule.action == AgreementAction.COMPLETE and self._reconciler.count_binding(offer.id) == 0:
            self._reconciler.transition_offer(
                offer.id, OfferStatus.COMPLETED, frozenset({OfferStatus.IN_PROGRESS})
            )

        offer_status = self.session.execute(
            select(ServiceOffer.offer_status).where(ServiceOffer.id == offer.id)
        ).scalar_one()

        logger.info(
            "agreement_transitioned",
            extra={
                "agreement_id": str(agreement_id),
                "action": rule.action.value,
                "from_status": from_status.value,
                "to_status": rule.target.value,
                "offer_status": offer_status.value,
            },
        )

        return TransitionOutcome(
            agreement=self._agreements.get(agreement_id),
            action=rule.action,
            from_status=from_status,
            offer_status=offer_status,
            execution=execution,
        )

    def cancel_agreement(
        self,
        agreement_id: UUID,
        reason: str | None,
        actor: Actor,
    ) -> TransitionOutcome:
        return self.transition_agreement(
            agreement_id,
            AgreementAction.CANCEL,
            actor,
            TransitionParams(reason=reason),
        )

    def get_agreement(self, agreement_id: UUID) -> AgreementInfo:
        info = self._agreements.get(agreement_id)
        if info is None:
            raise AgreementNotFoundError(str(agreement_id))
        return info

    def list_agreements(self, agreement_filter: AgreementFilter | None = None) -> list[AgreementInfo]:
        return self._agreements.list_agreements(agreement_filter)

    # ------------------------------------------------------------------
    # Per-action column values (validated before any write)
    # ------------------------------------------------------------------

    def _transition_values(
        self,
        action: AgreementAction,
        agreement: ServiceAgreement,
        offer: ServiceOffer,
        actor: Actor,
        params: TransitionParams,
        now: datetime,
    ) -> dict[str, Any]:
        if action == AgreementAction.APPROVE:
            return {"location_approved_at": now, "approved_by": actor.actor_id}

        if action in (AgreementAction.REJECT, AgreementAction.CANCEL):
            return {
                "cancelled_at": now,
                "cancelled_by": actor.actor_id,
                "cancellation_reason": params.reason or _DEFAULT_REASONS[action],
            }

        if action == AgreementAction.START:
            return {"actual_start_time": now}

        if action == AgreementAction.COMPLETE:
            final_amount = agreement.agreed_amount
            if params.final_amount_paid is not None:
                final_amount = coerce_amount("final_amount_paid", params.final_amount_paid)
                if final_amount < 0:
                    raise ValidationError(
                        "final_amount_paid", "must not be negative", final_amount
                    )
            return {
                "actual_completion_time": now,
                "final_amount_paid": round_money(final_amount),
            }

        # REVISE
        return self._revision_values(offer, params.revised_terms, now)

    def _revision_values(
        self,
        offer: ServiceOffer,
        terms: ProposedTerms | None,
        now: datetime,
    ) -> dict[str, Any]:
        if terms is None:
            raise ValidationError("revised_terms", "are required to revise an agreement")

        agreed_amount = coerce_amount("agreed_amount", terms.agreed_amount)
        check_rate_band(agreed_amount, offer.offered_amount, self.policy.max_rate_variance)

        if terms.agreed_start_time.tzinfo is None:
            raise ValidationError(
                "agreed_start_time", "must be timezone-aware", terms.agreed_start_time
            )
        if not start_time_acceptable(terms.agreed_start_time, now):
            raise InvalidStartTimeError(terms.agreed_start_time.isoformat(), now.isoformat())

        override = None
        if terms.duration_hours is not None:
            override = coerce_amount("duration_hours", terms.duration_hours)
            if override <= 0:
                raise ValidationError("duration_hours", "must be positive", override)
        service_estimate = self.session.execute(
            select(Service.estimated_duration_hours).where(Service.id == offer.service_id)
        ).scalar_one()
        duration = resolve_duration_hours(
            override, offer.custom_duration_estimate, service_estimate
        )

        values: dict[str, Any] = {
            "agreed_amount": round_money(agreed_amount),
            "agreed_start_time": terms.agreed_start_time,
            "estimated_completion_time": estimate_completion(terms.agreed_start_time, duration),
            "agreed_deliverables": list(terms.agreed_deliverables),
            "quality_requirements": list(terms.quality_requirements),
        }
        if terms.specific_instructions is not None:
            values["specific_instructions"] = terms.specific_instructions
        if terms.cancellation_policy is not None:
            values["cancellation_policy"] = terms.cancellation_policy
        return values

    # ------------------------------------------------------------------
    # Effects after the status CAS
    # ------------------------------------------------------------------

    def _apply_effects(
        self,
        action: AgreementAction,
        agreement: ServiceAgreement,
        actor: Actor,
        params: TransitionParams,
        values: dict[str, Any],
        now: datetime,
    ):
        offer_id = agreement.service_offer_id

        if action == AgreementAction.APPROVE:
            self._reconciler.transition_offer(
                offer_id,
                OfferStatus.ACCEPTED,
                frozenset({
                    OfferStatus.OPEN, OfferStatus.PENDING, OfferStatus.EXPIRED
                }),
            )
            return None

        if action in (AgreementAction.REJECT, AgreementAction.CANCEL):
            self._log.append_negotiation_note(
                agreement.id,
                actor.actor_id,
                values["cancellation_reason"],
                action=action.value,
            )
            return None

        if action == AgreementAction.START:
            execution = ServiceExecution(
                service_agreement_id=agreement.id,
                associate_id=agreement.associate_id,
                started_at=now,
                completion_percentage=0,
                hours_logged=Decimal("0"),
                expenses_incurred=Decimal("0"),
                is_paused=False,
                created_by=actor.actor_id,
                log_seq=0,
                version=1,
            )
            self.session.add(execution)
            self.session.flush()
            self._reconciler.transition_offer(
                offer_id,
                OfferStatus.IN_PROGRESS,
                frozenset({OfferStatus.OPEN, OfferStatus.PENDING, OfferStatus.ACCEPTED}),
            )
            return self._executions.to_info(execution)

        if action == AgreementAction.COMPLETE:
            self.session.execute(
                update(ServiceExecution)
                .where(
                    ServiceExecution.service_agreement_id == agreement.id,
                    ServiceExecution.completed_at.is_(None),
                )
                .values(
                    completed_at=now,
                    completion_percentage=100,
                    is_paused=False,
                    updated_by=actor.actor_id,
                    version=ServiceExecution.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            return self._executions.get_by_agreement(agreement.id)

        # REVISE
        note = params.note or "Terms revised"
        self._log.append_negotiation_note(
            agreement.id,
            actor.actor_id,
            note,
            action=action.value,
            agreed_amount=values["agreed_amount"],
            agreed_start_time=values["agreed_start_time"],
        )
        return None

    def _load(self, agreement_id: UUID) -> ServiceAgreement:
        agreement = self.session.execute(
            select(ServiceAgreement)
            .where(ServiceAgreement.id == agreement_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if agreement is None:
            raise AgreementNotFoundError(str(agreement_id))
        return agreement

    def _lock_offer(self, offer_id: UUID) -> ServiceOffer:
        offer = self.session.execute(
            select(ServiceOffer)
            .where(ServiceOffer.id == offer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        return offer
