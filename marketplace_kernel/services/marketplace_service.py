"""
MarketplaceService -- transport-agnostic entry point for the marketplace.

Responsibility:
    Exposes every marketplace operation (offers, applications, agreement
    transitions, execution tracking, expiry sweep) as a method that runs
    in its own unit of work and returns a ``MarketplaceResult``.  HTTP
    handlers, CLIs and jobs call this service; nothing else owns commits.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    Delegates to OfferService, ApplicationService, AgreementService and
    ExecutionService, which only flush.

Invariants enforced:
    - One call, one transaction: commit on success, rollback on a
      ``MarketplaceError``.  Errors flagged ``preserves_writes`` (an offer
      found expired during an application) commit the writes made before
      the raise.
    - Unexpected exceptions are rolled back, logged at ERROR and
      re-raised.
    - Every call runs inside a ``LogContext`` carrying a fresh
      correlation_id and the ids it concerns.

Failure modes:
    - Domain failures come back as ``MarketplaceResult`` with
      ``is_success`` False; the raised exception is kept in ``error``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from marketplace_kernel.domain.clock import Clock, SystemClock
from marketplace_kernel.domain.dtos import (
    AgreementFilter,
    AgreementInfo,
    ExecutionInfo,
    ExecutionUpdate,
    OfferFilter,
    OfferInfo,
    OfferPatch,
    OfferSpec,
    ProposedTerms,
    TransitionOutcome,
    TransitionParams,
)
from marketplace_kernel.domain.eligibility import (
    AssociateDirectory,
    AssociateProfile,
    EmptyAssociateDirectory,
)
from marketplace_kernel.domain.lifecycle import Actor, AgreementAction
from marketplace_kernel.domain.policy import DEFAULT_POLICY, MarketplacePolicy
from marketplace_kernel.exceptions import ErrorKind, MarketplaceError
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.services.agreement_service import AgreementService
from marketplace_kernel.services.application_service import ApplicationService
from marketplace_kernel.services.execution_service import ExecutionService
from marketplace_kernel.services.offer_service import OfferService

logger = get_logger("services.marketplace")

T = TypeVar("T")


class ResultStatus(str, Enum):
    """OK, or the category of the failure (mirrors ErrorKind)."""

    OK = "ok"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    INVALID_STATE = "invalid_state"
    INVALID_TRANSITION = "invalid_transition"
    EXPIRED = "expired"
    NOT_ELIGIBLE = "not_eligible"
    OUT_OF_RANGE = "out_of_range"
    INVALID_START_TIME = "invalid_start_time"
    NOT_AUTHORIZED = "not_authorized"
    IMMUTABILITY = "immutability"

    @classmethod
    def from_kind(cls, kind: ErrorKind) -> ResultStatus:
        return cls(kind.value)


@dataclass(frozen=True)
class MarketplaceResult(Generic[T]):
    """Outcome of one marketplace operation."""

    status: ResultStatus
    value: T | None = None
    error: MarketplaceError | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == ResultStatus.OK

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @classmethod
    def ok(cls, value: T) -> MarketplaceResult[T]:
        return cls(status=ResultStatus.OK, value=value)

    @classmethod
    def failure(cls, error: MarketplaceError) -> MarketplaceResult[T]:
        return cls(
            status=ResultStatus.from_kind(error.kind),
            error=error,
            message=str(error),
        )


class MarketplaceService:
    """
    Facade over the marketplace kernel services.

    Contract:
        Every public method returns a ``MarketplaceResult``.  With
        ``auto_commit`` (the default) the session is committed or rolled
        back before returning; without it the caller owns the boundary.

    Usage:
        with get_session() as session:
            marketplace = MarketplaceService(session, clock=SystemClock())
            result = marketplace.apply_for_offer(offer_id, "assoc-7", terms)
            if result.status == ResultStatus.CAPACITY_EXCEEDED:
                ...
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: MarketplacePolicy | None = None,
        directory: AssociateDirectory | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or DEFAULT_POLICY
        self._directory = directory or EmptyAssociateDirectory()
        self._auto_commit = auto_commit

        self._offers = OfferService(session, self._clock, self._policy)
        self._applications = ApplicationService(session, self._clock, self._policy)
        self._agreements = AgreementService(session, self._clock, self._policy)
        self._executions = ExecutionService(session, self._clock, self._policy)

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def create_offer(self, spec: OfferSpec, actor: Actor) -> MarketplaceResult[OfferInfo]:
        return self._run(
            "create_offer",
            lambda: self._offers.create_offer(spec, actor),
            actor_id=actor.actor_id,
        )

    def list_offers(
        self,
        offer_filter: OfferFilter | None = None,
    ) -> MarketplaceResult[list[OfferInfo]]:
        offer_filter = offer_filter or OfferFilter()
        profile = None
        if offer_filter.associate_id is not None:
            profile = self._directory.profile_for(offer_filter.associate_id)
        return self._run(
            "list_offers",
            lambda: self._offers.list_offers(offer_filter, profile),
            associate_id=offer_filter.associate_id,
        )

    def get_offer(self, offer_id: UUID) -> MarketplaceResult[OfferInfo]:
        return self._run(
            "get_offer",
            lambda: self._offers.get_offer(offer_id),
            offer_id=offer_id,
        )

    def update_offer(
        self,
        offer_id: UUID,
        patch: OfferPatch,
        actor: Actor,
    ) -> MarketplaceResult[OfferInfo]:
        return self._run(
            "update_offer",
            lambda: self._offers.update_offer(offer_id, patch, actor),
            actor_id=actor.actor_id,
            offer_id=offer_id,
        )

    def cancel_offer(self, offer_id: UUID, actor: Actor) -> MarketplaceResult[OfferInfo]:
        return self._run(
            "cancel_offer",
            lambda: self._offers.cancel_offer(offer_id, actor),
            actor_id=actor.actor_id,
            offer_id=offer_id,
        )

    def sweep_expired_offers(self) -> MarketplaceResult[list[UUID]]:
        return self._run("sweep_expired_offers", self._offers.expire_lapsed_offers)

    # ------------------------------------------------------------------
    # Applications and agreements
    # ------------------------------------------------------------------

    def apply_for_offer(
        self,
        offer_id: UUID,
        associate_id: str,
        terms: ProposedTerms,
        profile: AssociateProfile | None = None,
    ) -> MarketplaceResult[AgreementInfo]:
        """Apply; ``profile`` defaults to the directory's profile."""
        resolved = profile or self._directory.profile_for(associate_id)
        return self._run(
            "apply_for_offer",
            lambda: self._applications.apply_for_offer(
                offer_id, associate_id, terms, resolved
            ),
            actor_id=associate_id,
            offer_id=offer_id,
            associate_id=associate_id,
        )

    def transition_agreement(
        self,
        agreement_id: UUID,
        action: AgreementAction | str,
        actor: Actor,
        params: TransitionParams | None = None,
    ) -> MarketplaceResult[TransitionOutcome]:
        return self._run(
            "transition_agreement",
            lambda: self._agreements.transition_agreement(
                agreement_id, action, actor, params
            ),
            actor_id=actor.actor_id,
            agreement_id=agreement_id,
        )

    def cancel_agreement(
        self,
        agreement_id: UUID,
        reason: str | None,
        actor: Actor,
    ) -> MarketplaceResult[TransitionOutcome]:
        return self._run(
            "cancel_agreement",
            lambda: self._agreements.cancel_agreement(agreement_id, reason, actor),
            actor_id=actor.actor_id,
            agreement_id=agreement_id,
        )

    def list_agreements(
        self,
        agreement_filter: AgreementFilter | None = None,
    ) -> MarketplaceResult[list[AgreementInfo]]:
        return self._run(
            "list_agreements",
            lambda: self._agreements.list_agreements(agreement_filter),
        )

    # ------------------------------------------------------------------
    # Execution tracking
    # ------------------------------------------------------------------

    def get_execution(self, agreement_id: UUID) -> MarketplaceResult[ExecutionInfo]:
        return self._run(
            "get_execution",
            lambda: self._executions.get_execution(agreement_id),
            agreement_id=agreement_id,
        )

    def get_executions_for_associate(
        self,
        associate_id: str,
    ) -> MarketplaceResult[list[ExecutionInfo]]:
        return self._run(
            "get_executions_for_associate",
            lambda: self._executions.get_executions_for_associate(associate_id),
            associate_id=associate_id,
        )

    def update_execution(
        self,
        agreement_id: UUID,
        change: ExecutionUpdate,
        actor: Actor,
    ) -> MarketplaceResult[ExecutionInfo]:
        return self._run(
            "update_execution",
            lambda: self._executions.update_execution(agreement_id, change, actor),
            actor_id=actor.actor_id,
            agreement_id=agreement_id,
        )

    def add_progress_report(
        self,
        agreement_id: UUID,
        report_type: str,
        data: dict[str, Any],
        submitted_by: Actor,
    ) -> MarketplaceResult[ExecutionInfo]:
        return self._run(
            "add_progress_report",
            lambda: self._executions.add_progress_report(
                agreement_id, report_type, data, submitted_by
            ),
            actor_id=submitted_by.actor_id,
            agreement_id=agreement_id,
        )

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        fn: Callable[[], T],
        **context: Any,
    ) -> MarketplaceResult[T]:
        with LogContext.bind(correlation_id=str(uuid4()), **context):
            t0 = time.monotonic()
            try:
                value = fn()
                if self._auto_commit:
                    self._session.commit()
            except MarketplaceError as error:
                if self._auto_commit:
                    if error.preserves_writes:
                        self._session.commit()
                    else:
                        self._session.rollback()
                logger.info(
                    "marketplace_operation_rejected",
                    extra={
                        "operation": operation,
                        "error_code": error.code,
                        "error_kind": error.kind.value,
                        "error_message": str(error),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return MarketplaceResult.failure(error)
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "marketplace_operation_failed",
                    extra={
                        "operation": operation,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise

            logger.info(
                "marketplace_operation_completed",
                extra={
                    "operation": operation,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return MarketplaceResult.ok(value)
