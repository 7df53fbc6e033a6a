"""
ExecutionService -- progress tracking for ACTIVE agreements.

Responsibility:
    Applies tracker actions (progress, milestones, time, issues, expenses,
    pause/resume, quality checkpoints, location feedback) and progress
    reports to the execution record of an ACTIVE agreement.

Architecture position:
    Kernel > Services -- imperative shell.  Called by MarketplaceService.

Invariants enforced:
    - Mutations apply only while the agreement is ACTIVE and the execution
      has no ``completed_at``.  Every scalar write carries
      ``completed_at IS NULL`` in its WHERE clause.
    - Accumulators (hours_logged, expenses_incurred) are SQL expression
      updates, so concurrent log_time calls never lose an increment.
    - pause and resume are compare-and-set on ``is_paused``.
    - List-like history is appended to the activity log, never rewritten.
    - Parameters are validated before any write; a rejected action leaves
      the execution untouched.

Failure modes:
    - AgreementNotFoundError, ExecutionNotFoundError.
    - AgreementNotActiveError when the agreement is not ACTIVE or the
      execution is closed.
    - ExecutionPausedError / ExecutionNotPausedError.
    - ValidationError for out-of-range parameters.
    - ActorNotAuthorizedError.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace_kernel.db.types import round_money
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import ExecutionInfo, ExecutionUpdate
from marketplace_kernel.domain.lifecycle import (
    Actor,
    AgreementStatus,
    Authority,
    authorities_of,
)
from marketplace_kernel.domain.policy import DEFAULT_POLICY, MarketplacePolicy
from marketplace_kernel.domain.values import (
    ExecutionAction,
    IssueSeverity,
    LogEntryKind,
    LogSubject,
    QualityStatus,
)
from marketplace_kernel.exceptions import (
    ActorNotAuthorizedError,
    AgreementNotActiveError,
    AgreementNotFoundError,
    ExecutionNotFoundError,
    ExecutionNotPausedError,
    ExecutionPausedError,
    ValidationError,
)
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.execution import ServiceExecution
from marketplace_kernel.selectors.execution_selector import ExecutionSelector
from marketplace_kernel.services.activity_log import ActivityLogService
from marketplace_kernel.services.application_service import coerce_amount
from marketplace_kernel.services.base import BaseService

logger = get_logger("services.execution")

# Actions only the location (or a system job) may record.
_LOCATION_ACTIONS = frozenset({ExecutionAction.LOCATION_FEEDBACK})


def _require_text(field: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, "is required", value)
    return value


class ExecutionService(BaseService):
    """
    Execution tracker.

    Contract:
        ``update_execution`` dispatches on ``ExecutionUpdate.action`` and
        returns the refreshed ``ExecutionInfo``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: MarketplacePolicy | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or DEFAULT_POLICY
        self._log = ActivityLogService(session, self.clock)
        self._selector = ExecutionSelector(session, self.clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_execution(self, agreement_id: UUID) -> ExecutionInfo:
        info = self._selector.get_by_agreement(agreement_id)
        if info is None:
            raise ExecutionNotFoundError(str(agreement_id))
        return info

    def get_executions_for_associate(self, associate_id: str) -> list[ExecutionInfo]:
        return self._selector.for_associate(associate_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_execution(
        self,
        agreement_id: UUID,
        change: ExecutionUpdate,
        actor: Actor,
    ) -> ExecutionInfo:
        try:
            action = ExecutionAction(change.action)
        except ValueError as exc:
            raise ValidationError("action", "unknown execution action", change.action) from exc

        execution = self._open_execution(agreement_id, actor, action)
        handler = {
            ExecutionAction.UPDATE_PROGRESS: self._update_progress,
            ExecutionAction.ADD_MILESTONE: self._add_milestone,
            ExecutionAction.LOG_TIME: self._log_time,
            ExecutionAction.REPORT_ISSUE: self._report_issue,
            ExecutionAction.ADD_EXPENSE: self._add_expense,
            ExecutionAction.PAUSE: self._pause,
            ExecutionAction.RESUME: self._resume,
            ExecutionAction.QUALITY_CHECK: self._quality_check,
            ExecutionAction.LOCATION_FEEDBACK: self._location_feedback,
        }[action]
        handler(execution, change, actor, self.clock.now())

        logger.info(
            "execution_updated",
            extra={
                "agreement_id": str(agreement_id),
                "execution_id": str(execution.id),
                "action": action.value,
            },
        )
        return self.get_execution(agreement_id)

    def add_progress_report(
        self,
        agreement_id: UUID,
        report_type: str,
        data: dict[str, Any],
        submitted_by: Actor,
    ) -> ExecutionInfo:
        """Append a PROGRESS_REPORT entry."""
        _require_text("report_type", report_type)
        execution = self._open_execution(agreement_id, submitted_by, None)
        self._append(
            execution,
            LogEntryKind.PROGRESS_REPORT,
            submitted_by,
            {"report_type": report_type, "data": dict(data or {})},
        )
        logger.info(
            "progress_report_added",
            extra={"agreement_id": str(agreement_id), "report_type": report_type},
        )
        return self.get_execution(agreement_id)

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    def _update_progress(self, execution, change, actor, now) -> None:
        values: dict[str, Any] = {}
        if change.percentage is not None:
            if isinstance(change.percentage, bool) or not isinstance(change.percentage, int):
                raise ValidationError("percentage", "must be an integer", change.percentage)
            if not 0 <= change.percentage <= 100:
                raise ValidationError("percentage", "must be between 0 and 100", change.percentage)
            values["completion_percentage"] = change.percentage
        if change.phase is not None:
            values["current_phase"] = change.phase

        if values:
            self._write(execution, actor, values)
        self._append(
            execution,
            LogEntryKind.ASSOCIATE_NOTE,
            actor,
            {
                "text": change.note or "Progress updated",
                "percentage": change.percentage,
                "phase": change.phase,
            },
        )

    def _add_milestone(self, execution, change, actor, now) -> None:
        text = _require_text("text", change.text)
        self._append(execution, LogEntryKind.MILESTONE, actor, {"text": text})

    def _log_time(self, execution, change, actor, now) -> None:
        if change.hours is None:
            raise ValidationError("hours", "is required")
        hours = coerce_amount("hours", change.hours)
        if hours <= 0:
            raise ValidationError("hours", "must be positive", hours)
        self._write(
            execution,
            actor,
            {"hours_logged": ServiceExecution.hours_logged + hours},
        )
        self._append(
            execution,
            LogEntryKind.TIME_LOG,
            actor,
            {"hours": hours, "description": change.description},
        )

    def _report_issue(self, execution, change, actor, now) -> None:
        text = _require_text("text", change.text)
        try:
            severity = IssueSeverity(change.severity or self.policy.default_issue_severity)
        except ValueError as exc:
            raise ValidationError("severity", "unknown severity", change.severity) from exc
        self._append(
            execution,
            LogEntryKind.ISSUE,
            actor,
            {"text": text, "severity": severity},
        )

    def _add_expense(self, execution, change, actor, now) -> None:
        if change.amount is None:
            raise ValidationError("amount", "is required")
        amount = coerce_amount("amount", change.amount)
        if amount <= 0:
            raise ValidationError("amount", "must be positive", amount)
        amount = round_money(amount)
        self._write(
            execution,
            actor,
            {"expenses_incurred": ServiceExecution.expenses_incurred + amount},
        )
        self._append(
            execution,
            LogEntryKind.EXPENSE,
            actor,
            {
                "amount": amount,
                "description": change.description,
                "category": change.category,
            },
        )

    def _pause(self, execution, change, actor, now) -> None:
        changed = self._write(
            execution,
            actor,
            {"is_paused": True, "paused_at": now},
            ServiceExecution.is_paused.is_(False),
        )
        if not changed:
            raise ExecutionPausedError(str(execution.service_agreement_id))
        self._append(
            execution,
            LogEntryKind.ASSOCIATE_NOTE,
            actor,
            {"text": change.reason or "Service execution paused", "event": "pause"},
        )

    def _resume(self, execution, change, actor, now) -> None:
        changed = self._write(
            execution,
            actor,
            {"is_paused": False, "resumed_at": now},
            ServiceExecution.is_paused.is_(True),
        )
        if not changed:
            raise ExecutionNotPausedError(str(execution.service_agreement_id))
        self._append(
            execution,
            LogEntryKind.ASSOCIATE_NOTE,
            actor,
            {"text": change.note or "Service execution resumed", "event": "resume"},
        )

    def _quality_check(self, execution, change, actor, now) -> None:
        name = _require_text("checkpoint_name", change.checkpoint_name)
        if change.quality_status is None:
            raise ValidationError("quality_status", "is required")
        try:
            status = QualityStatus(change.quality_status)
        except ValueError as exc:
            raise ValidationError(
                "quality_status", "unknown quality status", change.quality_status
            ) from exc
        self._append(
            execution,
            LogEntryKind.QUALITY_CHECKPOINT,
            actor,
            {"checkpoint": name, "status": status, "notes": change.note},
        )

    def _location_feedback(self, execution, change, actor, now) -> None:
        text = _require_text("text", change.text)
        rating = change.rating
        if rating is not None:
            if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
                raise ValidationError("rating", "must be an integer from 1 to 5", rating)
            self._write(execution, actor, {"satisfaction_rating": rating})
        self._append(
            execution,
            LogEntryKind.LOCATION_FEEDBACK,
            actor,
            {"text": text, "rating": rating},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_execution(
        self,
        agreement_id: UUID,
        actor: Actor,
        action: ExecutionAction | None,
    ) -> ServiceExecution:
        agreement = self.session.execute(
            select(ServiceAgreement)
            .where(ServiceAgreement.id == agreement_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if agreement is None:
            raise AgreementNotFoundError(str(agreement_id))

        held = authorities_of(actor, agreement.associate_id, agreement.location_id)
        allowed = (
            {Authority.LOCATION, Authority.SYSTEM}
            if action in _LOCATION_ACTIONS
            else {Authority.OWNER, Authority.LOCATION, Authority.SYSTEM}
        )
        if not held & allowed:
            raise ActorNotAuthorizedError(
                actor.actor_id,
                actor.role.value,
                action.value if action else "report progress on",
                str(agreement_id),
            )

        execution = self.session.execute(
            select(ServiceExecution)
            .where(ServiceExecution.service_agreement_id == agreement_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if execution is None:
            raise ExecutionNotFoundError(str(agreement_id))

        if agreement.agreement_status != AgreementStatus.ACTIVE or execution.is_closed:
            raise AgreementNotActiveError(
                str(agreement_id), agreement.agreement_status.value
            )
        return execution

    def _write(self, execution: ServiceExecution, actor: Actor, values: dict, *guards) -> bool:
        """Conditional UPDATE on an open execution.  Returns True if it matched."""
        result = self.session.execute(
            update(ServiceExecution)
            .where(
                ServiceExecution.id == execution.id,
                ServiceExecution.completed_at.is_(None),
                *guards,
            )
            .values(
                updated_by=actor.actor_id,
                version=ServiceExecution.version + 1,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0 and not guards:
            raise AgreementNotActiveError(
                str(execution.service_agreement_id), AgreementStatus.COMPLETED.value
            )
        return result.rowcount == 1

    def _append(
        self,
        execution: ServiceExecution,
        kind: LogEntryKind,
        actor: Actor,
        payload: dict[str, Any],
    ) -> None:
        payload = {**payload, "author_role": actor.role}
        self._log.append(LogSubject.EXECUTION, execution.id, kind, actor.actor_id, payload)
