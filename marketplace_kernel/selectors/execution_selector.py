"""
ExecutionSelector -- execution snapshots with their activity logs.
"""

from uuid import UUID

from sqlalchemy import select

from marketplace_kernel.domain.dtos import ExecutionInfo
from marketplace_kernel.domain.values import LogSubject
from marketplace_kernel.models.execution import ServiceExecution
from marketplace_kernel.selectors.activity_log_selector import ActivityLogSelector
from marketplace_kernel.selectors.base import BaseSelector


class ExecutionSelector(BaseSelector):
    """Read-side queries over service executions."""

    def to_info(self, execution: ServiceExecution) -> ExecutionInfo:
        entries = ActivityLogSelector(self.session, self.clock).entries(
            LogSubject.EXECUTION, execution.id
        )
        return ExecutionInfo(
            id=execution.id,
            service_agreement_id=execution.service_agreement_id,
            associate_id=execution.associate_id,
            started_at=execution.started_at,
            paused_at=execution.paused_at,
            resumed_at=execution.resumed_at,
            is_paused=execution.is_paused,
            completed_at=execution.completed_at,
            completion_percentage=execution.completion_percentage,
            current_phase=execution.current_phase,
            hours_logged=execution.hours_logged,
            expenses_incurred=execution.expenses_incurred,
            satisfaction_rating=execution.satisfaction_rating,
            version=execution.version,
            entries=entries,
        )

    def get_by_agreement(self, agreement_id: UUID) -> ExecutionInfo | None:
        execution = self.session.execute(
            select(ServiceExecution)
            .where(ServiceExecution.service_agreement_id == agreement_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if execution is None:
            return None
        return self.to_info(execution)

    def for_associate(self, associate_id: str) -> list[ExecutionInfo]:
        """All executions of an associate, most recently started first."""
        executions = self.session.execute(
            select(ServiceExecution)
            .where(ServiceExecution.associate_id == associate_id)
            .order_by(ServiceExecution.started_at.desc(), ServiceExecution.id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [self.to_info(e) for e in executions]
