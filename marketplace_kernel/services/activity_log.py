"""
ActivityLogService -- gap-free append-only logs for agreements and executions.

Responsibility:
    Appends negotiation notes to agreements and tracker entries
    (milestones, issues, time, expenses, reports, checkpoints, feedback)
    to executions.

Architecture position:
    Kernel > Services -- imperative shell.  Called by ApplicationService,
    AgreementService, OfferService and ExecutionService inside their
    caller's transaction.

Invariants enforced:
    - The position counter lives on the owning row (``note_seq`` or
      ``log_seq``).  An append first bumps it with
      ``UPDATE ... SET seq = seq + 1`` (row lock on PostgreSQL, write lock
      on SQLite), then reads the new value and INSERTs at that position.
      Two racing appends therefore serialize on the owning row and both
      entries survive with consecutive positions.
    - The aggregate-max-plus-one pattern is never used.

Failure modes:
    - AgreementNotFoundError / ExecutionNotFoundError if the owning row is
      missing (the bump matched zero rows).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select, update

from marketplace_kernel.domain.values import LogEntryKind, LogSubject
from marketplace_kernel.exceptions import (
    AgreementNotFoundError,
    ExecutionNotFoundError,
)
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.models.activity_log import ActivityLogEntry
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.execution import ServiceExecution
from marketplace_kernel.services.base import BaseService

logger = get_logger("services.activity_log")


def _jsonable(value: Any) -> Any:
    """Convert payload values to JSON-native types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return value


class ActivityLogService(BaseService):
    """
    Appends entries to per-subject activity logs.

    Guarantees:
        - Entry positions start at 1 and are gap-free per subject.
        - ``recorded_at`` is taken from the injected clock.
    """

    def append_negotiation_note(
        self,
        agreement_id: UUID,
        author_id: str,
        text: str,
        **extra: Any,
    ) -> ActivityLogEntry:
        """Append a NEGOTIATION_NOTE to an agreement."""
        payload = {"text": text, **extra}
        return self.append(
            LogSubject.AGREEMENT,
            agreement_id,
            LogEntryKind.NEGOTIATION_NOTE,
            author_id,
            payload,
        )

    def append(
        self,
        subject_type: LogSubject,
        subject_id: UUID,
        entry_kind: LogEntryKind,
        author_id: str,
        payload: dict[str, Any],
    ) -> ActivityLogEntry:
        """
        Append one entry to the subject's log.

        Postconditions:
            - The owning row's counter equals the new entry's ``seq``.
        """
        seq = self._bump_counter(subject_type, subject_id)

        entry = ActivityLogEntry(
            subject_type=subject_type,
            subject_id=subject_id,
            seq=seq,
            entry_kind=entry_kind,
            recorded_at=self.clock.now(),
            author_id=author_id,
            payload=_jsonable(payload),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "activity_appended",
            extra={
                "subject_type": subject_type.value,
                "subject_id": str(subject_id),
                "seq": seq,
                "entry_kind": entry_kind.value,
            },
        )
        return entry

    def _bump_counter(self, subject_type: LogSubject, subject_id: UUID) -> int:
        if subject_type == LogSubject.AGREEMENT:
            model, column = ServiceAgreement, ServiceAgreement.note_seq
            stmt = (
                update(ServiceAgreement)
                .where(ServiceAgreement.id == subject_id)
                .values(note_seq=ServiceAgreement.note_seq + 1)
            )
        else:
            model, column = ServiceExecution, ServiceExecution.log_seq
            stmt = (
                update(ServiceExecution)
                .where(ServiceExecution.id == subject_id)
                .values(
                    log_seq=ServiceExecution.log_seq + 1,
                    version=ServiceExecution.version + 1,
                )
            )

        result = self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if subject_type == LogSubject.AGREEMENT:
                raise AgreementNotFoundError(str(subject_id))
            raise ExecutionNotFoundError(str(subject_id))

        return self.session.execute(
            select(column).where(model.id == subject_id)
        ).scalar_one()
