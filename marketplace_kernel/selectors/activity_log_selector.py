"""ActivityLogSelector -- ordered reads of an agreement's or execution's log."""

from uuid import UUID

from sqlalchemy import select

from marketplace_kernel.domain.dtos import LogEntryInfo
from marketplace_kernel.domain.values import LogEntryKind, LogSubject
from marketplace_kernel.models.activity_log import ActivityLogEntry
from marketplace_kernel.selectors.base import BaseSelector


class ActivityLogSelector(BaseSelector):

    @staticmethod
    def to_info(entry: ActivityLogEntry) -> LogEntryInfo:
        return LogEntryInfo(
            seq=entry.seq,
            entry_kind=entry.entry_kind,
            recorded_at=entry.recorded_at,
            author_id=entry.author_id,
            payload=dict(entry.payload or {}),
        )

    def entries(
        self,
        subject_type: LogSubject,
        subject_id: UUID,
        kind: LogEntryKind | None = None,
    ) -> tuple[LogEntryInfo, ...]:
        stmt = select(ActivityLogEntry).where(
            ActivityLogEntry.subject_type == subject_type,
            ActivityLogEntry.subject_id == subject_id,
        )
        if kind is not None:
            stmt = stmt.where(ActivityLogEntry.entry_kind == kind)
        rows = self.session.execute(stmt.order_by(ActivityLogEntry.seq)).scalars()
        return tuple(self.to_info(e) for e in rows)
