"""
ORM model tests for the activity log.

Tests: ActivityLogEntry -- append-only enforcement through the ORM
listeners, the per-subject position constraint, and the ordered read
path through ActivityLogSelector.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from marketplace_kernel.domain.dtos import TransitionParams
from marketplace_kernel.domain.lifecycle import AgreementAction
from marketplace_kernel.domain.values import LogEntryKind, LogSubject
from marketplace_kernel.exceptions import ImmutabilityViolationError
from marketplace_kernel.models.activity_log import ActivityLogEntry
from marketplace_kernel.selectors.activity_log_selector import ActivityLogSelector
from marketplace_kernel.services.activity_log import ActivityLogService


@pytest.fixture
def note(session, marketplace, make_offer, make_terms):
    """The NEGOTIATION_NOTE written for a proposal message."""
    offer = make_offer()
    applied = marketplace.apply_for_offer(
        offer.id, "assoc-1", make_terms(proposal_message="Can start early")
    )
    assert applied.is_success, applied.message
    return session.execute(
        select(ActivityLogEntry).where(ActivityLogEntry.subject_id == applied.value.id)
    ).scalar_one()


class TestActivityLogImmutability:

    def test_entry_is_stored(self, note):
        assert note.subject_type == LogSubject.AGREEMENT
        assert note.entry_kind == LogEntryKind.NEGOTIATION_NOTE
        assert note.seq == 1
        assert note.payload["text"] == "Can start early"

    def test_update_is_refused(self, session, note):
        note.payload = {"text": "rewritten"}

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "ActivityLogEntry"
        stored = session.get(ActivityLogEntry, note.id, populate_existing=True)
        assert stored.payload["text"] == "Can start early"

    def test_delete_is_refused(self, session, note):
        session.delete(note)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert session.get(ActivityLogEntry, note.id) is not None


class TestActivityLogConstraints:

    def test_position_is_unique_per_subject(self, session, note):
        session.add(
            ActivityLogEntry(
                subject_type=note.subject_type,
                subject_id=note.subject_id,
                seq=note.seq,
                entry_kind=LogEntryKind.NEGOTIATION_NOTE,
                recorded_at=note.recorded_at,
                author_id="intruder",
                payload={"text": "duplicate"},
            )
        )

        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()


class TestActivityLogReads:

    def test_selector_returns_entries_in_position_order(
        self, session, marketplace, note, location_actor
    ):
        marketplace.transition_agreement(
            note.subject_id,
            AgreementAction.REJECT,
            location_actor,
            TransitionParams(reason="Covered internally"),
        )

        entries = ActivityLogSelector(session).entries(LogSubject.AGREEMENT, note.subject_id)

        assert [e.seq for e in entries] == [1, 2]
        assert [e.payload["text"] for e in entries] == [
            "Can start early",
            "Covered internally",
        ]
        assert entries[1].author_id == "mgr-100"

    def test_reads_go_through_the_selector(self):
        assert not any(
            name.startswith(("entries", "get", "list"))
            for name in vars(ActivityLogService)
        )
