"""
Tests for the MarketplaceService facade.

Covers the unit-of-work contract (commit / rollback / preserved writes),
the MarketplaceResult shape, operation logging, the expiry sweep, and
an end-to-end walk through a whole offer.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace_kernel.domain.dtos import ExecutionUpdate, OfferFilter, TransitionParams
from marketplace_kernel.domain.lifecycle import (
    Actor,
    AgreementAction,
    AgreementStatus,
    OfferStatus,
)
from marketplace_kernel.domain.values import ExecutionAction
from marketplace_kernel.exceptions import ErrorKind
from marketplace_kernel.services import MarketplaceResult, MarketplaceService, ResultStatus


class TestResultShape:

    def test_every_error_kind_has_a_result_status(self):
        for kind in ErrorKind:
            assert ResultStatus.from_kind(kind).value == kind.value

    def test_ok_result(self):
        result = MarketplaceResult.ok(42)
        assert result.is_success
        assert result.value == 42
        assert result.error is None
        assert result.error_code is None
        assert not result.retryable


class TestUnitOfWork:

    def test_success_is_committed(self, marketplace, make_offer, session_factory):
        offer = make_offer()

        other = session_factory()
        fresh = MarketplaceService(other).get_offer(offer.id)
        assert fresh.is_success
        assert fresh.value.offer_title == "Morning prep shift"

    def test_rejection_is_rolled_back(
        self, marketplace, make_offer, make_terms, session_factory
    ):
        offer = make_offer()
        rejected = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=Decimal("500"))
        )
        assert not rejected.is_success

        other = session_factory()
        stored = MarketplaceService(other).get_offer(offer.id).value
        assert stored.current_applicants == 0

    def test_expired_flip_survives_the_failed_apply(
        self, marketplace, make_offer, make_terms, deterministic_clock, session_factory
    ):
        offer = make_offer(expires_at=deterministic_clock.now() + timedelta(minutes=30))
        deterministic_clock.advance(hours=1)

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())
        assert result.status == ResultStatus.EXPIRED

        other = session_factory()
        stored = MarketplaceService(other, clock=deterministic_clock).get_offer(offer.id).value
        assert stored.offer_status == OfferStatus.EXPIRED

    def test_unexpected_error_rolls_back_and_reraises(
        self, marketplace, make_offer, monkeypatch, captured_logs
    ):
        offer = make_offer()

        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(marketplace._offers, "get_offer", boom)

        with pytest.raises(RuntimeError, match="disk on fire"):
            marketplace.get_offer(offer.id)

        failed = [r for r in captured_logs() if r["message"] == "marketplace_operation_failed"]
        assert len(failed) == 1
        assert failed[0]["level"] == "ERROR"
        assert failed[0]["operation"] == "get_offer"
        assert failed[0]["exc_type"] == "RuntimeError"

    def test_without_auto_commit_the_caller_owns_the_boundary(
        self, session, deterministic_clock, make_offer, make_terms, session_factory
    ):
        offer = make_offer()
        manual = MarketplaceService(session, clock=deterministic_clock, auto_commit=False)

        applied = manual.apply_for_offer(offer.id, "assoc-1", make_terms())
        assert applied.is_success
        session.rollback()
        assert manual.get_offer(offer.id).value.current_applicants == 0
        session.rollback()

        manual.apply_for_offer(offer.id, "assoc-1", make_terms())
        session.commit()
        other = session_factory()
        assert MarketplaceService(other).get_offer(offer.id).value.current_applicants == 1


class TestOperationLogging:

    def test_completed_operation_is_logged_with_context(
        self, marketplace, make_offer, captured_logs
    ):
        offer = make_offer()
        marketplace.get_offer(offer.id)

        completed = [
            r for r in captured_logs()
            if r["message"] == "marketplace_operation_completed" and r["operation"] == "get_offer"
        ]
        assert len(completed) == 1
        assert completed[0]["offer_id"] == str(offer.id)
        assert "correlation_id" in completed[0]
        assert completed[0]["duration_ms"] >= 0

    def test_rejection_log_carries_error_kind(
        self, marketplace, make_offer, make_terms, captured_logs
    ):
        offer = make_offer()
        marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=Decimal("116"))
        )

        rejected = [
            r for r in captured_logs() if r["message"] == "marketplace_operation_rejected"
        ]
        assert rejected[-1]["operation"] == "apply_for_offer"
        assert rejected[-1]["error_kind"] == "out_of_range"
        assert rejected[-1]["error_code"] == "OUT_OF_RANGE"
        assert rejected[-1]["associate_id"] == "assoc-1"


class TestExpirySweep:

    def test_sweep_flips_only_lapsed_open_offers(
        self, marketplace, make_offer, location_actor, deterministic_clock
    ):
        now = deterministic_clock.now()
        lapsing = make_offer(expires_at=now + timedelta(hours=1))
        lasting = make_offer(expires_at=now + timedelta(days=3))
        no_window = make_offer()
        cancelled = make_offer(expires_at=now + timedelta(hours=1))
        marketplace.cancel_offer(cancelled.id, location_actor)

        deterministic_clock.advance(hours=2)
        swept = marketplace.sweep_expired_offers()

        assert swept.value == [lapsing.id]
        assert marketplace.get_offer(lapsing.id).value.offer_status == OfferStatus.EXPIRED
        assert marketplace.get_offer(lasting.id).value.offer_status == OfferStatus.OPEN
        assert marketplace.get_offer(no_window.id).value.offer_status == OfferStatus.OPEN
        assert marketplace.get_offer(cancelled.id).value.offer_status == OfferStatus.CANCELLED

        assert marketplace.sweep_expired_offers().value == []

    def test_lapsed_offer_reads_as_expired_before_any_write(
        self, marketplace, make_offer, deterministic_clock
    ):
        offer = make_offer(expires_at=deterministic_clock.now() + timedelta(hours=1))
        deterministic_clock.advance(hours=2)

        info = marketplace.get_offer(offer.id).value

        assert info.offer_status == OfferStatus.OPEN
        assert info.effective_status == OfferStatus.EXPIRED

    def test_listing_persists_expiry(self, marketplace, make_offer, deterministic_clock):
        offer = make_offer(expires_at=deterministic_clock.now() + timedelta(hours=1))
        deterministic_clock.advance(hours=2)

        assert marketplace.list_offers().value == []

        stored = marketplace.list_offers(OfferFilter(status=OfferStatus.EXPIRED)).value
        assert [o.id for o in stored] == [offer.id]

    def test_expiry_does_not_touch_proposed_agreements(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer(
            max_applicants=2, expires_at=deterministic_clock.now() + timedelta(hours=1)
        )
        agreement = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms()).value
        deterministic_clock.advance(hours=2)
        marketplace.sweep_expired_offers()

        listed = marketplace.list_agreements().value
        assert [a.id for a in listed] == [agreement.id]
        assert listed[0].agreement_status == AgreementStatus.PROPOSED


class TestEndToEnd:

    def test_offer_from_posting_to_completion(
        self, marketplace, make_offer, make_terms, location_actor, deterministic_clock
    ):
        associate = Actor.associate("assoc-7")
        offer = make_offer(max_applicants=2, offered_amount=Decimal("200.00"))

        applied = marketplace.apply_for_offer(
            offer.id,
            "assoc-7",
            make_terms(agreed_amount=Decimal("210.00"), proposal_message="Available all day"),
        )
        other = marketplace.apply_for_offer(
            offer.id, "assoc-8", make_terms(agreed_amount=Decimal("200"))
        )
        assert applied.is_success and other.is_success

        marketplace.transition_agreement(
            other.value.id,
            AgreementAction.REJECT,
            location_actor,
            TransitionParams(reason="Picked another associate"),
        )
        marketplace.transition_agreement(applied.value.id, AgreementAction.APPROVE, location_actor)

        deterministic_clock.advance(days=1)
        started = marketplace.transition_agreement(
            applied.value.id, AgreementAction.START, associate
        )
        assert started.value.offer_status == OfferStatus.IN_PROGRESS

        for percentage in (25, 50, 100):
            marketplace.update_execution(
                applied.value.id,
                ExecutionUpdate(action=ExecutionAction.UPDATE_PROGRESS, percentage=percentage),
                associate,
            )
        marketplace.update_execution(
            applied.value.id,
            ExecutionUpdate(action=ExecutionAction.LOG_TIME, hours=Decimal("7.5")),
            associate,
        )
        marketplace.update_execution(
            applied.value.id,
            ExecutionUpdate(action=ExecutionAction.LOCATION_FEEDBACK, text="Spotless", rating=4),
            location_actor,
        )

        done = marketplace.transition_agreement(
            applied.value.id,
            AgreementAction.COMPLETE,
            location_actor,
            TransitionParams(final_amount_paid=Decimal("215.00")),
        )

        assert done.is_success, done.message
        assert done.value.offer_status == OfferStatus.COMPLETED
        execution = marketplace.get_execution(applied.value.id).value
        assert execution.hours_logged == Decimal("7.5")
        assert execution.satisfaction_rating == 4
        assert execution.completed_at == deterministic_clock.now()

        final_offer = marketplace.get_offer(offer.id).value
        assert final_offer.current_applicants == 0
        assert final_offer.offer_status == OfferStatus.COMPLETED
