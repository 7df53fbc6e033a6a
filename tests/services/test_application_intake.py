"""
Tests for ApplicationService (application intake).

Covers:
- Successful application: PROPOSED agreement, slot claimed, terms stored
- Rate band (the 100 / 116 case and both edges)
- Duplicate applications, including after a rejection
- Eligibility failures with reasons
- Start time and duration handling
- Expiry observed at apply time (lazy flip is committed)
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from marketplace_kernel.domain.dtos import OfferFilter
from marketplace_kernel.domain.eligibility import AssociateProfile
from marketplace_kernel.domain.lifecycle import AgreementAction, AgreementStatus, OfferStatus
from marketplace_kernel.domain.values import LogEntryKind
from marketplace_kernel.exceptions import OfferExpiredError, OutOfRangeError
from marketplace_kernel.services import ResultStatus


class TestSuccessfulApplication:

    def test_application_creates_proposed_agreement(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer()
        terms = make_terms(
            agreed_amount=Decimal("105.00"),
            agreed_deliverables=("mise en place",),
            specific_instructions="Use walk-in cooler",
        )

        result = marketplace.apply_for_offer(offer.id, "assoc-1", terms)

        assert result.is_success, result.message
        agreement = result.value
        assert agreement.agreement_status == AgreementStatus.PROPOSED
        assert agreement.associate_id == "assoc-1"
        assert agreement.location_id == offer.location_id
        assert agreement.agreed_amount == Decimal("105.00")
        assert agreement.agreed_deliverables == ("mise en place",)
        assert agreement.associate_accepted_at == deterministic_clock.now()
        assert agreement.version == 1

    def test_application_claims_a_slot(self, marketplace, make_offer, make_terms):
        offer = make_offer(max_applicants=3)
        marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        refreshed = marketplace.get_offer(offer.id).value
        assert refreshed.current_applicants == 1
        assert refreshed.offer_status == OfferStatus.OPEN

    def test_estimated_completion_uses_service_estimate(
        self, marketplace, make_offer, make_terms
    ):
        offer = make_offer()
        terms = make_terms()

        agreement = marketplace.apply_for_offer(offer.id, "assoc-1", terms).value

        assert agreement.estimated_completion_time == terms.agreed_start_time + timedelta(hours=4)

    def test_offer_duration_estimate_beats_service_estimate(
        self, marketplace, make_offer, make_terms
    ):
        offer = make_offer(custom_duration_estimate=Decimal("2.5"))
        terms = make_terms()

        agreement = marketplace.apply_for_offer(offer.id, "assoc-1", terms).value

        assert agreement.estimated_completion_time == terms.agreed_start_time + timedelta(
            hours=2, minutes=30
        )

    def test_caller_duration_override_wins(self, marketplace, make_offer, make_terms):
        offer = make_offer(custom_duration_estimate=Decimal("2.5"))
        terms = make_terms(duration_hours=Decimal("6"))

        agreement = marketplace.apply_for_offer(offer.id, "assoc-1", terms).value

        assert agreement.estimated_completion_time == terms.agreed_start_time + timedelta(hours=6)

    def test_non_positive_duration_override_is_rejected(
        self, marketplace, make_offer, make_terms
    ):
        offer = make_offer()
        result = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(duration_hours=Decimal("0"))
        )
        assert result.status == ResultStatus.VALIDATION
        assert result.error.field == "duration_hours"

    def test_proposal_message_becomes_first_negotiation_note(
        self, marketplace, make_offer, make_terms
    ):
        offer = make_offer()
        agreement = marketplace.apply_for_offer(
            offer.id,
            "assoc-1",
            make_terms(agreed_amount=Decimal("110"), proposal_message="Can start early"),
        ).value

        assert len(agreement.negotiation_notes) == 1
        note = agreement.negotiation_notes[0]
        assert note.seq == 1
        assert note.entry_kind == LogEntryKind.NEGOTIATION_NOTE
        assert note.author_id == "assoc-1"
        assert note.payload["text"] == "Can start early"
        assert note.payload["proposed_amount"] == "110"


class TestRateBand:

    def test_116_against_100_is_out_of_range(self, marketplace, make_offer, make_terms):
        offer = make_offer()

        result = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=Decimal("116"))
        )

        assert result.status == ResultStatus.OUT_OF_RANGE
        assert isinstance(result.error, OutOfRangeError)
        assert Decimal(result.error.min_amount) == Decimal("85")
        assert Decimal(result.error.max_amount) == Decimal("115")
        assert marketplace.get_offer(offer.id).value.current_applicants == 0

    @pytest.mark.parametrize("amount", ["85.00", "115.00", "100"])
    def test_band_edges_are_inclusive(self, marketplace, make_offer, make_terms, amount):
        offer = make_offer()
        result = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=Decimal(amount))
        )
        assert result.is_success, result.message

    def test_just_below_band_is_rejected(self, marketplace, make_offer, make_terms):
        offer = make_offer()
        result = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=Decimal("84.99"))
        )
        assert result.status == ResultStatus.OUT_OF_RANGE

    def test_float_amount_is_a_validation_error(self, marketplace, make_offer, make_terms):
        offer = make_offer()
        result = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=100.0)
        )
        assert result.status == ResultStatus.VALIDATION
        assert result.error.field == "agreed_amount"


class TestIntakeRejections:

    def test_unknown_offer(self, marketplace, make_terms):
        result = marketplace.apply_for_offer(uuid4(), "assoc-1", make_terms())
        assert result.status == ResultStatus.NOT_FOUND

    def test_duplicate_application_conflicts(self, marketplace, make_offer, make_terms):
        offer = make_offer(max_applicants=3)
        marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.status == ResultStatus.CONFLICT
        assert result.error_code == "DUPLICATE_APPLICATION"
        assert marketplace.get_offer(offer.id).value.current_applicants == 1

    def test_rejected_associate_cannot_reapply(
        self, marketplace, make_offer, make_terms, location_actor
    ):
        offer = make_offer(max_applicants=2)
        first = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms()).value
        marketplace.transition_agreement(first.id, AgreementAction.REJECT, location_actor)

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.status == ResultStatus.CONFLICT

    def test_missing_certification_is_not_eligible(
        self, marketplace, make_offer, make_terms, certified_service_id
    ):
        offer = make_offer(service_id=certified_service_id)

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.status == ResultStatus.NOT_ELIGIBLE
        assert result.error.reasons == ("missing_certification",)

    def test_directory_profile_makes_associate_eligible(
        self, marketplace, make_offer, make_terms, certified_service_id, directory
    ):
        offer = make_offer(service_id=certified_service_id, minimum_experience_level=2)
        directory.add(
            "assoc-1",
            AssociateProfile(experience_level=3, certifications=frozenset({"food_handler"})),
        )

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.is_success, result.message

    def test_explicit_profile_overrides_directory(
        self, marketplace, make_offer, make_terms, directory
    ):
        offer = make_offer(minimum_experience_level=2)
        directory.add("assoc-1", AssociateProfile(experience_level=5))

        result = marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(), profile=AssociateProfile(experience_level=1)
        )

        assert result.status == ResultStatus.NOT_ELIGIBLE
        assert result.error.reasons == ("insufficient_experience",)

    def test_all_failing_reasons_are_reported(self, marketplace, make_offer, make_terms):
        offer = make_offer(
            excluded_associates=("assoc-1",),
            preferred_associates=("assoc-2",),
        )

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.error.reasons == ("excluded", "not_preferred")

    def test_start_time_in_the_past(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer()
        result = marketplace.apply_for_offer(
            offer.id,
            "assoc-1",
            make_terms(agreed_start_time=deterministic_clock.now() - timedelta(minutes=1)),
        )
        assert result.status == ResultStatus.INVALID_START_TIME

    def test_start_time_now_is_accepted(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer()
        result = marketplace.apply_for_offer(
            offer.id,
            "assoc-1",
            make_terms(agreed_start_time=deterministic_clock.now()),
        )
        assert result.is_success, result.message

    def test_offer_no_longer_open(
        self, marketplace, make_offer, make_terms, location_actor
    ):
        offer = make_offer(max_applicants=2)
        first = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms()).value
        marketplace.transition_agreement(first.id, AgreementAction.APPROVE, location_actor)

        result = marketplace.apply_for_offer(offer.id, "assoc-2", make_terms())

        assert result.status == ResultStatus.INVALID_STATE
        assert result.error_code == "OFFER_NOT_OPEN"
        assert result.error.offer_status == "accepted"

    def test_cancelled_offer_rejects_applications(
        self, marketplace, make_offer, make_terms, location_actor
    ):
        offer = make_offer()
        marketplace.cancel_offer(offer.id, location_actor)

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.status == ResultStatus.INVALID_STATE

    def test_failed_application_leaves_no_agreement(
        self, marketplace, make_offer, make_terms
    ):
        offer = make_offer()
        marketplace.apply_for_offer(
            offer.id, "assoc-1", make_terms(agreed_amount=Decimal("200"))
        )

        assert marketplace.list_agreements().value == []
        assert marketplace.get_offer(offer.id).value.current_applicants == 0


class TestExpiryAtApplyTime:

    def test_lapsed_offer_is_flipped_and_flip_is_kept(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer(expires_at=deterministic_clock.now() + timedelta(hours=1))
        deterministic_clock.advance(hours=2)

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.status == ResultStatus.EXPIRED
        assert isinstance(result.error, OfferExpiredError)
        stored = marketplace.get_offer(offer.id).value
        assert stored.offer_status == OfferStatus.EXPIRED
        assert stored.current_applicants == 0

    def test_lapsed_offer_is_hidden_from_listing_then_apply_is_expired(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer(expires_at=deterministic_clock.now() + timedelta(hours=1))
        deterministic_clock.advance(hours=2)

        assert marketplace.list_offers().value == []
        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.status == ResultStatus.EXPIRED
        assert not result.retryable
        included = marketplace.list_offers(OfferFilter(include_expired=True)).value
        assert [o.id for o in included] == [offer.id]
        assert included[0].offer_status == OfferStatus.EXPIRED

    def test_offer_expiring_exactly_now_is_still_open(
        self, marketplace, make_offer, make_terms, deterministic_clock
    ):
        offer = make_offer(expires_at=deterministic_clock.now() + timedelta(hours=1))
        deterministic_clock.advance(hours=1)

        result = marketplace.apply_for_offer(offer.id, "assoc-1", make_terms())

        assert result.is_success, result.message
