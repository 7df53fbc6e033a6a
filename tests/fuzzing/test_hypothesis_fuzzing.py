"""
Hypothesis-Based Fuzzing.

Property-based tests that generate adversarial inputs and verify the
marketplace invariants hold.

Boundaries fuzzed here:
- Rate band: membership matches the inclusive [min, max] range for any
  offered amount and variance
- Duration resolution: a caller override always wins
- Capacity: random apply / approve / reject / cancel sequences keep the
  offer counter equal to the held agreements and never above capacity

Boundaries not fuzzed here (covered by explicit tests):
- Concurrent claims of the last slot (tests/concurrency)
- Execution tracker parameters (tests/services/test_execution_tracker.py)
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from marketplace_kernel.domain.lifecycle import Actor, AgreementAction, OfferStatus
from marketplace_kernel.domain.negotiation import (
    RateBand,
    resolve_duration_hours,
    within_rate_band,
)
from marketplace_kernel.services import CapacityReconciler, ResultStatus

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
variances = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

OPERATIONS = st.lists(
    st.tuples(
        st.sampled_from(["apply", "approve", "reject", "cancel"]),
        st.integers(min_value=1, max_value=5),
    ),
    min_size=1,
    max_size=15,
)


class TestRateBandProperties:

    @given(offered=amounts, variance=variances, agreed=amounts)
    @settings(max_examples=300)
    def test_membership_matches_inclusive_range(self, offered, variance, agreed):
        band = RateBand(offered, variance)
        expected = band.min_amount <= agreed <= band.max_amount
        assert within_rate_band(agreed, offered, variance) is expected

    @given(offered=amounts, variance=variances)
    @settings(max_examples=200)
    def test_band_edges_and_offer_are_inside(self, offered, variance):
        band = RateBand(offered, variance)
        assert band.contains(offered)
        assert band.contains(band.min_amount)
        assert band.contains(band.max_amount)

    @given(offered=amounts, variance=variances)
    @settings(max_examples=200)
    def test_band_is_symmetric(self, offered, variance):
        band = RateBand(offered, variance)
        assert offered - band.min_amount == band.max_amount - offered


class TestDurationProperties:

    @given(
        override=st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("200"), places=2
        ),
        offer_hours=st.none() | st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("200"), places=2
        ),
    )
    @settings(max_examples=200)
    def test_positive_override_always_wins(self, override, offer_hours):
        assert resolve_duration_hours(override, offer_hours, Decimal("4.00")) == override


class TestCapacityInvariantFuzzing:
    """Random agreement traffic on one offer never breaks slot accounting."""

    @given(capacity=st.integers(min_value=1, max_value=3), operations=OPERATIONS)
    @settings(
        max_examples=40,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_counter_tracks_held_agreements(
        self,
        capacity,
        operations,
        marketplace,
        make_offer,
        make_terms,
        location_actor,
        session,
        deterministic_clock,
    ):
        offer = make_offer(max_applicants=capacity)
        reconciler = CapacityReconciler(session, deterministic_clock)
        agreements = {}

        for operation, n in operations:
            associate_id = f"assoc-{n}"
            if operation == "apply":
                result = marketplace.apply_for_offer(offer.id, associate_id, make_terms())
                if result.is_success:
                    agreements[associate_id] = result.value.id
                else:
                    assert result.status in (
                        ResultStatus.CAPACITY_EXCEEDED,
                        ResultStatus.CONFLICT,
                        ResultStatus.INVALID_STATE,
                    ), result.message
            elif associate_id in agreements:
                agreement_id = agreements[associate_id]
                if operation == "cancel":
                    marketplace.cancel_agreement(
                        agreement_id, None, Actor.associate(associate_id)
                    )
                else:
                    action = (
                        AgreementAction.APPROVE
                        if operation == "approve"
                        else AgreementAction.REJECT
                    )
                    marketplace.transition_agreement(agreement_id, action, location_actor)

            check = reconciler.verify_offer(offer.id)
            session.commit()
            assert check.consistent, check
            if check.offer_status in (OfferStatus.OPEN, OfferStatus.PENDING):
                is_full = check.current_applicants >= check.max_applicants
                assert (check.offer_status == OfferStatus.PENDING) is is_full
