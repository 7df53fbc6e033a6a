"""Rate band, start time and duration rules used by intake and revision."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketplace_kernel.domain.negotiation import (
    RateBand,
    estimate_completion,
    resolve_duration_hours,
    start_time_acceptable,
    within_rate_band,
)
from marketplace_kernel.exceptions import ErrorKind, OutOfRangeError
from marketplace_kernel.services.application_service import check_rate_band

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)
BAND = Decimal("0.15")


class TestRateBand:

    def test_band_edges(self):
        band = RateBand(Decimal("100.00"), BAND)
        assert band.tolerance == Decimal("15.0000")
        assert band.min_amount == Decimal("85.0000")
        assert band.max_amount == Decimal("115.0000")

    @pytest.mark.parametrize(
        "amount, inside",
        [
            ("85.00", True),
            ("100.00", True),
            ("115.00", True),
            ("84.99", False),
            ("115.01", False),
            ("116.00", False),
        ],
    )
    def test_inclusive_bounds(self, amount, inside):
        assert within_rate_band(Decimal(amount), Decimal("100.00"), BAND) is inside

    def test_out_of_band_amount_raises_with_bounds(self):
        with pytest.raises(OutOfRangeError) as exc_info:
            check_rate_band(Decimal("116.00"), Decimal("100.00"), BAND)
        err = exc_info.value
        assert err.kind == ErrorKind.OUT_OF_RANGE
        assert err.agreed_amount == "116.00"
        assert Decimal(err.max_amount) == Decimal("115")
        assert Decimal(err.min_amount) == Decimal("85")

    def test_in_band_amount_passes(self):
        check_rate_band(Decimal("90.00"), Decimal("100.00"), BAND)


class TestStartTime:

    def test_now_is_acceptable(self):
        assert start_time_acceptable(NOW, NOW)

    def test_past_is_rejected(self):
        assert not start_time_acceptable(NOW - timedelta(seconds=1), NOW)


class TestDuration:

    def test_override_wins(self):
        assert resolve_duration_hours(Decimal("2"), Decimal("3"), Decimal("4")) == Decimal("2")

    def test_offer_estimate_before_service_estimate(self):
        assert resolve_duration_hours(None, Decimal("3"), Decimal("4")) == Decimal("3")

    def test_service_estimate_is_last_resort(self):
        assert resolve_duration_hours(None, None, Decimal("4")) == Decimal("4")

    def test_estimated_completion(self):
        assert estimate_completion(NOW, Decimal("2.5")) == NOW + timedelta(hours=2, minutes=30)
