"""
Negotiation rules -- rate band, start time, and completion estimate.

Responsibility:
    Pure checks applied to an associate's proposed terms at application
    time and again on revision.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Current time is
    passed in, never read.

Invariants enforced:
    - |agreed - offered| <= band * offered.  Comparison is exact Decimal
      arithmetic; boundaries are inclusive.
    - agreed_start_time >= now.
    - estimated_completion_time = agreed_start_time + duration, where the
      duration is the caller override, else the offer's custom estimate,
      else the service estimate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal


@dataclass(frozen=True)
class RateBand:
    """Inclusive range of acceptable amounts around an offered amount."""

    offered_amount: Decimal
    variance: Decimal

    @property
    def tolerance(self) -> Decimal:
        return self.offered_amount * self.variance

    @property
    def min_amount(self) -> Decimal:
        return self.offered_amount - self.tolerance

    @property
    def max_amount(self) -> Decimal:
        return self.offered_amount + self.tolerance

    def contains(self, amount: Decimal) -> bool:
        return abs(amount - self.offered_amount) <= self.tolerance


def within_rate_band(
    agreed_amount: Decimal,
    offered_amount: Decimal,
    variance: Decimal,
) -> bool:
    """True when ``agreed_amount`` lies inside the negotiable band."""
    return RateBand(offered_amount, variance).contains(agreed_amount)


def start_time_acceptable(agreed_start_time: datetime, now: datetime) -> bool:
    return agreed_start_time >= now


def resolve_duration_hours(
    override: Decimal | None,
    offer_estimate: Decimal | None,
    service_estimate: Decimal,
) -> Decimal:
    """Pick the first duration that is set, most specific first."""
    if override is not None:
        return override
    if offer_estimate is not None:
        return offer_estimate
    return service_estimate


def estimate_completion(agreed_start_time: datetime, duration_hours: Decimal) -> datetime:
    # timedelta has microsecond resolution; Decimal -> float is safe here.
    return agreed_start_time + timedelta(hours=float(duration_hours))
