"""
True concurrency tests for slot claims and execution logs.

Each worker thread gets its own session and its own MarketplaceService,
waits on a Barrier, then fires one operation. The checks afterwards run
on a fresh session.

Expected Behavior:
- The last slot of an offer is won by exactly one applicant; every
  other applicant gets CAPACITY_EXCEEDED.
- Concurrent appends to one execution log leave gap-free positions.
- Concurrent log_time calls lose no hours.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from marketplace_kernel.domain.dtos import ExecutionUpdate
from marketplace_kernel.domain.lifecycle import Actor, AgreementStatus
from marketplace_kernel.domain.values import ExecutionAction
from marketplace_kernel.services import (
    CapacityReconciler,
    MarketplaceService,
    ResultStatus,
)

pytestmark = [pytest.mark.slow_locks]

WORKERS = 6


def _run_concurrently(session_factory, clock, worker, count=WORKERS):
    """Run ``worker(marketplace, n)`` in ``count`` threads released together."""
    barrier = Barrier(count)

    def task(n):
        session = session_factory()
        try:
            marketplace = MarketplaceService(session, clock=clock)
            barrier.wait(timeout=30)
            return worker(marketplace, n)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(task, range(count)))


class TestLastSlotRace:

    def test_exactly_one_applicant_wins_the_last_slot(
        self, make_offer, make_terms, deterministic_clock, session_factory
    ):
        offer = make_offer(max_applicants=1)
        terms = make_terms()

        results = _run_concurrently(
            session_factory,
            deterministic_clock,
            lambda marketplace, n: marketplace.apply_for_offer(offer.id, f"assoc-{n}", terms),
        )

        winners = [r for r in results if r.is_success]
        losers = [r for r in results if not r.is_success]
        assert len(winners) == 1
        assert {r.status for r in losers} == {ResultStatus.CAPACITY_EXCEEDED}

        check_session = session_factory()
        check = CapacityReconciler(check_session, deterministic_clock).verify_offer(offer.id)
        assert check.consistent
        assert check.current_applicants == 1

        listed = MarketplaceService(check_session, clock=deterministic_clock).list_agreements()
        assert [a.agreement_status for a in listed.value] == [AgreementStatus.PROPOSED]

    def test_partial_capacity_is_never_oversold(
        self, make_offer, make_terms, deterministic_clock, session_factory
    ):
        offer = make_offer(max_applicants=3)
        terms = make_terms()

        results = _run_concurrently(
            session_factory,
            deterministic_clock,
            lambda marketplace, n: marketplace.apply_for_offer(offer.id, f"assoc-{n}", terms),
        )

        assert sum(1 for r in results if r.is_success) == 3
        check = CapacityReconciler(session_factory(), deterministic_clock).verify_offer(offer.id)
        assert check.consistent
        assert check.current_applicants == 3


class TestExecutionLogRace:

    def test_concurrent_appends_keep_positions_gap_free(
        self, active_agreement, deterministic_clock, session_factory
    ):
        associate = Actor.associate("assoc-1")

        def worker(marketplace, n):
            if n % 2:
                return marketplace.add_progress_report(
                    active_agreement.id, "hourly", {"worker": n}, associate
                )
            return marketplace.update_execution(
                active_agreement.id,
                ExecutionUpdate(action=ExecutionAction.ADD_MILESTONE, text=f"step {n}"),
                associate,
            )

        results = _run_concurrently(session_factory, deterministic_clock, worker)
        assert all(r.is_success for r in results), [r.message for r in results]

        execution = MarketplaceService(
            session_factory(), clock=deterministic_clock
        ).get_execution(active_agreement.id).value
        assert [e.seq for e in execution.entries] == list(range(1, WORKERS + 1))

    def test_concurrent_time_logging_loses_nothing(
        self, active_agreement, deterministic_clock, session_factory
    ):
        associate = Actor.associate("assoc-1")

        results = _run_concurrently(
            session_factory,
            deterministic_clock,
            lambda marketplace, n: marketplace.update_execution(
                active_agreement.id,
                ExecutionUpdate(action=ExecutionAction.LOG_TIME, hours=Decimal("0.25")),
                associate,
            ),
        )
        assert all(r.is_success for r in results), [r.message for r in results]

        execution = MarketplaceService(
            session_factory(), clock=deterministic_clock
        ).get_execution(active_agreement.id).value
        assert execution.hours_logged == Decimal("0.25") * WORKERS
