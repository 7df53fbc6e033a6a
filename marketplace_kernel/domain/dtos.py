"""
Data Transfer Objects for the marketplace kernel.

Responsibility:
    Immutable value objects that cross the boundary between the
    transaction-owning facade, the services, and the selectors.  Inputs
    (``OfferSpec``, ``OfferPatch``, ``ProposedTerms``, ...) describe what a
    caller asks for; outputs (``OfferInfo``, ``AgreementInfo``, ...) are
    read-side snapshots built by selectors.  No ORM object ever leaves the
    kernel.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - All DTOs are frozen dataclasses; collections are tuples.
    - Amounts and hours are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from marketplace_kernel.domain.lifecycle import (
    AgreementAction,
    AgreementStatus,
    OfferStatus,
)
from marketplace_kernel.domain.values import (
    ExecutionAction,
    IssueSeverity,
    LogEntryKind,
    PaymentStructure,
    QualityStatus,
    ServiceCategory,
    ServiceComplexity,
    Urgency,
)


# =========================================================================
# Inputs
# =========================================================================


@dataclass(frozen=True)
class OfferSpec:
    """Everything a location supplies when posting an offer.

    ``None`` for ``urgency``, ``payment_structure`` and ``max_applicants``
    means "use the policy default".
    """

    service_id: UUID
    location_id: str
    offer_title: str
    preferred_start_date: datetime
    offered_amount: Decimal
    custom_instructions: str | None = None
    latest_start_date: datetime | None = None
    must_complete_by: datetime | None = None
    expires_at: datetime | None = None
    payment_structure: PaymentStructure | None = None
    hourly_rate: Decimal | None = None
    max_hours: Decimal | None = None
    expense_reimbursement: bool = False
    custom_duration_estimate: Decimal | None = None
    preferred_associates: tuple[str, ...] = ()
    excluded_associates: tuple[str, ...] = ()
    minimum_experience_level: int = 0
    required_location_experience: bool = False
    urgency: Urgency | None = None
    max_applicants: int | None = None
    internal_notes: str | None = None


@dataclass(frozen=True)
class OfferPatch:
    """Partial update of an offer.  ``None`` leaves a field unchanged."""

    offer_title: str | None = None
    custom_instructions: str | None = None
    preferred_start_date: datetime | None = None
    latest_start_date: datetime | None = None
    must_complete_by: datetime | None = None
    expires_at: datetime | None = None
    offered_amount: Decimal | None = None
    payment_structure: PaymentStructure | None = None
    hourly_rate: Decimal | None = None
    max_hours: Decimal | None = None
    expense_reimbursement: bool | None = None
    custom_duration_estimate: Decimal | None = None
    preferred_associates: tuple[str, ...] | None = None
    excluded_associates: tuple[str, ...] | None = None
    minimum_experience_level: int | None = None
    required_location_experience: bool | None = None
    urgency: Urgency | None = None
    max_applicants: int | None = None
    internal_notes: str | None = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class OfferFilter:
    location_id: str | None = None
    status: OfferStatus | None = None
    urgency: Urgency | None = None
    associate_id: str | None = None
    include_expired: bool = False


@dataclass(frozen=True)
class ProposedTerms:
    """An associate's application terms.

    ``duration_hours`` overrides the offer's and the service's duration
    estimate when set.
    """

    agreed_amount: Decimal
    agreed_start_time: datetime
    duration_hours: Decimal | None = None
    specific_instructions: str | None = None
    agreed_deliverables: tuple[str, ...] = ()
    quality_requirements: tuple[str, ...] = ()
    cancellation_policy: str | None = None
    proposal_message: str | None = None


@dataclass(frozen=True)
class TransitionParams:
    """Optional inputs for agreement actions.

    ``reason`` feeds reject/cancel notes, ``final_amount_paid`` the
    complete action, ``revised_terms`` the revise action.
    """

    reason: str | None = None
    note: str | None = None
    final_amount_paid: Decimal | None = None
    revised_terms: ProposedTerms | None = None


@dataclass(frozen=True)
class AgreementFilter:
    associate_id: str | None = None
    location_id: str | None = None
    offer_id: UUID | None = None
    status: AgreementStatus | None = None
    include_completed: bool = False


@dataclass(frozen=True)
class ExecutionUpdate:
    """One execution tracker action and its parameters.

    Only the parameters relevant to ``action`` are read.
    """

    action: ExecutionAction
    percentage: int | None = None
    phase: str | None = None
    note: str | None = None
    text: str | None = None
    hours: Decimal | None = None
    description: str | None = None
    severity: IssueSeverity | None = None
    amount: Decimal | None = None
    category: str | None = None
    reason: str | None = None
    checkpoint_name: str | None = None
    quality_status: QualityStatus | None = None
    rating: int | None = None


# =========================================================================
# Outputs
# =========================================================================


@dataclass(frozen=True)
class ServiceInfo:
    id: UUID
    service_name: str
    service_code: str
    category: ServiceCategory
    complexity: ServiceComplexity
    estimated_duration_hours: Decimal
    duration_min_hours: Decimal | None
    duration_max_hours: Decimal | None
    required_skills: tuple[str, ...]
    required_certifications: tuple[str, ...]
    suggested_base_rate: Decimal | None
    is_active: bool
    version_number: int


@dataclass(frozen=True)
class OfferInfo:
    """Read-side snapshot of an offer.

    ``effective_status`` is EXPIRED for an OPEN offer whose window lapsed
    even before the EXPIRED status has been written.
    """

    id: UUID
    service_id: UUID
    location_id: str
    offer_title: str
    custom_instructions: str | None
    preferred_start_date: datetime
    latest_start_date: datetime | None
    must_complete_by: datetime | None
    expires_at: datetime | None
    offered_amount: Decimal
    payment_structure: PaymentStructure
    hourly_rate: Decimal | None
    max_hours: Decimal | None
    expense_reimbursement: bool
    custom_duration_estimate: Decimal | None
    preferred_associates: tuple[str, ...]
    excluded_associates: tuple[str, ...]
    minimum_experience_level: int
    required_location_experience: bool
    urgency: Urgency
    max_applicants: int
    current_applicants: int
    offer_status: OfferStatus
    effective_status: OfferStatus
    posted_by: str
    posted_at: datetime
    internal_notes: str | None
    version: int

    @property
    def available_slots(self) -> int:
        return self.max_applicants - self.current_applicants


@dataclass(frozen=True)
class LogEntryInfo:
    seq: int
    entry_kind: LogEntryKind
    recorded_at: datetime
    author_id: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class AgreementInfo:
    id: UUID
    service_offer_id: UUID
    associate_id: str
    location_id: str
    agreed_amount: Decimal
    agreed_start_time: datetime
    estimated_completion_time: datetime
    specific_instructions: str | None
    agreed_deliverables: tuple[str, ...]
    quality_requirements: tuple[str, ...]
    cancellation_policy: str | None
    agreement_status: AgreementStatus
    associate_accepted_at: datetime | None
    location_approved_at: datetime | None
    approved_by: str | None
    actual_start_time: datetime | None
    actual_completion_time: datetime | None
    final_amount_paid: Decimal | None
    cancelled_at: datetime | None
    cancelled_by: str | None
    cancellation_reason: str | None
    version: int
    negotiation_notes: tuple[LogEntryInfo, ...] = ()


@dataclass(frozen=True)
class ExecutionInfo:
    id: UUID
    service_agreement_id: UUID
    associate_id: str
    started_at: datetime
    paused_at: datetime | None
    resumed_at: datetime | None
    is_paused: bool
    completed_at: datetime | None
    completion_percentage: int
    current_phase: str | None
    hours_logged: Decimal
    expenses_incurred: Decimal
    satisfaction_rating: int | None
    version: int
    entries: tuple[LogEntryInfo, ...] = ()

    def entries_of(self, kind: LogEntryKind) -> tuple[LogEntryInfo, ...]:
        return tuple(e for e in self.entries if e.entry_kind == kind)

    @property
    def milestones(self) -> tuple[LogEntryInfo, ...]:
        return self.entries_of(LogEntryKind.MILESTONE)

    @property
    def issues(self) -> tuple[LogEntryInfo, ...]:
        return self.entries_of(LogEntryKind.ISSUE)

    @property
    def progress_reports(self) -> tuple[LogEntryInfo, ...]:
        return self.entries_of(LogEntryKind.PROGRESS_REPORT)


@dataclass(frozen=True)
class TransitionOutcome:
    """What an agreement action did."""

    agreement: AgreementInfo
    action: AgreementAction
    from_status: AgreementStatus
    offer_status: OfferStatus
    execution: ExecutionInfo | None = None
