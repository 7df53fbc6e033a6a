"""
Marketplace Invariants Contract.

These invariants are structural law. No configuration set or policy may
override them; configuration only tunes thresholds and defaults.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across CapacityReconciler, AgreementService,
ExecutionService, the ORM immutability listeners and DB constraints.
"""

from enum import Enum, unique


@unique
class MarketplaceInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CAPACITY_BOUND = "capacity_bound"
    """0 <= current_applicants <= max_applicants on every offer. Enforced by
    the conditional UPDATE in CapacityReconciler.claim_slot and a DB check
    constraint."""

    SLOT_ACCOUNTING = "slot_accounting"
    """current_applicants equals the number of PROPOSED, ACCEPTED and ACTIVE
    agreements on the offer. Enforced by claiming and releasing slots in the
    same transaction as the agreement write."""

    UNIQUE_APPLICATION = "unique_application"
    """At most one agreement per (offer, associate). Enforced by
    ApplicationService and a unique constraint."""

    LEGAL_TRANSITIONS = "legal_transitions"
    """Agreement status changes follow the action table in
    domain.lifecycle. Enforced by compare-and-set UPDATEs in
    AgreementService."""

    TERMINAL_FINALITY = "terminal_finality"
    """COMPLETED and CANCELLED agreements are never modified again.
    Enforced by the before_update listener on ServiceAgreement."""

    APPEND_ONLY_LOG = "append_only_log"
    """Negotiation notes and execution log entries are never updated or
    deleted, and each subject's seq is gap-free. Enforced by
    ActivityLogService and ORM listeners on ActivityLogEntry."""

    ACTIVE_EXECUTION = "active_execution"
    """Execution updates are accepted only while the agreement is ACTIVE.
    Enforced by ExecutionService."""


ALL_MARKETPLACE_INVARIANTS: frozenset[MarketplaceInvariant] = frozenset(
    MarketplaceInvariant
)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = ("marketplace_config",)
