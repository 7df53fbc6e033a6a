"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (except SystemClock)

All domain objects are immutable and deterministic.
"""

from marketplace_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from marketplace_kernel.domain.dtos import (
    AgreementFilter,
    AgreementInfo,
    ExecutionInfo,
    ExecutionUpdate,
    LogEntryInfo,
    OfferFilter,
    OfferInfo,
    OfferPatch,
    OfferSpec,
    ProposedTerms,
    ServiceInfo,
    TransitionOutcome,
    TransitionParams,
)
from marketplace_kernel.domain.eligibility import (
    AssociateDirectory,
    AssociateProfile,
    EligibilityTerms,
    EligibilityVerdict,
    EmptyAssociateDirectory,
    IneligibilityReason,
    StaticAssociateDirectory,
    evaluate_eligibility,
    is_eligible,
)
from marketplace_kernel.domain.lifecycle import (
    AGREEMENT_ACTIONS,
    OFFER_TRANSITIONS,
    Actor,
    ActorRole,
    AgreementAction,
    AgreementStatus,
    OfferStatus,
)
from marketplace_kernel.domain.policy import DEFAULT_POLICY, MarketplacePolicy
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

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Lifecycle
    "AGREEMENT_ACTIONS",
    "OFFER_TRANSITIONS",
    "Actor",
    "ActorRole",
    "AgreementAction",
    "AgreementStatus",
    "OfferStatus",
    # Values
    "ExecutionAction",
    "IssueSeverity",
    "LogEntryKind",
    "PaymentStructure",
    "QualityStatus",
    "ServiceCategory",
    "ServiceComplexity",
    "Urgency",
    # Eligibility
    "AssociateDirectory",
    "AssociateProfile",
    "EligibilityTerms",
    "EligibilityVerdict",
    "EmptyAssociateDirectory",
    "IneligibilityReason",
    "StaticAssociateDirectory",
    "evaluate_eligibility",
    "is_eligible",
    # Policy
    "DEFAULT_POLICY",
    "MarketplacePolicy",
    # DTOs
    "AgreementFilter",
    "AgreementInfo",
    "ExecutionInfo",
    "ExecutionUpdate",
    "LogEntryInfo",
    "OfferFilter",
    "OfferInfo",
    "OfferPatch",
    "OfferSpec",
    "ProposedTerms",
    "ServiceInfo",
    "TransitionOutcome",
    "TransitionParams",
]
