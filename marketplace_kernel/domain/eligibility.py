"""
Eligibility Filter -- may this associate apply to this offer?

Responsibility:
    Pure predicate over an offer's eligibility terms and an externally
    supplied associate profile.  Used by listing (to hide offers) and by
    application intake (to reject with reasons).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - All conditions are AND-ed.  The verdict lists every failing reason in
      rule order: EXCLUDED, NOT_PREFERRED, INSUFFICIENT_EXPERIENCE,
      NO_LOCATION_EXPERIENCE, MISSING_CERTIFICATION.
    - Certification and background checks are never evaluated here; the
      profile carries their outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Protocol


class IneligibilityReason(str, Enum):
    EXCLUDED = "excluded"
    NOT_PREFERRED = "not_preferred"
    INSUFFICIENT_EXPERIENCE = "insufficient_experience"
    NO_LOCATION_EXPERIENCE = "no_location_experience"
    MISSING_CERTIFICATION = "missing_certification"


@dataclass(frozen=True)
class AssociateProfile:
    """What the engine knows about an associate, supplied from outside."""

    experience_level: int = 0
    certifications: frozenset[str] = field(default_factory=frozenset)
    experienced_location_ids: frozenset[str] = field(default_factory=frozenset)


EMPTY_PROFILE = AssociateProfile()


class AssociateDirectory(Protocol):
    """Source of associate profiles (HR system, staffing service, ...)."""

    def profile_for(self, associate_id: str) -> AssociateProfile:
        ...


class EmptyAssociateDirectory:
    """Directory that knows nothing: every associate gets EMPTY_PROFILE."""

    def profile_for(self, associate_id: str) -> AssociateProfile:
        return EMPTY_PROFILE


class StaticAssociateDirectory:
    """In-memory directory keyed by associate id."""

    def __init__(self, profiles: dict[str, AssociateProfile] | None = None):
        self._profiles = dict(profiles or {})

    def add(self, associate_id: str, profile: AssociateProfile) -> None:
        self._profiles[associate_id] = profile

    def profile_for(self, associate_id: str) -> AssociateProfile:
        return self._profiles.get(associate_id, EMPTY_PROFILE)


@dataclass(frozen=True)
class EligibilityTerms:
    """The slice of an offer (and its service) the filter looks at."""

    location_id: str
    preferred_associates: tuple[str, ...] = ()
    excluded_associates: tuple[str, ...] = ()
    minimum_experience_level: int = 0
    required_location_experience: bool = False
    required_certifications: tuple[str, ...] = ()


@dataclass(frozen=True)
class EligibilityVerdict:
    eligible: bool
    reasons: tuple[IneligibilityReason, ...] = ()

    def __bool__(self) -> bool:
        return self.eligible


def evaluate_eligibility(
    terms: EligibilityTerms,
    associate_id: str,
    profile: AssociateProfile = EMPTY_PROFILE,
) -> EligibilityVerdict:
    """Evaluate every rule and collect the failing ones."""
    reasons: list[IneligibilityReason] = []

    if associate_id in terms.excluded_associates:
        reasons.append(IneligibilityReason.EXCLUDED)

    if terms.preferred_associates and associate_id not in terms.preferred_associates:
        reasons.append(IneligibilityReason.NOT_PREFERRED)

    if profile.experience_level < terms.minimum_experience_level:
        reasons.append(IneligibilityReason.INSUFFICIENT_EXPERIENCE)

    if (
        terms.required_location_experience
        and terms.location_id not in profile.experienced_location_ids
    ):
        reasons.append(IneligibilityReason.NO_LOCATION_EXPERIENCE)

    if not _covers(profile.certifications, terms.required_certifications):
        reasons.append(IneligibilityReason.MISSING_CERTIFICATION)

    return EligibilityVerdict(eligible=not reasons, reasons=tuple(reasons))


def is_eligible(
    terms: EligibilityTerms,
    associate_id: str,
    profile: AssociateProfile = EMPTY_PROFILE,
) -> bool:
    return evaluate_eligibility(terms, associate_id, profile).eligible


def _covers(held: Iterable[str], required: Iterable[str]) -> bool:
    return set(required) <= set(held)
