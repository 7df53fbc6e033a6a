"""
Lifecycle domain types (``marketplace_kernel.domain.lifecycle``).

Responsibility
--------------
Status enums and transition tables for offers and agreements, the
agreement action table with its authority rules, and the actor value
object that every write carries.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``AGREEMENT_ACTIONS`` is the single source of truth for agreement
  transitions: an action is legal only from its listed source statuses.
* ``OFFER_TRANSITIONS`` lists every legal offer status change.  COMPLETED
  and CANCELLED have no outgoing edges.  An EXPIRED offer leaves
  only by approval of an agreement still proposed on it, or cancellation.
* Slot accounting: an agreement holds one offer slot while its status is
  in ``SLOT_HOLDING_STATUSES``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =========================================================================
# Offer lifecycle
# =========================================================================


class OfferStatus(str, Enum):
    """Service offer lifecycle states."""

    OPEN = "open"
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


OFFER_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.OPEN: frozenset({
        OfferStatus.PENDING,
        OfferStatus.ACCEPTED,
        OfferStatus.IN_PROGRESS,
        OfferStatus.EXPIRED,
        OfferStatus.CANCELLED,
    }),
    OfferStatus.PENDING: frozenset({
        OfferStatus.OPEN,
        OfferStatus.ACCEPTED,
        OfferStatus.IN_PROGRESS,
        OfferStatus.CANCELLED,
    }),
    OfferStatus.ACCEPTED: frozenset({
        OfferStatus.OPEN,
        OfferStatus.PENDING,
        OfferStatus.IN_PROGRESS,
        OfferStatus.CANCELLED,
    }),
    OfferStatus.IN_PROGRESS: frozenset({
        OfferStatus.COMPLETED,
    }),
    OfferStatus.EXPIRED: frozenset({
        OfferStatus.ACCEPTED,
        OfferStatus.CANCELLED,
    }),
    OfferStatus.COMPLETED: frozenset(),
    OfferStatus.CANCELLED: frozenset(),
}

TERMINAL_OFFER_STATUSES: frozenset[OfferStatus] = frozenset({
    OfferStatus.COMPLETED,
    OfferStatus.CANCELLED,
})

# Statuses the capacity reconciler may move back to OPEN/PENDING on release.
REOPENABLE_OFFER_STATUSES: frozenset[OfferStatus] = frozenset({
    OfferStatus.PENDING,
    OfferStatus.ACCEPTED,
})


def can_transition_offer(current: OfferStatus, target: OfferStatus) -> bool:
    """True when ``current -> target`` is listed in OFFER_TRANSITIONS."""
    return target in OFFER_TRANSITIONS[OfferStatus(current)]


# =========================================================================
# Agreement lifecycle
# =========================================================================


class AgreementStatus(str, Enum):
    """Service agreement lifecycle states."""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_AGREEMENT_STATUSES: frozenset[AgreementStatus] = frozenset({
    AgreementStatus.COMPLETED,
    AgreementStatus.CANCELLED,
})

SLOT_HOLDING_STATUSES: frozenset[AgreementStatus] = frozenset({
    AgreementStatus.PROPOSED,
    AgreementStatus.ACCEPTED,
    AgreementStatus.ACTIVE,
})

# Agreements that lock the offer's terms against update/cancel.
BINDING_STATUSES: frozenset[AgreementStatus] = frozenset({
    AgreementStatus.ACCEPTED,
    AgreementStatus.ACTIVE,
})


class AgreementAction(str, Enum):
    """Actions accepted by the agreement state machine."""

    APPROVE = "approve"
    REJECT = "reject"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    REVISE = "revise"


# =========================================================================
# Actors and authority
# =========================================================================


class ActorRole(str, Enum):
    """Who is acting: the associate, the location, or an automated job."""

    ASSOCIATE = "associate"
    LOCATION = "location"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Identity attached to every write.

    For ASSOCIATE actors ``actor_id`` is the associate id; for LOCATION
    actors it is the manager's id and ``location_id`` names the location
    they act for.
    """

    actor_id: str
    role: ActorRole
    location_id: str | None = None

    @classmethod
    def associate(cls, associate_id: str) -> Actor:
        return cls(actor_id=associate_id, role=ActorRole.ASSOCIATE)

    @classmethod
    def location(cls, manager_id: str, location_id: str) -> Actor:
        return cls(
            actor_id=manager_id,
            role=ActorRole.LOCATION,
            location_id=location_id,
        )

    @classmethod
    def system(cls, job_name: str = "system") -> Actor:
        return cls(actor_id=job_name, role=ActorRole.SYSTEM)


class Authority(str, Enum):
    """Authority an actor must hold over an agreement."""

    OWNER = "owner"          # the associate the agreement belongs to
    LOCATION = "location"    # a manager acting for the agreement's location
    SYSTEM = "system"


@dataclass(frozen=True)
class ActionRule:
    """One row of the agreement transition table."""

    action: AgreementAction
    sources: frozenset[AgreementStatus]
    target: AgreementStatus
    authorities: frozenset[Authority]
    releases_slot: bool = False
    reopens_offer: bool = False


AGREEMENT_ACTIONS: dict[AgreementAction, ActionRule] = {
    AgreementAction.APPROVE: ActionRule(
        action=AgreementAction.APPROVE,
        sources=frozenset({AgreementStatus.PROPOSED}),
        target=AgreementStatus.ACCEPTED,
        authorities=frozenset({Authority.LOCATION}),
    ),
    AgreementAction.REJECT: ActionRule(
        action=AgreementAction.REJECT,
        sources=frozenset({AgreementStatus.PROPOSED}),
        target=AgreementStatus.CANCELLED,
        authorities=frozenset({Authority.LOCATION}),
        releases_slot=True,
        reopens_offer=True,
    ),
    AgreementAction.START: ActionRule(
        action=AgreementAction.START,
        sources=frozenset({AgreementStatus.ACCEPTED}),
        target=AgreementStatus.ACTIVE,
        authorities=frozenset({Authority.OWNER}),
    ),
    AgreementAction.COMPLETE: ActionRule(
        action=AgreementAction.COMPLETE,
        sources=frozenset({AgreementStatus.ACTIVE}),
        target=AgreementStatus.COMPLETED,
        authorities=frozenset({Authority.OWNER, Authority.LOCATION}),
        releases_slot=True,
    ),
    AgreementAction.CANCEL: ActionRule(
        action=AgreementAction.CANCEL,
        sources=frozenset({AgreementStatus.PROPOSED, AgreementStatus.ACCEPTED}),
        target=AgreementStatus.CANCELLED,
        authorities=frozenset({
            Authority.OWNER,
            Authority.LOCATION,
            Authority.SYSTEM,
        }),
        releases_slot=True,
        reopens_offer=True,
    ),
    AgreementAction.REVISE: ActionRule(
        action=AgreementAction.REVISE,
        sources=frozenset({AgreementStatus.PROPOSED}),
        target=AgreementStatus.PROPOSED,
        authorities=frozenset({Authority.OWNER}),
    ),
}


def rule_for(action: AgreementAction | str) -> ActionRule:
    """Look up the transition rule for an action.

    Raises:
        ValueError: If the action is not a known AgreementAction.
    """
    return AGREEMENT_ACTIONS[AgreementAction(action)]


def is_legal_source(action: AgreementAction | str, status: AgreementStatus) -> bool:
    """True when ``action`` may be applied to an agreement in ``status``."""
    return AgreementStatus(status) in rule_for(action).sources


def authorities_of(actor: Actor, associate_id: str, location_id: str) -> frozenset[Authority]:
    """Authorities ``actor`` holds over an agreement between the two parties."""
    held: set[Authority] = set()
    if actor.role == ActorRole.ASSOCIATE and actor.actor_id == associate_id:
        held.add(Authority.OWNER)
    elif actor.role == ActorRole.LOCATION and actor.location_id == location_id:
        held.add(Authority.LOCATION)
    elif actor.role == ActorRole.SYSTEM:
        held.add(Authority.SYSTEM)
    return frozenset(held)


def is_authorized(
    action: AgreementAction | str,
    actor: Actor,
    associate_id: str,
    location_id: str,
) -> bool:
    """True when ``actor`` holds one of the authorities the action requires."""
    return bool(rule_for(action).authorities & authorities_of(actor, associate_id, location_id))
