"""
Typed Exception Hierarchy for the Marketplace Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine must decide what to do with a failure without
parsing message strings: retry against a different offer, fix their input,
or give up.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. A KIND attribute (the category a caller reacts to)
  4. Structured DATA (offending field, current state, ids)

Example:
    try:
        application_service.apply_for_offer(offer_id, associate_id, terms)
    except CapacityExceededError as e:
        suggest_other_offers(e.offer_id)
    except OutOfRangeError as e:
        show_band(e.min_amount, e.max_amount)

Services raise these exceptions.  ``MarketplaceService`` catches them at
the transaction boundary and returns them inside a ``MarketplaceResult``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MarketplaceError (base)
    |
    +-- ValidationError                     VALIDATION
    |   +-- OutOfRangeError                 OUT_OF_RANGE
    |   +-- InvalidStartTimeError           INVALID_START_TIME
    |
    +-- NotFoundError                       NOT_FOUND
    |   +-- ServiceNotFoundError
    |   +-- OfferNotFoundError
    |   +-- AgreementNotFoundError
    |   +-- ExecutionNotFoundError
    |
    +-- ConflictError                       CONFLICT
    |   +-- DuplicateApplicationError
    |   +-- OfferHasBindingAgreementsError
    |
    +-- CapacityExceededError               CAPACITY_EXCEEDED
    |
    +-- InvalidStateError                   INVALID_STATE
    |   +-- OfferNotOpenError
    |   +-- OfferClosedError
    |   +-- AgreementNotActiveError
    |   +-- ExecutionPausedError
    |   +-- ExecutionNotPausedError
    |
    +-- InvalidTransitionError              INVALID_TRANSITION
    |
    +-- ExpiredError                        EXPIRED
    |   +-- OfferExpiredError
    |
    +-- NotEligibleError                    NOT_ELIGIBLE
    |
    +-- ActorNotAuthorizedError             NOT_AUTHORIZED
    |
    +-- ImmutabilityViolationError          IMMUTABILITY

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ``kind`` is inherited; ``code`` is per class.  A caller that only cares
   about "was this a conflict" switches on ``kind``; logs and APIs carry the
   precise ``code``.

2. ``retryable`` marks outcomes that may succeed on a fresh attempt
   (a lost slot race).  Nothing is retried automatically.

3. ``preserves_writes`` marks failures that are themselves a state
   transition.  ``OfferExpiredError`` is raised after the offer has been
   flipped to EXPIRED; the transaction boundary commits that flip instead
   of rolling it back.

===============================================================================
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a marketplace failure."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    INVALID_STATE = "invalid_state"
    INVALID_TRANSITION = "invalid_transition"
    EXPIRED = "expired"
    NOT_ELIGIBLE = "not_eligible"
    OUT_OF_RANGE = "out_of_range"
    INVALID_START_TIME = "invalid_start_time"
    NOT_AUTHORIZED = "not_authorized"
    IMMUTABILITY = "immutability"


class MarketplaceError(Exception):
    """
    Base exception for all marketplace kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification and inherit a ``kind``.
    """

    code: str = "MARKETPLACE_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION
    retryable: bool = False
    preserves_writes: bool = False


# Validation


class ValidationError(MarketplaceError):
    """Malformed or out-of-bounds input.  Never retried automatically."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, field: str, reason: str, value: object = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


class OutOfRangeError(ValidationError):
    """Proposed amount falls outside the negotiation band around the offer."""

    code: str = "OUT_OF_RANGE"
    kind: ErrorKind = ErrorKind.OUT_OF_RANGE

    def __init__(
        self,
        agreed_amount: str,
        offered_amount: str,
        min_amount: str,
        max_amount: str,
    ):
        self.agreed_amount = agreed_amount
        self.offered_amount = offered_amount
        self.min_amount = min_amount
        self.max_amount = max_amount
        super().__init__(
            "agreed_amount",
            f"{agreed_amount} is outside the negotiable range "
            f"{min_amount}..{max_amount} around offered amount {offered_amount}",
            agreed_amount,
        )


class InvalidStartTimeError(ValidationError):
    """Agreed start time lies in the past."""

    code: str = "INVALID_START_TIME"
    kind: ErrorKind = ErrorKind.INVALID_START_TIME

    def __init__(self, agreed_start_time: str, now: str):
        self.agreed_start_time = agreed_start_time
        self.now = now
        super().__init__(
            "agreed_start_time",
            f"{agreed_start_time} is before current time {now}",
            agreed_start_time,
        )


# Not found


class NotFoundError(MarketplaceError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class ServiceNotFoundError(NotFoundError):
    """Catalog service with given ID was not found."""

    code: str = "SERVICE_NOT_FOUND"

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Service not found: {service_id}")


class OfferNotFoundError(NotFoundError):
    """Service offer with given ID was not found."""

    code: str = "OFFER_NOT_FOUND"

    def __init__(self, offer_id: str):
        self.offer_id = offer_id
        super().__init__(f"Service offer not found: {offer_id}")


class AgreementNotFoundError(NotFoundError):
    """Service agreement with given ID was not found."""

    code: str = "AGREEMENT_NOT_FOUND"

    def __init__(self, agreement_id: str):
        self.agreement_id = agreement_id
        super().__init__(f"Service agreement not found: {agreement_id}")


class ExecutionNotFoundError(NotFoundError):
    """No execution record exists for the agreement."""

    code: str = "EXECUTION_NOT_FOUND"

    def __init__(self, agreement_id: str):
        self.agreement_id = agreement_id
        super().__init__(f"Service execution not found for agreement {agreement_id}")


# Conflict


class ConflictError(MarketplaceError):
    """Operation conflicts with existing state."""

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT


class DuplicateApplicationError(ConflictError):
    """Associate already holds an agreement for this offer."""

    code: str = "DUPLICATE_APPLICATION"

    def __init__(self, offer_id: str, associate_id: str):
        self.offer_id = offer_id
        self.associate_id = associate_id
        super().__init__(
            f"Associate {associate_id} has already applied for offer {offer_id}"
        )


class OfferHasBindingAgreementsError(ConflictError):
    """Offer cannot be changed while agreements are ACCEPTED or ACTIVE."""

    code: str = "OFFER_HAS_BINDING_AGREEMENTS"

    def __init__(self, offer_id: str, binding_count: int, operation: str):
        self.offer_id = offer_id
        self.binding_count = binding_count
        self.operation = operation
        super().__init__(
            f"Cannot {operation} offer {offer_id}: "
            f"{binding_count} accepted or active agreement(s)"
        )


# Capacity


class CapacityExceededError(MarketplaceError):
    """
    Offer has no free applicant slot.

    Expected and frequent under contention.  The failed transaction leaves
    no agreement row behind, so the caller may retry (typically against a
    different offer) without creating duplicates.
    """

    code: str = "CAPACITY_EXCEEDED"
    kind: ErrorKind = ErrorKind.CAPACITY_EXCEEDED
    retryable: bool = True

    def __init__(self, offer_id: str, max_applicants: int, current_applicants: int):
        self.offer_id = offer_id
        self.max_applicants = max_applicants
        self.current_applicants = current_applicants
        super().__init__(
            f"Offer {offer_id} is full: "
            f"{current_applicants}/{max_applicants} applicants"
        )


# Invalid state


class InvalidStateError(MarketplaceError):
    """Action is not legal for the entity's current status."""

    code: str = "INVALID_STATE"
    kind: ErrorKind = ErrorKind.INVALID_STATE


class OfferNotOpenError(InvalidStateError):
    """Offer is not accepting applications."""

    code: str = "OFFER_NOT_OPEN"

    def __init__(self, offer_id: str, offer_status: str):
        self.offer_id = offer_id
        self.offer_status = offer_status
        super().__init__(f"Offer {offer_id} is not open (status: {offer_status})")


class OfferClosedError(InvalidStateError):
    """Offer has reached a terminal status and cannot be modified."""

    code: str = "OFFER_CLOSED"

    def __init__(self, offer_id: str, offer_status: str, operation: str):
        self.offer_id = offer_id
        self.offer_status = offer_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} offer {offer_id} in status {offer_status}"
        )


class AgreementNotActiveError(InvalidStateError):
    """Execution tracking requires an ACTIVE agreement."""

    code: str = "AGREEMENT_NOT_ACTIVE"

    def __init__(self, agreement_id: str, agreement_status: str):
        self.agreement_id = agreement_id
        self.agreement_status = agreement_status
        super().__init__(
            f"Agreement {agreement_id} is not active (status: {agreement_status})"
        )


class ExecutionPausedError(InvalidStateError):
    """Execution is already paused and has not been resumed."""

    code: str = "EXECUTION_ALREADY_PAUSED"

    def __init__(self, agreement_id: str):
        self.agreement_id = agreement_id
        super().__init__(f"Execution for agreement {agreement_id} is already paused")


class ExecutionNotPausedError(InvalidStateError):
    """Resume requested for an execution that is not paused."""

    code: str = "EXECUTION_NOT_PAUSED"

    def __init__(self, agreement_id: str):
        self.agreement_id = agreement_id
        super().__init__(
            f"Execution for agreement {agreement_id} is not currently paused"
        )


# Transitions


class InvalidTransitionError(MarketplaceError):
    """Agreement action is not permitted from the current status."""

    code: str = "INVALID_TRANSITION"
    kind: ErrorKind = ErrorKind.INVALID_TRANSITION

    def __init__(self, agreement_id: str, action: str, current_status: str):
        self.agreement_id = agreement_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} agreement {agreement_id} from status {current_status}"
        )


# Expiry


class ExpiredError(MarketplaceError):
    """The entity's time window has lapsed."""

    code: str = "EXPIRED"
    kind: ErrorKind = ErrorKind.EXPIRED


class OfferExpiredError(ExpiredError):
    """
    Offer's expires_at has passed.

    Raised after the offer was flipped to EXPIRED in the current
    transaction; that write is kept.
    """

    code: str = "OFFER_EXPIRED"
    preserves_writes: bool = True

    def __init__(self, offer_id: str, expires_at: str):
        self.offer_id = offer_id
        self.expires_at = expires_at
        super().__init__(f"Offer {offer_id} expired at {expires_at}")


# Eligibility


class NotEligibleError(MarketplaceError):
    """Associate is not permitted to apply to this offer."""

    code: str = "NOT_ELIGIBLE"
    kind: ErrorKind = ErrorKind.NOT_ELIGIBLE

    def __init__(self, offer_id: str, associate_id: str, reasons: tuple[str, ...]):
        self.offer_id = offer_id
        self.associate_id = associate_id
        self.reasons = reasons
        super().__init__(
            f"Associate {associate_id} is not eligible for offer {offer_id}: "
            f"{', '.join(reasons)}"
        )


# Authority


class ActorNotAuthorizedError(MarketplaceError):
    """Actor lacks the authority for the requested action."""

    code: str = "ACTOR_NOT_AUTHORIZED"
    kind: ErrorKind = ErrorKind.NOT_AUTHORIZED

    def __init__(self, actor_id: str, actor_role: str, action: str, subject_id: str):
        self.actor_id = actor_id
        self.actor_role = actor_role
        self.action = action
        self.subject_id = subject_id
        super().__init__(
            f"Actor {actor_id} ({actor_role}) may not {action} {subject_id}"
        )


# Immutability


class ImmutabilityViolationError(MarketplaceError):
    """Attempt to modify an append-only or terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"
    kind: ErrorKind = ErrorKind.IMMUTABILITY

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
