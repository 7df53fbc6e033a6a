"""
Value enums for the marketplace domain.

Catalog classification, offer terms, and the vocabulary of the
append-only activity log.  Pure: no I/O, no ORM.
"""

from enum import Enum


class ServiceCategory(str, Enum):
    FOOD_PREPARATION = "food_preparation"
    CUSTOMER_SERVICE = "customer_service"
    CLEANING_MAINTENANCE = "cleaning_maintenance"
    INVENTORY_MANAGEMENT = "inventory_management"
    SETUP_BREAKDOWN = "setup_breakdown"
    DELIVERY_LOGISTICS = "delivery_logistics"
    ADMINISTRATIVE = "administrative"
    TRAINING_SUPPORT = "training_support"
    MARKETING_PROMOTION = "marketing_promotion"
    TECHNICAL_SUPPORT = "technical_support"


class ServiceComplexity(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class Urgency(str, Enum):
    """Offer urgency.  ``rank`` orders listings, most urgent first."""

    ROUTINE = "routine"
    PRIORITY = "priority"
    URGENT = "urgent"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    Urgency.ROUTINE: 0,
    Urgency.PRIORITY: 1,
    Urgency.URGENT: 2,
    Urgency.EMERGENCY: 3,
}


class PaymentStructure(str, Enum):
    FIXED = "fixed"
    HOURLY_CAPPED = "hourly_capped"
    MILESTONE = "milestone"
    PERFORMANCE = "performance"


# =========================================================================
# Activity log vocabulary
# =========================================================================


class LogSubject(str, Enum):
    """Owner of an activity log sequence."""

    AGREEMENT = "agreement"
    EXECUTION = "execution"


class LogEntryKind(str, Enum):
    NEGOTIATION_NOTE = "negotiation_note"
    ASSOCIATE_NOTE = "associate_note"
    MILESTONE = "milestone"
    ISSUE = "issue"
    TIME_LOG = "time_log"
    EXPENSE = "expense"
    PROGRESS_REPORT = "progress_report"
    QUALITY_CHECKPOINT = "quality_checkpoint"
    LOCATION_FEEDBACK = "location_feedback"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class QualityStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    NEEDS_REVIEW = "needs_review"


class ExecutionAction(str, Enum):
    """Actions accepted by the execution tracker."""

    UPDATE_PROGRESS = "update_progress"
    ADD_MILESTONE = "add_milestone"
    LOG_TIME = "log_time"
    REPORT_ISSUE = "report_issue"
    ADD_EXPENSE = "add_expense"
    PAUSE = "pause"
    RESUME = "resume"
    QUALITY_CHECK = "quality_check"
    LOCATION_FEEDBACK = "location_feedback"
