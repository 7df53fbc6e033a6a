"""ORM models for the marketplace kernel."""

from marketplace_kernel.models.activity_log import ActivityLogEntry
from marketplace_kernel.models.agreement import ServiceAgreement
from marketplace_kernel.models.execution import ServiceExecution
from marketplace_kernel.models.offer import ServiceOffer
from marketplace_kernel.models.service import Service

__all__ = [
    "ActivityLogEntry",
    "Service",
    "ServiceAgreement",
    "ServiceExecution",
    "ServiceOffer",
]
