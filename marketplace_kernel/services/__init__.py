"""Services for the marketplace kernel (write side)."""

from marketplace_kernel.services.activity_log import ActivityLogService
from marketplace_kernel.services.agreement_service import AgreementService
from marketplace_kernel.services.application_service import ApplicationService
from marketplace_kernel.services.capacity_reconciler import (
    CapacityCheck,
    CapacityReconciler,
)
from marketplace_kernel.services.execution_service import ExecutionService
from marketplace_kernel.services.marketplace_service import (
    MarketplaceResult,
    MarketplaceService,
    ResultStatus,
)
from marketplace_kernel.services.offer_service import OfferService

__all__ = [
    "ActivityLogService",
    "AgreementService",
    "ApplicationService",
    "CapacityCheck",
    "CapacityReconciler",
    "ExecutionService",
    "MarketplaceResult",
    "MarketplaceService",
    "OfferService",
    "ResultStatus",
]
