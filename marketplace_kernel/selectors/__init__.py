"""Selectors - read-only query services returning DTOs."""

from marketplace_kernel.selectors.activity_log_selector import ActivityLogSelector
from marketplace_kernel.selectors.agreement_selector import AgreementSelector
from marketplace_kernel.selectors.base import BaseSelector
from marketplace_kernel.selectors.execution_selector import ExecutionSelector
from marketplace_kernel.selectors.offer_selector import OfferSelector
from marketplace_kernel.selectors.service_catalog_selector import (
    ServiceCatalogSelector,
)

__all__ = [
    "BaseSelector",
    "ActivityLogSelector",
    "AgreementSelector",
    "ExecutionSelector",
    "OfferSelector",
    "ServiceCatalogSelector",
]
