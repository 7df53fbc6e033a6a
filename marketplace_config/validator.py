"""
Configuration Validator (``marketplace_config.validator``).

Responsibility
--------------
Checks a loaded ``MarketplaceConfig`` before it is handed to the kernel:
numeric ranges, pool sizes, and enum-valued settings that must name a
member of the kernel's enums.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the
  configuration MUST NOT be used.
* Validation warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from marketplace_config.schema import MarketplaceConfig
from marketplace_kernel.domain.values import IssueSeverity, PaymentStructure, Urgency

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: MarketplaceConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()

    _validate_negotiation(config, result)
    _validate_offer_defaults(config, result)
    _validate_enum("execution.default_issue_severity",
                   config.execution.default_issue_severity, IssueSeverity, result)
    _validate_database(config, result)

    if config.logging.level not in _LOG_LEVELS:
        result.add_error(f"logging.level: unknown level {config.logging.level!r}")

    return result


def _validate_negotiation(config: MarketplaceConfig, result: ConfigValidationResult) -> None:
    variance = config.negotiation.max_rate_variance
    if not (Decimal("0") < variance < Decimal("1")):
        result.add_error(
            f"negotiation.max_rate_variance must be in (0, 1), got {variance}"
        )
    elif variance > Decimal("0.5"):
        result.add_warning(
            f"negotiation.max_rate_variance {variance} allows more than a 50% swing"
        )


def _validate_offer_defaults(config: MarketplaceConfig, result: ConfigValidationResult) -> None:
    if config.offers.default_max_applicants < 1:
        result.add_error(
            "offers.default_max_applicants must be >= 1, "
            f"got {config.offers.default_max_applicants}"
        )
    _validate_enum("offers.default_urgency", config.offers.default_urgency, Urgency, result)
    _validate_enum(
        "offers.default_payment_structure",
        config.offers.default_payment_structure,
        PaymentStructure,
        result,
    )


def _validate_database(config: MarketplaceConfig, result: ConfigValidationResult) -> None:
    db = config.database
    if not db.url:
        result.add_error("database.url is required")
    if db.pool_size < 1:
        result.add_error(f"database.pool_size must be >= 1, got {db.pool_size}")
    if db.max_overflow < 0:
        result.add_error(f"database.max_overflow must be >= 0, got {db.max_overflow}")


def _validate_enum(
    key: str,
    value: str,
    enum_cls: type[Enum],
    result: ConfigValidationResult,
) -> None:
    allowed = [member.value for member in enum_cls]
    if value not in allowed:
        result.add_error(f"{key}: {value!r} is not one of {allowed}")

