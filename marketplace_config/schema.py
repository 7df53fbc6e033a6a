"""
MarketplaceConfig schema.

Defines the human-authored, reviewable configuration for one marketplace
deployment. YAML files under ``marketplace_config/sets/`` are parsed into
these frozen types by the loader and checked by the validator; the
bridges turn them into kernel inputs.

Enum-valued settings are kept as their string values here.  The validator
checks them against the kernel's enums and the bridge converts them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class NegotiationConfig:
    """Rate negotiation settings."""

    max_rate_variance: Decimal = Decimal("0.15")


@dataclass(frozen=True)
class OfferDefaults:
    """Defaults applied to offers that omit a field."""

    default_max_applicants: int = 1
    default_urgency: str = "routine"
    default_payment_structure: str = "fixed"


@dataclass(frozen=True)
class ExecutionDefaults:
    """Defaults applied to execution actions that omit a field."""

    default_issue_severity: str = "medium"


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///marketplace.db"
    pool_size: int = 20
    max_overflow: int = 10
    echo: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class MarketplaceConfig:
    """
    A complete, loaded configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source YAML,
    so two deployments with the same checksum run the same settings.
    """

    name: str
    version: int = 1
    description: str = ""
    negotiation: NegotiationConfig = field(default_factory=NegotiationConfig)
    offers: OfferDefaults = field(default_factory=OfferDefaults)
    execution: ExecutionDefaults = field(default_factory=ExecutionDefaults)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
