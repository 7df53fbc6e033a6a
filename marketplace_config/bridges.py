"""
Config -> Kernel Bridges.

Functions that convert a ``MarketplaceConfig`` into kernel-compatible
inputs.  They live in marketplace_config (the producer) because the
kernel must NEVER import marketplace_config.

Usage:
    from marketplace_config import get_active_config
    from marketplace_config.bridges import build_marketplace_policy, engine_options

    config = get_active_config()
    init_engine_from_url(**engine_options(config))
    policy = build_marketplace_policy(config)
"""

from __future__ import annotations

from typing import Any

from marketplace_config.schema import MarketplaceConfig
from marketplace_kernel.domain.policy import MarketplacePolicy
from marketplace_kernel.domain.values import IssueSeverity, PaymentStructure, Urgency


def build_marketplace_policy(config: MarketplaceConfig) -> MarketplacePolicy:
    """Frozen kernel policy carrying the config checksum as its fingerprint."""
    return MarketplacePolicy(
        max_rate_variance=config.negotiation.max_rate_variance,
        default_max_applicants=config.offers.default_max_applicants,
        default_urgency=Urgency(config.offers.default_urgency),
        default_payment_structure=PaymentStructure(
            config.offers.default_payment_structure
        ),
        default_issue_severity=IssueSeverity(config.execution.default_issue_severity),
        config_fingerprint=config.checksum,
    )


def engine_options(config: MarketplaceConfig, database_url: str | None = None) -> dict[str, Any]:
    """Keyword arguments for ``init_engine_from_url``.

    ``database_url`` overrides the configured URL (scripts pass their
    ``--db-url`` flag through here).
    """
    return {
        "database_url": database_url or config.database.url,
        "echo": config.database.echo,
        "pool_size": config.database.pool_size,
        "max_overflow": config.database.max_overflow,
    }
