"""
MarketplacePolicy -- runtime knobs consumed by the kernel.

Responsibility:
    Frozen value object holding the negotiation band and the defaults
    applied when an offer or execution action omits a field.  Built from
    YAML by ``marketplace_config.bridges``; the kernel never reads config
    files itself.

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.
"""

from dataclasses import dataclass
from decimal import Decimal

from marketplace_kernel.domain.values import IssueSeverity, PaymentStructure, Urgency


@dataclass(frozen=True)
class MarketplacePolicy:
    """
    Policy values for one running engine.

    Guarantees:
        - 0 < max_rate_variance < 1.
        - default_max_applicants >= 1.
    """

    max_rate_variance: Decimal = Decimal("0.15")
    default_max_applicants: int = 1
    default_urgency: Urgency = Urgency.ROUTINE
    default_payment_structure: PaymentStructure = PaymentStructure.FIXED
    default_issue_severity: IssueSeverity = IssueSeverity.MEDIUM
    config_fingerprint: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.max_rate_variance, Decimal):
            raise TypeError("max_rate_variance must be Decimal")
        if not (Decimal("0") < self.max_rate_variance < Decimal("1")):
            raise ValueError(
                f"max_rate_variance must be in (0, 1), got {self.max_rate_variance}"
            )
        if self.default_max_applicants < 1:
            raise ValueError(
                f"default_max_applicants must be >= 1, got {self.default_max_applicants}"
            )


DEFAULT_POLICY = MarketplacePolicy()
