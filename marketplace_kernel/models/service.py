"""
Module: marketplace_kernel.models.service
Responsibility: ORM persistence for catalog service definitions -- the
    reusable templates offers are posted against.
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - service_code is unique (uq_service_code).
    - The engine only reads this table; catalog maintenance belongs to an
      external collaborator.

Failure modes:
    - ServiceNotFoundError raised upstream when an offer references a
      missing service.
"""

from decimal import Decimal

from sqlalchemy import JSON, Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import EnumString, TrackedBase
from marketplace_kernel.db.types import Hours, Money
from marketplace_kernel.domain.values import ServiceCategory, ServiceComplexity


class Service(TrackedBase):
    """
    Catalog service definition.

    Guarantees:
        - service_code is unique.
        - required_skills and required_certifications are JSON string arrays.
    """

    __tablename__ = "services"

    __table_args__ = (
        UniqueConstraint("service_code", name="uq_service_code"),
        Index("idx_service_category", "category"),
    )

    service_name: Mapped[str] = mapped_column(String(200), nullable=False)

    service_code: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    category: Mapped[ServiceCategory] = mapped_column(
        EnumString(ServiceCategory),
        nullable=False,
    )

    complexity: Mapped[ServiceComplexity] = mapped_column(
        EnumString(ServiceComplexity),
        default=ServiceComplexity.BASIC,
        nullable=False,
    )

    # Duration estimates in hours
    estimated_duration_hours: Mapped[Decimal] = mapped_column(Hours, nullable=False)
    duration_min_hours: Mapped[Decimal | None] = mapped_column(Hours, nullable=True)
    duration_max_hours: Mapped[Decimal | None] = mapped_column(Hours, nullable=True)

    required_skills: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )

    required_certifications: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )

    suggested_base_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    version_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return f"<Service {self.service_code}: {self.service_name}>"
