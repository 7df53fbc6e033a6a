"""
ServiceCatalogSelector -- read access to catalog service definitions.

The engine never writes the catalog; offers only reference it.
"""

from uuid import UUID

from sqlalchemy import select

from marketplace_kernel.domain.dtos import ServiceInfo
from marketplace_kernel.models.service import Service
from marketplace_kernel.selectors.base import BaseSelector


class ServiceCatalogSelector(BaseSelector):
    """Lookups over the ``services`` table."""

    @staticmethod
    def to_info(service: Service) -> ServiceInfo:
        return ServiceInfo(
            id=service.id,
            service_name=service.service_name,
            service_code=service.service_code,
            category=service.category,
            complexity=service.complexity,
            estimated_duration_hours=service.estimated_duration_hours,
            duration_min_hours=service.duration_min_hours,
            duration_max_hours=service.duration_max_hours,
            required_skills=tuple(service.required_skills or ()),
            required_certifications=tuple(service.required_certifications or ()),
            suggested_base_rate=service.suggested_base_rate,
            is_active=service.is_active,
            version_number=service.version_number,
        )

    def get(self, service_id: UUID) -> ServiceInfo | None:
        service = self.session.get(Service, service_id)
        if service is None:
            return None
        return self.to_info(service)

    def get_by_code(self, service_code: str) -> ServiceInfo | None:
        service = self.session.execute(
            select(Service).where(Service.service_code == service_code)
        ).scalar_one_or_none()
        if service is None:
            return None
        return self.to_info(service)

    def list_active(self) -> list[ServiceInfo]:
        services = self.session.execute(
            select(Service)
            .where(Service.is_active.is_(True))
            .order_by(Service.service_name)
        ).scalars()
        return [self.to_info(s) for s in services]
