"""Read access to the site registry."""

from uuid import UUID

from sqlalchemy import case, select

from materials_kernel.domain.dtos import SiteRecord, SiteStatus
from materials_kernel.models.site import Site
from materials_kernel.selectors.base import BaseSelector


class SiteSelector(BaseSelector):
    def get(self, site_id: UUID) -> SiteRecord | None:
        row = self.session.get(Site, site_id)
        return row.to_dto() if row is not None else None

    def by_code(self, site_code: str) -> SiteRecord | None:
        stmt = select(Site).where(Site.site_code == site_code)
        row = self.session.scalars(stmt).one_or_none()
        return row.to_dto() if row is not None else None

    def code_exists(self, site_code: str) -> bool:
        stmt = select(Site.id).where(Site.site_code == site_code)
        return self.session.scalars(stmt).first() is not None

    def list_all(self, include_inactive: bool = True) -> list[SiteRecord]:
        """Active sites first, then by name."""
        stmt = select(Site).order_by(
            case((Site.status == SiteStatus.ACTIVE.value, 0), else_=1),
            Site.site_name,
        )
        if not include_inactive:
            stmt = stmt.where(Site.status == SiteStatus.ACTIVE.value)
        return [row.to_dto() for row in self.session.scalars(stmt)]
