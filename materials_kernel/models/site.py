"""
Module: materials_kernel.models.site
Responsibility: ORM model for construction sites, the scope key of every
    inventory level and ledger row.
Architecture position: Kernel > Models.  Inherits TrackedBase.

Invariants enforced:
    - site_code is unique.
    - Low-stock thresholds are stored per site (steel pieces, cement bags,
      diesel litres).
"""

from decimal import Decimal

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from materials_kernel.db.base import TrackedBase
from materials_kernel.domain.dtos import LowStockThresholds, SiteRecord, SiteStatus


class Site(TrackedBase):
    __tablename__ = "sites"

    __table_args__ = (
        Index("idx_site_code", "site_code", unique=True),
        Index("idx_site_status", "status"),
    )

    site_name: Mapped[str] = mapped_column(String(200))
    site_code: Mapped[str] = mapped_column(String(50))
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    manager_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=SiteStatus.ACTIVE.value)

    steel_threshold: Mapped[int] = mapped_column(Integer, default=50)
    cement_threshold: Mapped[int] = mapped_column(Integer, default=10)
    diesel_threshold: Mapped[Decimal] = mapped_column(default=Decimal("100"))

    def to_dto(self) -> SiteRecord:
        return SiteRecord(
            id=self.id,
            site_name=self.site_name,
            site_code=self.site_code,
            location=self.location,
            manager_name=self.manager_name,
            notes=self.notes,
            status=SiteStatus(self.status),
            thresholds=LowStockThresholds(
                steel=self.steel_threshold,
                cement=self.cement_threshold,
                diesel=self.diesel_threshold,
            ),
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<Site {self.site_code} {self.site_name!r}>"
