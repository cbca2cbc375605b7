"""
SiteRegistry -- create, edit and look up construction sites.

Responsibility:
    Owns the sites table.  Generates site codes, applies default low-stock
    thresholds from configuration, and returns SiteRecord DTOs.

Invariants enforced:
    - site_name is required; site_code is unique.
    - A generated code is the upper-cased first three letters of a single
      word name, or the initials of up to three words, then "-" and the last
      three digits of the creation time in epoch milliseconds.
    - Editing a site never changes its code.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from materials_config.schema import ThresholdConfig
from materials_kernel.db.engine import session_scope
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import LowStockThresholds, SiteRecord, SiteStatus
from materials_kernel.exceptions import (
    DuplicateSiteCodeError,
    InvalidInputError,
    SiteNotFoundError,
)
from materials_kernel.logging_config import get_logger
from materials_kernel.models.site import Site
from materials_kernel.selectors.site_selector import SiteSelector

logger = get_logger("services.sites")

_EDITABLE_FIELDS = ("site_name", "location", "manager_name", "notes")


def generate_site_code(site_name: str, epoch_ms: int) -> str:
    """
    >>> generate_site_code("Riverside Tower Phase 2", 1700000000123)
    'RTP-123'
    >>> generate_site_code("Metro", 1700000000045)
    'MET-045'
    """
    words = site_name.split()
    if not words:
        raise InvalidInputError("site_name", "is required")
    if len(words) == 1:
        prefix = words[0][:3]
    else:
        prefix = "".join(word[0] for word in words[:3])
    return f"{prefix.upper()}-{str(epoch_ms)[-3:]}"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


class SiteRegistry:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        thresholds: ThresholdConfig | None = None,
    ):
        self._factory = session_factory
        self._clock = clock or SystemClock()
        self._thresholds = thresholds or ThresholdConfig()

    def create_site(
        self,
        site_name: str,
        location: str | None = None,
        manager_name: str | None = None,
        notes: str | None = None,
        site_code: str | None = None,
        thresholds: LowStockThresholds | None = None,
        actor_id: UUID | None = None,
    ) -> SiteRecord:
        name = _clean(site_name)
        if name is None:
            raise InvalidInputError("site_name", "is required")
        code = _clean(site_code) or generate_site_code(name, self._clock.epoch_millis())
        limits = thresholds or self._thresholds.defaults()

        with session_scope(self._factory) as session:
            if SiteSelector(session).code_exists(code):
                raise DuplicateSiteCodeError(code)
            row = Site(
                site_name=name,
                site_code=code,
                location=_clean(location),
                manager_name=_clean(manager_name),
                notes=_clean(notes),
                status=SiteStatus.ACTIVE.value,
                steel_threshold=limits.steel,
                cement_threshold=limits.cement,
                diesel_threshold=Decimal(str(limits.diesel)),
                created_by_id=actor_id,
            )
            session.add(row)
            session.flush()
            record = row.to_dto()

        logger.info(
            "site_created",
            extra={"site_id": str(record.id), "site_code": code, "site_name": name},
        )
        return record

    def update_site(
        self,
        site_id: UUID,
        status: SiteStatus | str | None = None,
        thresholds: LowStockThresholds | None = None,
        **fields,
    ) -> SiteRecord:
        """Edit name, location, manager, notes, status or thresholds."""
        unknown = set(fields) - set(_EDITABLE_FIELDS)
        if unknown:
            raise InvalidInputError(", ".join(sorted(unknown)), "not an editable site field")
        if "site_name" in fields and _clean(fields["site_name"]) is None:
            raise InvalidInputError("site_name", "is required")

        with session_scope(self._factory) as session:
            row = session.get(Site, site_id)
            if row is None:
                raise SiteNotFoundError(site_id)
            for key, value in fields.items():
                setattr(row, key, _clean(value))
            if status is not None:
                row.status = SiteStatus(status).value
            if thresholds is not None:
                row.steel_threshold = thresholds.steel
                row.cement_threshold = thresholds.cement
                row.diesel_threshold = Decimal(str(thresholds.diesel))
            session.flush()
            record = row.to_dto()

        logger.info(
            "site_updated",
            extra={"site_id": str(site_id), "fields": sorted(fields)},
        )
        return record

    def get_site(self, site_id: UUID) -> SiteRecord:
        with session_scope(self._factory) as session:
            record = SiteSelector(session).get(site_id)
        if record is None:
            raise SiteNotFoundError(site_id)
        return record

    def get_by_code(self, site_code: str) -> SiteRecord:
        with session_scope(self._factory) as session:
            record = SiteSelector(session).by_code(site_code)
        if record is None:
            raise SiteNotFoundError(site_code)
        return record

    def list_sites(self, include_inactive: bool = True) -> list[SiteRecord]:
        with session_scope(self._factory) as session:
            return SiteSelector(session).list_all(include_inactive)
