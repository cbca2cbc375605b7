"""Tests for the site registry."""

from decimal import Decimal
from uuid import uuid4

import pytest

from materials_kernel.domain.dtos import LowStockThresholds, SiteStatus
from materials_kernel.exceptions import (
    DuplicateSiteCodeError,
    InvalidInputError,
    SiteNotFoundError,
)
from materials_services.site_service import generate_site_code


class TestGenerateSiteCode:
    @pytest.mark.parametrize(
        "name, epoch_ms, expected",
        [
            ("Riverside Tower Phase 2", 1700000000123, "RTP-123"),
            ("Metro", 1700000000045, "MET-045"),
            ("green valley", 1700000000999, "GV-999"),
            ("Al", 1700000000001, "AL-001"),
        ],
    )
    def test_codes(self, name, epoch_ms, expected):
        assert generate_site_code(name, epoch_ms) == expected

    def test_blank_name(self):
        with pytest.raises(InvalidInputError):
            generate_site_code("   ", 1)


class TestSiteRegistry:
    def test_create_site(self, site_registry, threshold_config):
        record = site_registry.create_site(
            "  Riverside Tower Phase 2 ", location="Pune", manager_name="", notes=None,
        )

        assert record.site_name == "Riverside Tower Phase 2"
        assert record.site_code == "RTP-000"
        assert record.location == "Pune"
        assert record.manager_name is None
        assert record.status is SiteStatus.ACTIVE
        assert record.thresholds == threshold_config.defaults()
        assert record.created_at is not None

    def test_name_required(self, site_registry):
        with pytest.raises(InvalidInputError):
            site_registry.create_site("")

    def test_explicit_code(self, site_registry):
        assert site_registry.create_site("Depot", site_code="DEP-01").site_code == "DEP-01"

    def test_duplicate_code(self, site_registry, site):
        with pytest.raises(DuplicateSiteCodeError) as exc_info:
            site_registry.create_site("Riverside Tower Plaza")
        assert exc_info.value.site_code == site.site_code

    def test_custom_thresholds(self, site_registry):
        record = site_registry.create_site(
            "Harbour", thresholds=LowStockThresholds(steel=200, cement=40, diesel=Decimal("500")),
        )
        assert record.thresholds.steel == 200
        assert record.thresholds.diesel == Decimal("500")

    def test_update_keeps_code(self, site_registry, site):
        updated = site_registry.update_site(
            site.id, site_name="Riverside Tower", notes="Phase 2 handed over",
        )

        assert updated.site_name == "Riverside Tower"
        assert updated.notes == "Phase 2 handed over"
        assert updated.site_code == site.site_code

    def test_update_status_and_thresholds(self, site_registry, site):
        updated = site_registry.update_site(
            site.id,
            status="inactive",
            thresholds=LowStockThresholds(steel=10, cement=5, diesel=Decimal("20")),
        )
        assert updated.status is SiteStatus.INACTIVE
        assert updated.thresholds.cement == 5

    def test_update_rejects_unknown_field(self, site_registry, site):
        with pytest.raises(InvalidInputError):
            site_registry.update_site(site.id, site_code="NEW-1")

    def test_update_rejects_blank_name(self, site_registry, site):
        with pytest.raises(InvalidInputError):
            site_registry.update_site(site.id, site_name=" ")

    def test_update_unknown_site(self, site_registry):
        with pytest.raises(SiteNotFoundError):
            site_registry.update_site(uuid4(), notes="x")

    def test_lookups(self, site_registry, site):
        assert site_registry.get_site(site.id).site_code == site.site_code
        assert site_registry.get_by_code(site.site_code).id == site.id
        with pytest.raises(SiteNotFoundError):
            site_registry.get_by_code("NOPE-1")

    def test_list_active_first(self, site_registry, site, other_site):
        site_registry.update_site(site.id, status=SiteStatus.INACTIVE)

        listed = site_registry.list_sites()
        assert [s.id for s in listed] == [other_site.id, site.id]
        assert [s.id for s in site_registry.list_sites(include_inactive=False)] == [other_site.id]
