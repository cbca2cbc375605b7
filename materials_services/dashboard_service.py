"""
DashboardService -- per-site overview across all three materials.

Responsibility:
    Totals for steel, cement and diesel, the most recent ledger activity
    across materials, and low-stock alerts against the site's thresholds.

Invariants enforced:
    - Recent activity takes the newest ``per_material_recent_limit`` rows of
      each material, merges them newest first and keeps
      ``recent_activity_limit``.
    - Every read is scoped to one site.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from materials_config.schema import LedgerConfig, ThresholdConfig
from materials_engines.period import order_transactions
from materials_engines.stock_alerts import LowStockAlert, classify_low_stock
from materials_engines.summary import totals
from materials_kernel.db.engine import session_scope
from materials_kernel.domain.dtos import (
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
    SiteRecord,
)
from materials_kernel.exceptions import SiteNotFoundError
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.selectors.inventory_selector import (
    InventorySelector,
    TransactionSelector,
)
from materials_kernel.selectors.site_selector import SiteSelector

logger = get_logger("services.dashboard")


@dataclass(frozen=True)
class MaterialTotals:
    kind: MaterialKind
    quantity_units: int
    total_weight: Decimal
    variant_count: int


@dataclass(frozen=True)
class SiteOverview:
    site: SiteRecord
    totals: dict[MaterialKind, MaterialTotals]
    recent_activity: tuple[LedgerTransaction, ...]
    alerts: tuple[LowStockAlert, ...]

    @property
    def steel(self) -> MaterialTotals:
        return self.totals[MaterialKind.STEEL]

    @property
    def cement(self) -> MaterialTotals:
        return self.totals[MaterialKind.CEMENT]

    @property
    def diesel(self) -> MaterialTotals:
        return self.totals[MaterialKind.DIESEL]


class DashboardService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        ledger_config: LedgerConfig | None = None,
        thresholds: ThresholdConfig | None = None,
    ):
        self._factory = session_factory
        self._config = ledger_config or LedgerConfig()
        self._thresholds = thresholds or ThresholdConfig()

    def site_overview(self, site_id: UUID) -> SiteOverview:
        with LogContext.bind(site_id=site_id):
            with session_scope(self._factory) as session:
                site = SiteSelector(session).get(site_id)
                if site is None:
                    raise SiteNotFoundError(site_id)
                inventory = InventorySelector(session)
                ledger = TransactionSelector(session)

                material_totals: dict[MaterialKind, MaterialTotals] = {}
                alerts: list[LowStockAlert] = []
                recent: list[LedgerTransaction] = []
                for kind in MaterialKind:
                    levels = inventory.levels(site_id, kind)
                    if kind is MaterialKind.DIESEL and not levels:
                        # no diesel row yet still counts as an empty tank
                        levels = [InventoryLevel.empty(kind, site_id=site_id)]
                    units, weight, variants = totals(levels)
                    material_totals[kind] = MaterialTotals(kind, units, weight, variants)
                    alerts.extend(
                        classify_low_stock(
                            levels,
                            site.thresholds.for_kind(kind),
                            self._thresholds.ratio_for(kind),
                        )
                    )
                    recent.extend(
                        ledger.recent(site_id, kind, self._config.per_material_recent_limit)
                    )

            merged = order_transactions(recent, newest_first=True)
            overview = SiteOverview(
                site=site,
                totals=material_totals,
                recent_activity=tuple(merged[: self._config.recent_activity_limit]),
                alerts=tuple(alerts),
            )
            logger.info(
                "site_overview_built",
                extra={
                    "alert_count": len(overview.alerts),
                    "recent_count": len(overview.recent_activity),
                },
            )
            return overview
