"""
MaterialSession -- view state for one material at one site.

Responsibility:
    Holds everything a materials screen shows: current levels, the ledger,
    the active period filter and a short alert queue.  All state lives on
    the instance; nothing is module-global.

Invariants enforced:
    - Mutations go through ShipmentService.  Kernel errors become error
      alerts instead of propagating, and state is reloaded from the store
      after any failure so it never shows a value the store rejected.
    - The alert queue is newest first and bounded by ``max_alerts``.
    - Reports (stock, supplier, contractor) read the period-filtered
      ledger; tally and reconciliation read the full ledger and levels.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from materials_config.schema import LedgerConfig, ThresholdConfig
from materials_engines.ledger import ReconciliationResult
from materials_engines.period import PeriodView, filter_by_period, order_transactions
from materials_engines.specs import variants_for
from materials_engines.stock_alerts import LowStockAlert, classify_low_stock
from materials_engines.summary import (
    PartySummary,
    StockSummaryRow,
    contractor_summary,
    stock_summary,
    supplier_summary,
)
from materials_engines.tally import TallyDiscrepancy, verify_tally
from materials_kernel.db.engine import session_scope
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import (
    ZERO,
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
    PeriodFilter,
    SiteRecord,
)
from materials_kernel.exceptions import MaterialsKernelError
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.selectors.inventory_selector import (
    InventorySelector,
    TransactionSelector,
)
from materials_services.shipment_service import DeleteResult, ShipmentResult, ShipmentService

logger = get_logger("services.session")


class AlertLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Alert:
    level: AlertLevel
    message: str
    at: datetime
    code: str | None = None


def _describe(tx: LedgerTransaction) -> str:
    if tx.kind is MaterialKind.STEEL:
        return f"{tx.quantity_units} pieces of {tx.variant}mm TMT bars ({tx.weight:.3f} t)"
    if tx.kind is MaterialKind.CEMENT:
        return f"{tx.quantity_units} bags of {tx.variant} ({tx.weight:.3f} t)"
    unit = tx.weight_unit.value if tx.weight_unit else "litres"
    return f"{tx.weight} {unit} of diesel"


class MaterialSession:
    def __init__(
        self,
        site: SiteRecord,
        kind: MaterialKind | str,
        shipments: ShipmentService,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        ledger_config: LedgerConfig | None = None,
        thresholds: ThresholdConfig | None = None,
    ):
        self.site = site
        self.kind = MaterialKind(kind)
        self._shipments = shipments
        self._factory = session_factory
        self._clock = clock or SystemClock()
        self._config = ledger_config or LedgerConfig()
        self._thresholds = thresholds or ThresholdConfig()

        self.levels: list[InventoryLevel] = []
        self.transactions: list[LedgerTransaction] = []
        self.period = PeriodFilter.of(self._config.default_period)
        self._alerts: deque[Alert] = deque(maxlen=self._config.max_alerts)

    # -----------------------------------------------------------------
    # Alerts
    # -----------------------------------------------------------------

    @property
    def alerts(self) -> tuple[Alert, ...]:
        return tuple(self._alerts)

    def add_alert(self, level: AlertLevel, message: str, code: str | None = None) -> None:
        self._alerts.appendleft(Alert(level, message, self._clock.now_utc(), code))

    def clear_alerts(self) -> None:
        self._alerts.clear()

    def _fail(self, exc: MaterialsKernelError, operation: str) -> None:
        logger.warning(
            "session_operation_failed",
            extra={"operation": operation},
            exc_info=exc,
        )
        self.add_alert(AlertLevel.ERROR, str(exc), exc.code)
        self.load()

    # -----------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------

    def load(self) -> bool:
        """Refresh levels and ledger from the store.  False when the read failed."""
        try:
            with session_scope(self._factory) as session:
                levels = InventorySelector(session).levels(self.site.id, self.kind)
                ledger = TransactionSelector(session).for_site(self.site.id, self.kind)
        except SQLAlchemyError as exc:
            logger.error("session_load_failed", exc_info=True)
            self.add_alert(AlertLevel.ERROR, f"Could not load {self.kind.value} data: {exc}")
            return False
        self.levels = levels
        self.transactions = ledger
        return True

    def _absorb(self, result: ShipmentResult | DeleteResult) -> None:
        self.transactions = list(result.ledger)
        for warning in result.warnings:
            self.add_alert(AlertLevel.WARNING, warning)
        self.load()

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def receive(
        self,
        variant,
        amount,
        imported_from: str,
        unit=None,
        length=None,
        attachment=None,
    ) -> ShipmentResult | None:
        with LogContext.bind(site_id=self.site.id, material=self.kind.value):
            try:
                result = self._shipments.receive(
                    self.site.id, self.kind, variant, amount,
                    unit=unit,
                    imported_from=imported_from,
                    length=length,
                    attachment=attachment,
                )
            except MaterialsKernelError as exc:
                self._fail(exc, "receive")
                return None
            self._absorb(result)
            self.add_alert(
                AlertLevel.SUCCESS,
                f"Received {_describe(result.transaction)} at {self.site.site_name} "
                f"from {result.transaction.counterparty}",
            )
            return result

    def dispatch(
        self,
        variant,
        quantity,
        recipient: str,
        length=None,
        unit=None,
        attachment=None,
    ) -> ShipmentResult | None:
        with LogContext.bind(site_id=self.site.id, material=self.kind.value):
            try:
                result = self._shipments.dispatch(
                    self.site.id, self.kind, variant, quantity,
                    recipient=recipient,
                    length=length,
                    unit=unit,
                    attachment=attachment,
                )
            except MaterialsKernelError as exc:
                self._fail(exc, "dispatch")
                return None
            self._absorb(result)
            self.add_alert(
                AlertLevel.SUCCESS,
                f"Shipped {_describe(result.transaction)} from {self.site.site_name} "
                f"to {result.transaction.counterparty}",
            )
            return result

    def delete(self, transaction_id) -> DeleteResult | None:
        with LogContext.bind(site_id=self.site.id, material=self.kind.value):
            try:
                result = self._shipments.delete(self.site.id, self.kind, transaction_id)
            except MaterialsKernelError as exc:
                self._fail(exc, "delete")
                return None
            self._absorb(result)
            self.add_alert(
                AlertLevel.SUCCESS,
                f"Deleted {result.removed.type.value} transaction: {_describe(result.removed)}",
            )
            return result

    # -----------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------

    def set_period(self, kind, start=None, end=None) -> PeriodFilter:
        self.period = PeriodFilter.of(kind, start, end)
        return self.period

    def filtered_transactions(self) -> PeriodView:
        return filter_by_period(self.transactions, self.period, self._clock.now_utc())

    def history(self) -> list[LedgerTransaction]:
        """Filtered ledger, newest first."""
        return order_transactions(self.filtered_transactions(), newest_first=True)

    def stock_summary(self) -> dict[str, StockSummaryRow]:
        return stock_summary(
            self.filtered_transactions(),
            self.levels,
            variants_for(self.kind),
            self.site.thresholds.for_kind(self.kind),
        )

    def supplier_summary(self) -> dict[str, PartySummary]:
        return supplier_summary(self.filtered_transactions())

    def contractor_summary(self) -> dict[str, PartySummary]:
        return contractor_summary(self.filtered_transactions())

    def tally(self) -> list[TallyDiscrepancy]:
        if self.kind is not MaterialKind.STEEL:
            return []
        return verify_tally(
            self.levels,
            self._config.tally_tolerance,
            self._config.standard_rod_length,
        )

    def low_stock(self) -> list[LowStockAlert]:
        levels = self.levels
        if self.kind is MaterialKind.DIESEL and not levels:
            levels = [InventoryLevel.empty(self.kind, site_id=self.site.id)]
        return classify_low_stock(
            levels,
            self.site.thresholds.for_kind(self.kind),
            self._thresholds.ratio_for(self.kind),
        )

    def total_weight(self) -> Decimal:
        return sum((level.total_weight for level in self.levels), ZERO)

    def reconcile(self) -> list[ReconciliationResult]:
        """Compare every stored level with its replay from the full ledger."""
        engine = self._shipments.engine
        return [
            engine.reconcile(level, self.transactions, self._config.tally_tolerance)
            for level in self.levels
        ]
