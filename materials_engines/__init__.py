"""
Materials Engines -- pure calculation layer.

Conversion, level mutation, period filtering, summaries, tally checks and
low-stock classification.  Nothing here performs I/O or reads the clock.
"""

from materials_engines.ledger import (
    Conversion,
    LedgerEngine,
    LevelChange,
    ReconciliationResult,
)
from materials_engines.period import (
    PeriodView,
    filter_by_period,
    order_transactions,
    parse_timestamp,
)
from materials_engines.stock_alerts import LowStockAlert, Severity, classify_low_stock
from materials_engines.summary import (
    GroupSummary,
    PartySummary,
    StockSummaryRow,
    contractor_summary,
    stock_summary,
    summarize_by,
    supplier_summary,
    variant_summary,
)
from materials_engines.tally import TallyDiscrepancy, verify_tally

__all__ = [
    "Conversion",
    "LedgerEngine",
    "LevelChange",
    "ReconciliationResult",
    "PeriodView",
    "filter_by_period",
    "order_transactions",
    "parse_timestamp",
    "LowStockAlert",
    "Severity",
    "classify_low_stock",
    "GroupSummary",
    "PartySummary",
    "StockSummaryRow",
    "summarize_by",
    "supplier_summary",
    "contractor_summary",
    "variant_summary",
    "stock_summary",
    "TallyDiscrepancy",
    "verify_tally",
]
