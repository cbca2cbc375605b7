"""
Module: materials_engines.period
Responsibility:
    Period filtering and total ordering of ledger transactions for the
    reporting views.

Architecture position:
    Engines -- pure calculation layer.  ``now`` is always a parameter; this
    module never reads the clock.

Invariants enforced:
    - filter_by_period is idempotent and returns a restartable view: every
      iteration re-applies the same predicate to the same captured input.
    - Preset windows are inclusive at the lower bound and have no upper
      bound.
    - Fail open: a transaction whose timestamp cannot be parsed is always
      included, so a parse failure never hides data.
    - Custom windows run from 00:00:00 on the start date to 23:59:59.999 on
      the end date (UTC); a missing bound disables filtering.
    - Ordering is by (timestamp, sequence).
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator, Sequence

from materials_engines.tracer import traced_engine
from materials_kernel.domain.dtos import LedgerTransaction, PeriodFilter, PeriodKind
from materials_kernel.logging_config import get_logger

logger = get_logger("engines.period")

PRESET_DAYS: dict[PeriodKind, int] = {
    PeriodKind.LAST_7_DAYS: 7,
    PeriodKind.LAST_30_DAYS: 30,
    PeriodKind.LAST_90_DAYS: 90,
}

END_OF_DAY = time(23, 59, 59, 999000)

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """
    Best-effort conversion to an aware UTC datetime.

    Naive datetimes are taken as UTC.  ISO-8601 strings (including a
    trailing ``Z``) are parsed.  Anything else returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def one_year_before(moment: datetime) -> datetime:
    """Same calendar moment one year earlier; Feb 29 becomes Feb 28."""
    try:
        return moment.replace(year=moment.year - 1)
    except ValueError:
        return moment.replace(year=moment.year - 1, day=28)


def _as_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def window_bounds(
    period_filter: PeriodFilter | None,
    now: datetime,
) -> tuple[datetime | None, datetime | None] | None:
    """
    Resolve a filter to (lower, upper) bounds, or None for "everything".

    ``upper`` is None for the preset windows.
    """
    if period_filter is None or period_filter.kind is None:
        return None

    now = parse_timestamp(now)
    kind = period_filter.kind

    if kind in PRESET_DAYS:
        return now - timedelta(days=PRESET_DAYS[kind]), None
    if kind is PeriodKind.LAST_YEAR:
        return one_year_before(now), None

    start = _as_date(period_filter.start)
    end = _as_date(period_filter.end)
    if start is None or end is None:
        return None
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, END_OF_DAY, tzinfo=timezone.utc),
    )


class PeriodView:
    """
    Restartable, lazily-evaluated filtered view over a transaction list.

    The input is captured once as a tuple, so generators passed in can be
    iterated any number of times through the view.
    """

    def __init__(
        self,
        transactions: Iterable[LedgerTransaction],
        bounds: tuple[datetime | None, datetime | None] | None,
    ):
        self._source: tuple[LedgerTransaction, ...] = tuple(transactions)
        self._bounds = bounds

    @property
    def bounds(self) -> tuple[datetime | None, datetime | None] | None:
        return self._bounds

    def _matches(self, tx: LedgerTransaction) -> bool:
        if self._bounds is None:
            return True
        ts = parse_timestamp(tx.timestamp)
        if ts is None:
            logger.warning(
                "unparseable_timestamp_included",
                extra={"transaction_id": str(tx.id), "timestamp": tx.timestamp},
            )
            return True
        lower, upper = self._bounds
        if lower is not None and ts < lower:
            return False
        if upper is not None and ts > upper:
            return False
        return True

    def __iter__(self) -> Iterator[LedgerTransaction]:
        return (tx for tx in self._source if self._matches(tx))

    def count(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)

    def to_list(self) -> list[LedgerTransaction]:
        return [tx for tx in self._source if self._matches(tx)]


@traced_engine("period.filter", "1.0", fingerprint_fields=("period_filter", "now"))
def filter_by_period(
    transactions: Iterable[LedgerTransaction],
    period_filter: PeriodFilter | None,
    now: datetime,
) -> PeriodView:
    """Filter transactions to the window described by ``period_filter``."""
    return PeriodView(transactions, window_bounds(period_filter, now))


def _sort_key(tx: LedgerTransaction) -> tuple[datetime, int]:
    ts = parse_timestamp(tx.timestamp)
    return (ts if ts is not None else _EARLIEST, tx.sequence)


def order_transactions(
    transactions: Iterable[LedgerTransaction],
    newest_first: bool = False,
) -> list[LedgerTransaction]:
    """
    Sort by (timestamp, sequence).

    Unparseable timestamps sort before everything else in ascending order.
    """
    return sorted(transactions, key=_sort_key, reverse=newest_first)


def most_recent(
    transactions: Sequence[LedgerTransaction] | Iterable[LedgerTransaction],
    limit: int,
) -> list[LedgerTransaction]:
    return order_transactions(transactions, newest_first=True)[:limit]
