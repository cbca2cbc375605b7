#!/usr/bin/env python3
"""
Operator script for the materials ledger.

Commands:
    init-db                       create all tables
    report --site-code CODE       print the stock summary for one material
    sign-url PATH                 print a signed URL for a stored attachment

Usage:
    python3 scripts/site_report.py init-db
    python3 scripts/site_report.py report --site-code RTP-123 --material steel
    python3 scripts/site_report.py report --site-code RTP-123 --material cement --period custom \
        --start 2024-01-01 --end 2024-03-31
    python3 scripts/site_report.py sign-url bills/RTP-123_1710495000000.pdf --expires-in 600
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from materials_config import get_active_config  # noqa: E402
from materials_engines.summary import StockSummaryRow  # noqa: E402
from materials_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from materials_kernel.domain.dtos import MaterialKind, PeriodKind  # noqa: E402
from materials_kernel.exceptions import MaterialsKernelError  # noqa: E402
from materials_kernel.logging_config import configure_logging  # noqa: E402
from materials_services.material_session import MaterialSession  # noqa: E402
from materials_services.shipment_service import ShipmentService  # noqa: E402
from materials_services.site_service import SiteRegistry  # noqa: E402
from materials_services.storage import LocalBlobStore  # noqa: E402


def render_stock_report(
    rows: dict[str, StockSummaryRow],
    kind: MaterialKind,
    include_empty: bool = False,
) -> list[str]:
    """Format stock summary rows as fixed-width text lines."""
    unit = kind.unit_label or "-"
    weight_label = "litres" if kind is MaterialKind.DIESEL else "tonnes"
    header = (
        f"{'Variant':<16}{'Opening':>12}{'In':>12}{'Out':>12}{'Closing':>12}"
        f"{'Closing ' + weight_label:>20}  Low"
    )
    lines = [f"Units: {unit}", header, "-" * len(header)]
    for row in rows.values():
        touched = row.closing_units or row.closing_weight or row.members
        if not include_empty and not touched:
            continue
        if kind is MaterialKind.DIESEL:
            opening, incoming = row.opening_weight, row.incoming_weight
            outgoing, closing = row.outgoing_weight, row.closing_weight
        else:
            opening, incoming = row.opening_units, row.incoming_units
            outgoing, closing = row.outgoing_units, row.closing_units
        lines.append(
            f"{row.variant:<16}{opening:>12}{incoming:>12}{outgoing:>12}{closing:>12}"
            f"{row.closing_weight:>20.3f}  {'*' if row.low_stock else ''}"
        )
    return lines


def cmd_init_db(args: argparse.Namespace) -> int:
    config = get_active_config(args.config)
    init_engine_from_url(config.database.url, echo=config.database.echo)
    create_tables()
    print(f"Tables created in {config.database.url}")
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    config = get_active_config(args.config)
    init_engine_from_url(config.database.url, echo=config.database.echo)
    factory = get_session_factory()

    site = SiteRegistry(factory, thresholds=config.thresholds).get_by_code(args.site_code)
    session = MaterialSession(
        site,
        args.material,
        ShipmentService(
            factory,
            blob_store=LocalBlobStore.from_config(config.storage),
            ledger_config=config.ledger,
            storage_config=config.storage,
        ),
        factory,
        ledger_config=config.ledger,
        thresholds=config.thresholds,
    )
    if not session.load():
        for alert in session.alerts:
            print(alert.message, file=sys.stderr)
        return 1
    session.set_period(args.period, args.start, args.end)

    kind = MaterialKind(args.material)
    print(f"{site.site_name} ({site.site_code}) - {kind.value} - {args.period or 'all time'}")
    for line in render_stock_report(session.stock_summary(), kind, args.all):
        print(line)
    for discrepancy in session.tally():
        print(
            f"TALLY {discrepancy.variant}mm @ {discrepancy.length}m: stored "
            f"{discrepancy.stored_weight} t, expected {discrepancy.expected_weight} t"
        )
    return 0


def cmd_sign_url(args: argparse.Namespace) -> int:
    config = get_active_config(args.config)
    store = LocalBlobStore.from_config(config.storage)
    print(store.signed_url(args.path, args.expires_in))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Site materials ledger tools")
    parser.add_argument("--config", help="YAML overlay (defaults to $MATERIALS_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="create tables")
    init.set_defaults(func=cmd_init_db)

    report = sub.add_parser("report", help="print a stock summary")
    report.add_argument("--site-code", required=True)
    report.add_argument(
        "--material",
        choices=[k.value for k in MaterialKind],
        default=MaterialKind.STEEL.value,
    )
    report.add_argument(
        "--period",
        choices=[p.value for p in PeriodKind] + ["all"],
        default=PeriodKind.LAST_30_DAYS.value,
    )
    report.add_argument("--start", type=date.fromisoformat)
    report.add_argument("--end", type=date.fromisoformat)
    report.add_argument("--all", action="store_true", help="include variants with no activity")
    report.set_defaults(func=cmd_report)

    sign = sub.add_parser("sign-url", help="print a signed URL for a stored attachment")
    sign.add_argument("path")
    sign.add_argument(
        "--expires-in", type=int, help="seconds; defaults to storage.signed_url_ttl_seconds"
    )
    sign.set_defaults(func=cmd_sign_url)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    try:
        return args.func(args)
    except MaterialsKernelError as exc:
        print(f"error [{exc.code}]: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
