#!/usr/bin/env python3
"""
Prepaid ledger operator CLI.

Usage:
    python3 -m scripts.ledger_cli init-db
    python3 -m scripts.ledger_cli settle --date 2024-03-01 --location <uuid> --operator <uuid>
    python3 -m scripts.ledger_cli forecast --anchor 2024-03-01 [--location <uuid>]

The database URL comes from the active settings document
(``PREPAID_LEDGER_CONFIG`` or the packaged defaults) unless ``--db-url``
is given.  Results are printed as JSON on stdout; domain errors are
printed as JSON on stderr with exit status 1.
"""

import argparse
import json
import sys
from dataclasses import asdict
from datetime import date
from uuid import UUID

from prepaid_config import get_active_config
from prepaid_engines.forecast import ForecastResult
from prepaid_kernel.db.base import Base
from prepaid_kernel.db.engine import get_session, init_engine_from_url
from prepaid_kernel.exceptions import LedgerError
from prepaid_modules._orm_registry import create_all_tables
from prepaid_modules.forecast import ForecastService
from prepaid_modules.settlement import SettlementService


def _emit(payload) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def forecast_to_dict(result: ForecastResult) -> dict:
    return {
        "anchor": result.anchor,
        "opening_liability": result.opening_liability,
        "ending_liability": result.ending_liability,
        "growth_rate": result.growth_rate,
        "total_inflow": result.total_inflow,
        "total_outflow": result.total_outflow,
        "total_revenue": result.total_revenue,
        "override_count": result.override_count,
        "buckets": [
            {
                "bucket_key": b.bucket_key,
                "start_date": b.start_date,
                "end_date": b.end_date,
                "inflow": b.inflow,
                "outflow": b.outflow,
                "revenue": b.revenue,
                "net_cash_flow": b.net_cash_flow,
                "cumulative_liability": b.cumulative_liability,
                "overridden": b.is_overridden,
                "locked": b.is_locked,
            }
            for b in result.buckets
        ],
        "alerts": [asdict(a) for a in result.alerts],
    }


def cmd_init_db(args, settings) -> int:
    create_all_tables()
    _emit({"status": "ok", "tables": sorted(Base.metadata.tables)})
    return 0


def cmd_settle(args, settings) -> int:
    session = get_session()
    try:
        report = SettlementService(
            session, max_attempts=settings.max_attempts,
        ).settle(args.date, args.location, args.operator)
    finally:
        session.close()
    _emit(asdict(report))
    return 0


def cmd_forecast(args, settings) -> int:
    session = get_session()
    try:
        result = ForecastService(session, config=settings.forecast).generate(
            anchor=args.anchor, location_id=args.location,
        )
    finally:
        session.close()
    _emit(forecast_to_dict(result))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger_cli",
        description="Prepaid revenue ledger operations.",
    )
    parser.add_argument("--config", type=str, default=None, help="Settings YAML path")
    parser.add_argument("--db-url", type=str, default=None, help="Database URL override")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Create all ledger tables")
    init.set_defaults(handler=cmd_init_db)

    settle = sub.add_parser("settle", help="Close one business day for a location")
    settle.add_argument("--date", type=date.fromisoformat, required=True)
    settle.add_argument("--location", type=UUID, required=True)
    settle.add_argument("--operator", type=UUID, required=True)
    settle.set_defaults(handler=cmd_settle)

    forecast = sub.add_parser("forecast", help="Print the rolling forecast")
    forecast.add_argument("--anchor", type=date.fromisoformat, default=None)
    forecast.add_argument("--location", type=UUID, default=None)
    forecast.set_defaults(handler=cmd_forecast)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_active_config(args.config)
    database = settings.database
    init_engine_from_url(args.db_url or database.url, **database.engine_kwargs())
    try:
        return args.handler(args, settings)
    except LedgerError as exc:
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
