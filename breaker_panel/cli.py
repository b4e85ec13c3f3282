# breaker_panel/cli.py
# Command-line entry points: print a consolidation plan, import the legacy CSV sheet.
from __future__ import annotations
import argparse
import logging
import sys
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from breaker_panel.core.exceptions import BreakerPanelError
from breaker_panel.core.logging_config import configure_logging
from breaker_panel.core.settings import settings
from breaker_panel.db import init_db, make_engine

logger = logging.getLogger(__name__)


def _session(database_url: Optional[str]):
    engine = make_engine(database_url or settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def cmd_plan(args) -> int:
    from breaker_panel.io.plan_excel import write_plan_xlsx
    from breaker_panel.planner.critical_move import plan_critical_move
    from breaker_panel.planner.report import render_plan

    session = _session(args.database_url)
    try:
        plan = plan_critical_move(session, args.target, args.source)
    finally:
        session.close()

    print(render_plan(plan))
    if args.xlsx:
        path = write_plan_xlsx(plan, out_path=args.xlsx)
        print(f"Workbook saved to {path}")
    return 0


def cmd_import_csv(args) -> int:
    from breaker_panel.io.csv_import import import_csv

    session = _session(args.database_url)
    try:
        stats = import_csv(session, args.file, panel_name=args.panel_name)
    finally:
        session.close()

    print("Import summary:")
    print(f"   Panel id: {stats.panel_id}")
    print(f"   Panels created: {stats.panels}")
    print(f"   Rooms imported: {stats.rooms}")
    print(f"   Breakers created: {stats.breakers}")
    print(f"   Circuits imported: {stats.circuits}")
    if stats.warnings:
        print(f"\nWarnings ({len(stats.warnings)}):")
        for w in stats.warnings:
            print(f"   - {w}")
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run("breaker_panel.main:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="breaker-panel", description="Breaker panel bookkeeping tools")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level (default from LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Plan moving every critical breaker into a target panel")
    plan.add_argument("--target", type=int, required=True, help="Target panel id")
    plan.add_argument("--source", type=int, default=None, help="Source panel id (default: first panel with critical breakers)")
    plan.add_argument("--database-url", default=None, help="SQLAlchemy URL (default from DATABASE_URL)")
    plan.add_argument("--xlsx", default=None, help="Also write the plan to this .xlsx file")
    plan.set_defaults(func=cmd_plan)

    imp = sub.add_parser("import-csv", help="Import the legacy panel CSV sheet")
    imp.add_argument("file", help="CSV file to import")
    imp.add_argument("--database-url", default=None, help="SQLAlchemy URL (default from DATABASE_URL)")
    imp.add_argument("--panel-name", default=None, help=f"Name of the created panel (default '{settings.IMPORT_PANEL_NAME}')")
    imp.set_defaults(func=cmd_import_csv)

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.func(args)
    except BreakerPanelError as e:
        logger.error("%s: %s", type(e).__name__, e)
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
