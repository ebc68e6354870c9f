"""
Command-line interface for Spendlog.

Provides commands for:
- Serving the HTTP API
- Registering users
- Recording costs
- Printing monthly reports and user totals
"""

import argparse
import json
import sys
from typing import Optional

from spendlog.config import Settings, configure_logging, get_settings
from spendlog.storage import create_storage
from spendlog.tracker import CostTracker
from spendlog.models import CATEGORIES
from spendlog.validation import SpendlogError


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _with_tracker(settings: Settings, action):
    storage = create_storage(settings)
    try:
        return action(CostTracker(storage=storage, report_strategy=settings.report_strategy))
    finally:
        storage.close()


def cmd_serve(args, settings: Settings):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, log_level=settings.log_level.lower())


def cmd_register(args, settings: Settings):
    """Register a user."""
    user = _with_tracker(settings, lambda t: t.register_user(
        id=args.id,
        first_name=args.first_name,
        last_name=args.last_name,
        birthday=args.birthday,
        marital_status=args.marital_status,
    ))
    _print_json(user.to_document())


def cmd_add(args, settings: Settings):
    """Record a cost."""
    entry = _with_tracker(settings, lambda t: t.record_cost(
        description=args.description,
        category=args.category,
        userid=args.userid,
        sum=args.sum,
        year=args.year,
        month=args.month,
        day=args.day,
        time=args.time,
    ))
    _print_json(entry.to_document())


def cmd_report(args, settings: Settings):
    """Print a monthly report."""
    report = _with_tracker(settings, lambda t: t.get_monthly_report(args.id, args.year, args.month))
    _print_json(report.to_dict())


def cmd_user(args, settings: Settings):
    """Print a user's all-time total."""
    total = _with_tracker(settings, lambda t: t.get_user_total(args.id))
    _print_json(total.to_dict())


def main(argv: Optional[list[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Spendlog: personal cost tracking CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the API on port 3000
  spendlog serve --port 3000

  # Register a user and record a cost
  spendlog register 123123 Ada Lovelace 1990-01-01 single
  spendlog add 123123 "Gym Membership" sport 50 --year 2025 --month 2 --day 1

  # Monthly report and all-time total
  spendlog report 123123 2025 2
  spendlog user 123123

Storage and report strategy come from SPENDLOG_* environment variables.
""",
    )
    parser.add_argument("--report-strategy", choices=["scan", "precomputed"],
                        help="Override SPENDLOG_REPORT_STRATEGY")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", "-p", type=int, default=3000, help="Port")

    # Register command
    reg_parser = subparsers.add_parser("register", help="Register a user")
    reg_parser.add_argument("id", type=int, help="Numeric user id")
    reg_parser.add_argument("first_name")
    reg_parser.add_argument("last_name")
    reg_parser.add_argument("birthday", help="ISO date, e.g. 1990-01-01")
    reg_parser.add_argument("marital_status")

    # Add command
    add_parser = subparsers.add_parser("add", help="Record a cost")
    add_parser.add_argument("userid", type=int, help="Owning user id")
    add_parser.add_argument("description")
    add_parser.add_argument("category", choices=CATEGORIES)
    add_parser.add_argument("sum", type=float, help="Amount")
    add_parser.add_argument("--year", type=int)
    add_parser.add_argument("--month", type=int)
    add_parser.add_argument("--day", type=int)
    add_parser.add_argument("--time", help="24-hour hh:mm")

    # Report command
    rep_parser = subparsers.add_parser("report", help="Print a monthly report")
    rep_parser.add_argument("id", type=int, help="User id")
    rep_parser.add_argument("year", type=int)
    rep_parser.add_argument("month", type=int)

    # User command
    user_parser = subparsers.add_parser("user", help="Print a user's total spend")
    user_parser.add_argument("id", type=int, help="User id")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    if args.report_strategy:
        settings.report_strategy = args.report_strategy
    configure_logging(settings.log_level)

    # Dispatch to command handler
    commands = {
        "serve": cmd_serve,
        "register": cmd_register,
        "add": cmd_add,
        "report": cmd_report,
        "user": cmd_user,
    }

    handler = commands[args.command]
    try:
        handler(args, settings)
    except SpendlogError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
