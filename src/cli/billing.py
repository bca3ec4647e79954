"""CLI entry point for period billing operations.

Usage:
    python -m src.cli.billing validate <period_id>
    python -m src.cli.billing preview <period_id>
    python -m src.cli.billing calculate <period_id> --role ADMIN [--actor-id N]
    python -m src.cli.billing reopen <period_id> --role SUPER_ADMIN [--actor-id N]
    python -m src.cli.billing bill-status <bill_id> PAID --role ADMIN [--paid-at DATE] [--actor-id N]
    python -m src.cli.billing unit-bills <unit_id> [--limit N]

Exit Codes:
    0 - Success (calculate may still report anomalies for review)
    1 - Failure: precondition, validation or storage error; nothing was changed

Logging:
    LOG_LEVEL level logs to both stdout and LOG_FILE (default logs/billing.log)
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Any

from src.api.errors import AppError, error_response
from src.models.bill import Bill, BillStatus
from src.services.bills_service import BillsService
from src.services.calculation_service import CalculationService
from src.services.config import get_settings
from src.services.db import create_session
from src.services.logging import setup_logging
from src.services.period_service import BillingPeriodService
from src.services.permissions import UserRole, ensure_can_calculate, ensure_can_update_bill_status

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="Condominium water billing")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("validate", "Run the pre-flight check for a period"),
        ("preview", "Show readings progress and a bill preview"),
        ("calculate", "Calculate bills, save them and close the period"),
        ("reopen", "Delete bills of a closed period and reopen it"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("period_id", type=int, help="Billing period ID")
        sub.add_argument("--actor-id", type=int, default=None, help="User performing the action")
        if name in ("calculate", "reopen"):
            sub.add_argument(
                "--role",
                choices=[role.value for role in UserRole],
                required=True,
                help="Role of the acting user",
            )

    bill_status = subparsers.add_parser("bill-status", help="Change the payment status of a bill")
    bill_status.add_argument("bill_id", type=int, help="Bill ID")
    bill_status.add_argument("status", choices=[status.value for status in BillStatus], help="New status")
    bill_status.add_argument(
        "--paid-at",
        type=datetime.fromisoformat,
        default=None,
        help="Payment date (ISO 8601) for PAID, defaults to now",
    )
    bill_status.add_argument("--actor-id", type=int, default=None, help="User performing the action")
    bill_status.add_argument(
        "--role",
        choices=[role.value for role in UserRole],
        required=True,
        help="Role of the acting user",
    )

    unit_bills = subparsers.add_parser("unit-bills", help="List the bill history of a unit")
    unit_bills.add_argument("unit_id", type=int, help="Unit ID")
    unit_bills.add_argument("--limit", type=int, default=20, help="Maximum number of bills")

    return parser


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


def _bill_summary(bill: Bill) -> dict[str, Any]:
    return {
        "id": bill.id,
        "periodId": bill.period_id,
        "unitId": bill.unit_id,
        "consumption": float(bill.consumption),
        "totalCost": float(bill.total_cost),
        "status": bill.status.value,
        "paidAt": bill.paid_at.isoformat() if bill.paid_at else None,
    }


def run_command(args: argparse.Namespace, db) -> int:
    """Execute one parsed command against a session. Returns the exit code."""
    calculations = CalculationService(db)

    if args.command == "validate":
        validation = calculations.validate_period_for_calculation(args.period_id)
        _emit(validation.to_dict())
        return 0 if validation.is_valid else 1

    if args.command == "preview":
        summary = calculations.get_calculation_summary(args.period_id)
        _emit(
            {
                "periodInfo": summary.period_info,
                "readingsSummary": summary.readings_summary,
                "calculationPreview": (
                    summary.calculation_preview.to_dict() if summary.calculation_preview else None
                ),
            }
        )
        return 0

    if args.command == "calculate":
        ensure_can_calculate(UserRole(args.role))
        result = calculations.calculate_and_save(args.period_id, actor_id=args.actor_id)
        _emit(result.to_dict())
        if result.anomalies:
            logger.warning("Period %d closed with %d anomalies", args.period_id, len(result.anomalies))
        return 0

    if args.command == "reopen":
        period = BillingPeriodService(db).reopen_period(
            args.period_id, UserRole(args.role), actor_id=args.actor_id
        )
        _emit({"id": period.id, "status": period.status.value})
        return 0

    if args.command == "bill-status":
        ensure_can_update_bill_status(UserRole(args.role))
        bill = BillsService(db).update_bill_status(
            args.bill_id, BillStatus(args.status), paid_at=args.paid_at, actor_id=args.actor_id
        )
        _emit(_bill_summary(bill))
        return 0

    if args.command == "unit-bills":
        bills = BillsService(db).get_unit_bills(args.unit_id, limit=args.limit)
        _emit({"unitId": args.unit_id, "bills": [_bill_summary(bill) for bill in bills]})
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the billing CLI.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_file, settings.log_level)

    try:
        with create_session(settings.database_url, echo=settings.database_echo) as db:
            return run_command(args, db)
    except AppError as e:
        logger.error("%s failed: %s", args.command, e.message)
        _emit(error_response(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
