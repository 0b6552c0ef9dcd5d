"""Payroll pipeline command line interface.

Usage:
    payroll-pipeline init-db
    payroll-pipeline worker
    payroll-pipeline trigger --month 4 --year 2025
    payroll-pipeline status RUN_ID
    payroll-pipeline resume RUN_ID
    payroll-pipeline loan-schedule --principal 10000000 --rate 12 --tenure 12
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from payroll_pipeline.calculators.loan_amortization import (
    calculate_emi,
    generate_schedule,
    total_interest,
)
from payroll_pipeline.calculators.money import format_inr
from payroll_pipeline.config import Settings, get_settings
from payroll_pipeline.database import create_all, dispose_db, init_db
from payroll_pipeline.runtime import Runtime, build_runtime
from payroll_pipeline.services.loan_service import LoanValidationError, validate_loan_terms
from payroll_pipeline.services.run_service import PayrollRunExistsError, PayrollRunNotFoundError
from payroll_pipeline.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class PayrollCli:
    """Payroll pipeline command line interface."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="payroll-pipeline",
            description="Monthly payroll runs",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")
        subparsers.add_parser("worker", help="Process queued stage jobs until interrupted")

        trigger = subparsers.add_parser("trigger", help="Start the payroll run for a month")
        trigger.add_argument("--month", type=int, required=True, help="Month (1-12)")
        trigger.add_argument("--year", type=int, required=True, help="Year, e.g. 2025")

        status = subparsers.add_parser("status", help="Show a run's status")
        status.add_argument("run_id", type=parse_uuid)

        resume = subparsers.add_parser("resume", help="Queue a failed run's stage again")
        resume.add_argument("run_id", type=parse_uuid)

        loan = subparsers.add_parser("loan-schedule", help="Print an EMI schedule")
        loan.add_argument("--principal", type=int, required=True, help="Principal in paise")
        loan.add_argument("--rate", type=Decimal, required=True, help="Annual rate in percent")
        loan.add_argument("--tenure", type=int, required=True, help="Tenure in months")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = self._settings()
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "init-db": self._cmd_init_db,
            "worker": self._cmd_worker,
            "trigger": self._cmd_trigger,
            "status": self._cmd_status,
            "resume": self._cmd_resume,
            "loan-schedule": self._cmd_loan_schedule,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _settings(self) -> Settings:
        return self.settings or get_settings()

    def _with_runtime(self, command: Callable[[Runtime], Awaitable[T]]) -> T:
        async def runner() -> T:
            settings = self._settings()
            _, session_factory = init_db(settings.database_url)
            try:
                return await command(build_runtime(settings, session_factory))
            finally:
                await dispose_db()

        return asyncio.run(runner())

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        async def runner() -> None:
            engine, _ = init_db(self._settings().database_url)
            try:
                await create_all(engine)
            finally:
                await dispose_db()

        asyncio.run(runner())
        print("Database tables created")
        return 0

    def _cmd_worker(self, args: argparse.Namespace) -> int:
        async def command(runtime: Runtime) -> None:
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop.set)
                except NotImplementedError:
                    logger.warning("Signal %s cannot be handled on this platform", sig.name)
            await runtime.worker().run(stop)

        self._with_runtime(command)
        return 0

    def _cmd_trigger(self, args: argparse.Namespace) -> int:
        try:
            run = self._with_runtime(lambda rt: rt.runs.start_run(args.month, args.year))
        except (PayrollRunExistsError, ValueError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(f"Payroll run {run.payroll_run_id} queued for {args.year:04d}-{args.month:02d}")
        return 0

    def _cmd_status(self, args: argparse.Namespace) -> int:
        try:
            view = self._with_runtime(lambda rt: rt.runs.get_run_status(args.run_id))
        except PayrollRunNotFoundError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        body: dict[str, Any] = {
            "run_id": str(view.run_id),
            "period": f"{view.year:04d}-{view.month:02d}",
            "status": view.status,
            "current_stage": view.current_stage,
            "employees": {
                "total": view.total_employees,
                "processed": view.processed_employees,
                "succeeded": view.success_count,
                "failed": view.error_count,
            },
            "errors": view.errors,
            "statutory_totals": view.statutory_totals,
        }
        if view.job is not None:
            body["job"] = {
                "key": view.job.job_key,
                "state": view.job.state.value,
                "attempts": f"{view.job.attempts_made}/{view.job.max_attempts}",
                "failed_reason": view.job.failed_reason,
            }
        print(json.dumps(body, indent=2, default=str))
        return 0

    def _cmd_resume(self, args: argparse.Namespace) -> int:
        try:
            result = self._with_runtime(lambda rt: rt.runs.resume_run(args.run_id))
        except (PayrollRunNotFoundError, InvalidTransitionError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        action = "queued" if result.created else f"already {result.state.value}"
        print(f"{result.job_key}: {action}")
        return 0

    def _cmd_loan_schedule(self, args: argparse.Namespace) -> int:
        try:
            rate = validate_loan_terms(args.principal, args.rate, args.tenure)
        except LoanValidationError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        schedule = generate_schedule(args.principal, rate, args.tenure)
        print(f"EMI: {format_inr(calculate_emi(args.principal, rate, args.tenure))}")
        print(f"{'#':>4} {'EMI':>16} {'Principal':>16} {'Interest':>14} {'Balance':>18}")
        for entry in schedule:
            print(
                f"{entry.installment_number:>4} {format_inr(entry.emi):>16} "
                f"{format_inr(entry.principal):>16} {format_inr(entry.interest):>14} "
                f"{format_inr(entry.balance_after):>18}"
            )
        print(f"Total interest: {format_inr(total_interest(schedule))}")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
