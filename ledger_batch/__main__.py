"""
Run monthly record generation.

Usage:
    python3 -m ledger_batch [--config PATH] [--once] [--period "March 2025"]

Examples:
    # Start the daily scheduler (runs now, then every day at 00:01)
    python3 -m ledger_batch --config site.yaml

    # Generate the current month once and exit
    python3 -m ledger_batch --once

    # Backfill a specific month
    python3 -m ledger_batch --once --period "March 2025"

    # Create deferred salary mirrors and repair mirror drift
    python3 -m ledger_batch --reconcile-mirrors
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

import yaml

from ledger_config import load_settings
from ledger_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import SystemClock
from ledger_kernel.exceptions import InvalidPeriodError
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_kernel.services.payment_service import PaymentService

from ledger_batch.scheduler import GenerationScheduler

logger = get_logger("batch.runner")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ledger_batch",
        description="Generate monthly fees and salaries.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: $LEDGER_CONFIG or packaged defaults).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one generation and exit instead of starting the scheduler.",
    )
    parser.add_argument(
        "--period",
        default=None,
        help='Period key to generate, e.g. "March 2025" (with --once).',
    )
    parser.add_argument(
        "--reconcile-mirrors",
        action="store_true",
        help="Create missing salary mirrors and repair drift, then exit.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level_number)
    init_engine_from_url(settings.database_url, echo=settings.echo_sql)
    create_tables()
    register_immutability_listeners()

    clock = SystemClock(settings.timezone)
    session_factory = get_session_factory()

    if args.reconcile_mirrors:
        session = session_factory()
        try:
            result = PaymentService(session, clock, settings.system_actor_id).reconcile_salary_mirrors()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        print(
            f"Mirrors created: {result.mirrors_created}, "
            f"drift repaired: {result.drift_repaired}, "
            f"still deferred: {result.still_deferred}"
        )
        return 0

    scheduler = GenerationScheduler(
        session_factory,
        clock=clock,
        system_actor_id=settings.system_actor_id,
        run_at=settings.run_at,
        interval=timedelta(hours=settings.interval_hours),
    )

    if args.once or args.period:
        try:
            summary = scheduler.run_once(args.period)
        except InvalidPeriodError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        if summary is None:
            print("ERROR: generation failed, see log", file=sys.stderr)
            return 1
        print(
            f"{summary.period}: fees created {summary.fees_created} "
            f"(existing {summary.fees_existing}), salaries created "
            f"{summary.salaries_created} (existing {summary.salaries_existing}), "
            f"skipped {len(summary.skipped)}, overdue students {len(summary.overdue)}"
        )
        return 0

    scheduler.start()
    try:
        while scheduler.is_running:
            scheduler.join(timeout=60)
    except KeyboardInterrupt:
        logger.info("scheduler_interrupted")
    finally:
        scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
