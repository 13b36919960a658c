#!/usr/bin/env python3
"""
Run the recurring-series maintenance jobs from the command line.

Creates tables if needed, loads settings via get_active_config(), and runs
one of:
  sweep      -- generate missing instances for every active rule, once
  reminders  -- create lease-end reminders, once
  scheduler  -- seed the default schedules and poll until interrupted

Usage:
    python3 scripts/run_sweep.py [sweep|reminders|scheduler] [options]

Examples:
    # Nightly sweep against a local SQLite file
    python3 scripts/run_sweep.py sweep --database-url sqlite:///recurrence.db

    # Sweep a single organization with two workers
    python3 scripts/run_sweep.py sweep --org-id org-1 --workers 2

    # Run the in-process scheduler with a custom settings file
    python3 scripts/run_sweep.py scheduler --config settings.yaml
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("RECURRENCE_DATABASE_URL", "sqlite:///recurrence.db")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run recurring-series maintenance: sweep, lease reminders, or scheduler.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="sweep",
        choices=("sweep", "reminders", "scheduler"),
        help="What to run (default: sweep).",
    )
    parser.add_argument(
        "--database-url",
        default=DB_URL,
        help="SQLAlchemy URL (default: $RECURRENCE_DATABASE_URL or sqlite:///recurrence.db).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML merged over the packaged defaults.",
    )
    parser.add_argument(
        "--org-id",
        default=None,
        help="Restrict the sweep to one organization.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Sweep worker threads (default from settings).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Root log level (default: INFO).",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from recurrence_batch.models import BatchJobModel  # noqa: F401  registers batch tables
    from recurrence_batch.orchestrator import BatchOrchestrator
    from recurrence_config import get_active_config
    from recurrence_config.bridges import series_service_options
    from recurrence_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
        session_scope,
    )
    from recurrence_kernel.domain.clock import SystemClock
    from recurrence_kernel.logging_config import configure_logging
    from recurrence_kernel.services.recurring_service import RecurringSeriesService

    configure_logging(level=args.log_level)
    settings = get_active_config(args.config)
    init_engine_from_url(args.database_url)
    create_tables()

    clock = SystemClock()
    options = series_service_options(settings)
    if args.workers is not None:
        options["sweep_workers"] = args.workers

    if args.command == "sweep":
        service = RecurringSeriesService(get_session_factory(), clock=clock, **options)
        signal.signal(signal.SIGINT, lambda *_: service.cancel_sweep())
        result = service.generate_missing_instances(org_id=args.org_id)
        print(
            f"rules processed: {result.rules_processed}  "
            f"instances created: {result.instances_created}  "
            f"errors: {result.error_count}"
            + ("  (cancelled)" if result.cancelled else "")
        )
        for error in result.errors:
            print(f"  {error.rule_id}: {error.error_code} {error.error_message}")
        return 1 if result.errors else 0

    if args.command == "reminders":
        service = RecurringSeriesService(get_session_factory(), clock=clock, **options)
        created = service.create_lease_end_reminders()
        print(f"lease-end reminders created: {created}")
        return 0

    with session_scope() as session:
        orchestrator = BatchOrchestrator.from_session(session, settings=settings, clock=clock)
        orchestrator.seed_default_schedules()

    scheduler = orchestrator.create_scheduler(get_session_factory())
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    scheduler.start()
    print("scheduler running; Ctrl-C to stop")
    stop.wait()
    scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
