#!/usr/bin/env python3
"""Run the points sweep once: expire overdue batches and send expiry reminders.

Intended usage: schedule via cron when the in-process scheduler is disabled.

Example:
    python tooling/scripts/run_points_sweep.py

Use `--dry-run` to route reminders through the simulator backend instead of
the WhatsApp Cloud API. Expiry itself is still applied.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expire overdue loyalty points and notify expiring balances")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use the simulator message backend instead of WhatsApp delivery.",
    )
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Override the sweep clock (ISO-8601, UTC assumed when naive).",
    )
    return parser.parse_args()


async def _run(dry_run: bool, now: datetime | None) -> dict:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from loyalty_api.db.session import async_session  # type: ignore import-position
    from loyalty_api.jobs.points_sweep import run_points_sweep  # type: ignore import-position
    from loyalty_api.services.notifications import (  # type: ignore import-position
        NotificationService,
        SimulatorBackend,
    )

    notification_service = None
    if dry_run:
        notification_service = NotificationService(async_session, backend=SimulatorBackend())

    return await run_points_sweep(async_session, now=now, notification_service=notification_service)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.dry_run, args.now))
    logger.success("Points sweep run completed", dry_run=args.dry_run, **summary)
    print(json.dumps(summary, indent=2, default=str))
    return 1 if summary.get("customers_failed") else 0


if __name__ == "__main__":
    raise SystemExit(main())
