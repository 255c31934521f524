#!/usr/bin/env python3
"""Enqueue a simulated business day for every configured merchant.

Examples:
  python backend/scripts/dispatch_simulations.py
  python backend/scripts/dispatch_simulations.py --date 2026-03-14 --count 40
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import date

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from workers.celery_app import celery_app


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fan out simulate_merchant_day across merchants")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Business date (YYYY-MM-DD)")
    parser.add_argument("--count", type=int, default=None, help="Orders per merchant (default: automatic volume)")
    parser.add_argument("--multiplier", type=float, default=None)
    args = parser.parse_args(argv)

    task_kwargs = {}
    if args.count is not None:
        task_kwargs["count"] = args.count
    if args.multiplier is not None:
        task_kwargs["multiplier"] = args.multiplier

    result = celery_app.send_task(
        "workers.simulation.dispatch_merchant_days",
        kwargs={
            "business_date": args.date.isoformat() if args.date else None,
            "task_kwargs": task_kwargs,
        },
    )
    print(json.dumps({"status": "queued", "task_id": result.id}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
