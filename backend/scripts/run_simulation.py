#!/usr/bin/env python3
"""Simulate one business day of POS activity for a merchant.

Examples:
  python backend/scripts/run_simulation.py
  python backend/scripts/run_simulation.py --date 2026-03-14 --count 25 --seed 7
  python backend/scripts/run_simulation.py --period lunch --period dinner --multiplier 1.5
  python backend/scripts/run_simulation.py --date 2026-03-14 --summarize-only
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from datetime import date

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from core.config import get_settings
from core.merchants import resolve_merchant
from simulator.day_orchestrator import PreconditionError
from simulator.distributions import MealPeriod
from simulator.runner import run_merchant_day


def _parse_count(raw: str) -> int | None:
    if raw == "auto":
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"--count must be an integer or 'auto', got {raw!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError("--count must be non-negative")
    return value


def _parse_percentage(raw: str) -> float:
    value = float(raw)
    if not 0 <= value <= 100:
        raise argparse.ArgumentTypeError("--refund-percentage must be between 0 and 100")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate a business day of sandbox POS orders")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Business date (YYYY-MM-DD), default today")
    parser.add_argument("--count", type=_parse_count, default=None, help="Number of orders, or 'auto' (default)")
    parser.add_argument("--refund-percentage", type=_parse_percentage, default=None)
    parser.add_argument(
        "--period",
        action="append",
        type=MealPeriod,
        default=None,
        metavar="{" + ",".join(p.value for p in MealPeriod) + "}",
        help="Restrict the run to a meal period; repeat for several",
    )
    parser.add_argument("--multiplier", type=float, default=1.0, help="Scale the automatic order volume")
    parser.add_argument("--merchant-id", default=None, help="Merchant to simulate (default: first configured)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for a reproducible run")
    parser.add_argument("--summarize-only", action="store_true", help="Only recompute the daily summary")
    return parser


def configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


async def _run(args: argparse.Namespace) -> dict:
    settings = get_settings()
    credentials = resolve_merchant(settings, args.merchant_id)
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass  # Windows event loops

    return await run_merchant_day(
        settings,
        credentials,
        args.date or date.today(),
        count=args.count,
        multiplier=args.multiplier,
        periods=args.period,
        refund_percentage=args.refund_percentage,
        seed=args.seed,
        summarize_only=args.summarize_only,
        cancel_event=cancel_event,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)

    try:
        tally = asyncio.run(_run(args))
    except (PreconditionError, ValueError) as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 1

    print(json.dumps(tally, indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
