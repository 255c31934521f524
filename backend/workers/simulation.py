"""
Simulation Workers — one Celery task per merchant/day.

Tasks:
  1. simulate_merchant_day: run the Day Orchestrator for a single merchant
  2. dispatch_merchant_days: fan the day out across every configured merchant
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import structlog
from celery.exceptions import SoftTimeLimitExceeded

from core.config import get_settings
from workers.celery_app import celery_app

logger = structlog.get_logger()

SIMULATE_TASK = "workers.simulation.simulate_merchant_day"


@celery_app.task(
    name=SIMULATE_TASK,
    bind=True,
    acks_late=True,
    soft_time_limit=get_settings().simulation_soft_time_limit,
)
def simulate_merchant_day(
    self,
    merchant_id: str,
    business_date: str | None = None,
    count: int | None = None,
    multiplier: float = 1.0,
    periods: list[str] | None = None,
    refund_percentage: float | None = None,
    seed: int | None = None,
):
    """Simulate a business day for one merchant and return its tally."""
    from core.merchants import resolve_merchant
    from simulator.distributions import MealPeriod
    from simulator.runner import run_merchant_day

    settings = get_settings()
    run_id = self.request.id or "manual"
    day = date.fromisoformat(business_date) if business_date else datetime.now(timezone.utc).date()
    log = logger.bind(merchant_id=merchant_id, business_date=day.isoformat(), run_id=run_id)

    try:
        credentials = resolve_merchant(settings, merchant_id)
    except ValueError as exc:
        log.error("simulation.task.unknown_merchant", error=str(exc))
        return {"status": "failed", "reason": "unknown_merchant", "merchant_id": merchant_id}

    try:
        tally = asyncio.run(
            run_merchant_day(
                settings,
                credentials,
                day,
                count=count,
                multiplier=multiplier,
                periods=[MealPeriod(p) for p in periods] if periods else None,
                refund_percentage=refund_percentage,
                seed=seed,
            )
        )
    except SoftTimeLimitExceeded:
        log.warning("simulation.task.time_limit")
        return {"status": "timed_out", "merchant_id": merchant_id, "business_date": day.isoformat()}

    log.info("simulation.task.complete", settled=tally.get("settled"), failed=tally.get("failed"))
    return {"status": "success", "run_id": run_id, **tally}


@celery_app.task(
    name="workers.simulation.dispatch_merchant_days",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def dispatch_merchant_days(
    self,
    business_date: str | None = None,
    task_kwargs: dict | None = None,
):
    """
    Enqueue simulate_merchant_day for every configured merchant.
    """
    from core.merchants import load_merchants

    run_id = self.request.id or "manual"
    payload = dict(task_kwargs or {})
    day = business_date or datetime.now(timezone.utc).date().isoformat()

    try:
        merchants = load_merchants(get_settings())
        dispatched = 0
        for merchant in merchants:
            kwargs = dict(payload)
            kwargs["merchant_id"] = merchant.merchant_id
            kwargs["business_date"] = day
            celery_app.send_task(SIMULATE_TASK, kwargs=kwargs)
            dispatched += 1

        summary = {
            "status": "success",
            "business_date": day,
            "merchant_count": len(merchants),
            "dispatched_count": dispatched,
            "triggered_at": datetime.now(timezone.utc).isoformat(),
            "run_id": run_id,
        }
        logger.info("simulation.dispatch_complete", **summary)
        return summary
    except Exception as exc:  # noqa: BLE001
        logger.error("simulation.dispatch_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
