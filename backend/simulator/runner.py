"""
Simulation runner — wires settings, credentials, the Clover client and the
ledger together for one merchant/day. Shared by the CLI and the Celery task.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Iterable
from datetime import date
from typing import Any

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import Settings
from core.merchants import MerchantCredentials
from integrations.clover import CloverClient
from ledger.store import LedgerStore
from simulator.config import SimulationConfig
from simulator.day_orchestrator import DayOrchestrator
from simulator.distributions import MealPeriod

logger = structlog.get_logger()


async def run_merchant_day(
    settings: Settings,
    credentials: MerchantCredentials,
    business_date: date,
    *,
    count: int | None = None,
    multiplier: float = 1.0,
    periods: Iterable[MealPeriod] | None = None,
    refund_percentage: float | None = None,
    seed: int | None = None,
    summarize_only: bool = False,
    cancel_event: asyncio.Event | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Run (or just re-summarize) one business day and return the tally."""
    engine = None
    if session_factory is None:
        engine = create_async_engine(settings.database_url, echo=settings.database_echo, pool_pre_ping=True)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    config = SimulationConfig.from_settings(settings, credentials.merchant_id).with_refund_percentage(
        refund_percentage
    )
    rng = random.Random(seed)
    logger.info(
        "simulation.run.started",
        merchant_id=credentials.merchant_id,
        business_date=business_date.isoformat(),
        summarize_only=summarize_only,
        seed=seed,
    )

    try:
        async with session_factory() as session, session_factory() as audit_session:
            store = LedgerStore(session)
            audit_hook = LedgerStore(audit_session).record_api_request if settings.audit_api_requests else None
            client = CloverClient(
                credentials,
                timeout=settings.api_timeout_seconds,
                audit_hook=audit_hook,
                transport=transport,
            )
            try:
                orchestrator = DayOrchestrator(client, store, config, rng)
                if summarize_only:
                    return {"summary": await orchestrator.summarize(business_date)}
                result = await orchestrator.run_day(
                    business_date,
                    count=count,
                    multiplier=multiplier,
                    periods=periods,
                    cancel_event=cancel_event,
                )
                return result.to_dict()
            finally:
                await client.aclose()
    finally:
        if engine is not None:
            await engine.dispose()
