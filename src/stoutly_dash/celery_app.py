# src/stoutly_dash/celery_app.py
from __future__ import annotations

import sys
import asyncio
import logging
from typing import Any, Dict

import httpx
from celery import Celery

from stoutly_dash.reports.donations import DEFAULT_LOOKBACK, aggregate_donations
from stoutly_dash.settings import AppSettings, get_settings
from stoutly_dash.sources import DashboardSources

s = get_settings()
logging.basicConfig(
    level=s.log_level.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("celery")


def create_celery(settings: AppSettings) -> Celery:
    """
    Factory to create a configured Celery instance.

    Keeps config colocated and testable. No side effects beyond app construction.
    """
    app = Celery(
        main=settings.app_name,
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )
    app.conf.update(
        task_default_queue=settings.celery_task_default_queue,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        worker_hijack_root_logger=False,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        broker_connection_retry_on_startup=True,
        result_extended=True,
        timezone="UTC",
    )
    return app


celery_app: Celery = create_celery(s)


async def _donation_totals(settings: AppSettings, time_period: str) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        sources = DashboardSources(settings, client)
        aggregate = await aggregate_donations(sources.charges, sources.profiles, time_period)
    return aggregate.as_dict()


@celery_app.task(name="tasks.donation_totals")
def donation_totals(time_period: str = DEFAULT_LOOKBACK) -> Dict[str, Any]:
    """
    Run the donation aggregation in a worker. Full Stripe histories can take
    many pages, which is better kept off the request path.
    """
    logger.info("Computing donation totals for %s", time_period)
    return asyncio.run(_donation_totals(get_settings(), time_period))
