# src/stoutly_dash/api.py
"""JSON routes mirroring the dashboard's server functions."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from stoutly_dash.errors import DashboardError, UpstreamApiError
from stoutly_dash.reports.donations import DEFAULT_LOOKBACK, aggregate_donations
from stoutly_dash.reports.ga4_stats import DEFAULT_GA4_PERIOD, build_ga4_dashboard
from stoutly_dash.reports.home import DEFAULT_HOME_PERIOD, build_home_data
from stoutly_dash.settings import AppSettings, get_settings
from stoutly_dash.sources import DashboardSources

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])


class TimePeriodRequest(BaseModel):
    time_period: str = ""


async def get_http_client(
    settings: AppSettings = Depends(get_settings),
) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        yield client


def get_sources(
    settings: AppSettings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> DashboardSources:
    return DashboardSources(settings, client)


@router.post("/ga4-stats")
async def ga4_stats(
    body: TimePeriodRequest = TimePeriodRequest(),
    sources: DashboardSources = Depends(get_sources),
) -> Dict[str, Any]:
    dashboard = await build_ga4_dashboard(sources.reports, body.time_period or DEFAULT_GA4_PERIOD)
    return dashboard.as_dict()


@router.post("/stripe-data")
async def stripe_data(
    body: TimePeriodRequest = TimePeriodRequest(),
    sources: DashboardSources = Depends(get_sources),
) -> Dict[str, Any]:
    aggregate = await aggregate_donations(
        sources.charges, sources.profiles, body.time_period or DEFAULT_LOOKBACK
    )
    return aggregate.as_dict()


@router.post("/home-data")
async def home_data(
    body: TimePeriodRequest = TimePeriodRequest(),
    sources: DashboardSources = Depends(get_sources),
) -> Dict[str, Any]:
    home = await build_home_data(sources.rpc, body.time_period or DEFAULT_HOME_PERIOD)
    return home.as_dict()


async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    if isinstance(exc, UpstreamApiError):
        logger.error(
            "%s %s failed: %s (upstream status %s, body %r)",
            request.method,
            request.url.path,
            exc,
            exc.status,
            exc.body,
        )
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=exc.http_status)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    logger.warning("%s %s rejected: %s", request.method, request.url.path, problems)
    return JSONResponse({"error": f"Invalid request body: {problems}"}, status_code=400)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
