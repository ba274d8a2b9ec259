# src/stoutly_dash/reports/home.py
# | Card Name             | Visual Type  | Purpose / Data Shown                            |
# | --------------------- | ------------ | ----------------------------------------------- |
# | HomeActivityAreaCard  | area         | New users and new ratings per day               |

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping

import httpx
from cereon_sdk.fastapi import BaseCard, ChartCardRecord

from stoutly_dash.models import HomeDashboard, TimeSeriesPoint
from stoutly_dash.reports.shaping import INVALID_DATE, short_date_label
from stoutly_dash.settings import get_settings
from stoutly_dash.sources import DashboardSources, RpcSource

logger = logging.getLogger(__name__)

DEFAULT_HOME_PERIOD = "30d"

# dashboard KPI name -> column returned by get_dashboard_stats
HOME_KPI_COLUMNS = {
    "totalUsers": "total_users",
    "newUsers": "new_users",
    "newUsersChange": "new_users_change",
    "activeUsers": "active_users",
    "activeUsersChange": "active_users_change",
    "totalRatings": "total_ratings",
    "newRatings": "new_ratings",
    "newRatingsChange": "new_ratings_change",
    "totalPubsWithRatings": "total_pubs_with_ratings",
    "totalUploadedImages": "total_uploaded_images",
    "totalComments": "total_comments",
}


def format_iso_date(raw: Any) -> str:
    if isinstance(raw, (date, datetime)):
        return short_date_label(raw)
    try:
        return short_date_label(date.fromisoformat(str(raw)[:10]))
    except ValueError:
        return INVALID_DATE


def _single_row(data: Any) -> Mapping[str, Any]:
    if isinstance(data, list):
        return data[0] if data else {}
    return data or {}


def map_home_kpis(row: Mapping[str, Any]) -> Dict[str, float]:
    return {name: row.get(column) or 0 for name, column in HOME_KPI_COLUMNS.items()}


def map_home_series(rows: List[Mapping[str, Any]], column: str) -> List[TimeSeriesPoint]:
    return [
        TimeSeriesPoint(date=format_iso_date(row.get("date")), value=row.get(column) or 0)
        for row in rows
    ]


async def build_home_data(source: RpcSource, time_period: str = DEFAULT_HOME_PERIOD) -> HomeDashboard:
    """The three home-tab reads are independent, so they run concurrently."""
    stats, series, prices = await asyncio.gather(
        source.rpc("get_dashboard_stats", {"time_period": time_period}),
        source.rpc("get_dashboard_timeseries", {"time_period": time_period}),
        source.rpc("get_price_stats_by_country"),
    )
    series = series or []
    logger.info("Home data for %s: %d time-series rows", time_period, len(series))
    return HomeDashboard(
        kpis=map_home_kpis(_single_row(stats)),
        new_users_over_time=map_home_series(series, "new_users"),
        new_ratings_over_time=map_home_series(series, "new_ratings"),
        avg_pint_price_by_country=list(prices or []),
    )


class HomeActivityAreaCard(BaseCard[ChartCardRecord]):
    kind = "recharts:area"
    card_id = "home_activity_area"
    report_id = "home"
    route_prefix = "/cards"
    response_model = ChartCardRecord
    transport = "http"

    @classmethod
    async def handler(cls, ctx=None) -> List[ChartCardRecord]:
        params = (ctx or {}).get("params", {}) if ctx else {}
        time_period = str(params.get("time_period", DEFAULT_HOME_PERIOD))
        settings = get_settings()
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            home = await build_home_data(DashboardSources(settings, client).rpc, time_period)

        merged: List[Dict[str, Any]] = [
            {"date": users.date, "newUsers": users.value, "newRatings": ratings.value}
            for users, ratings in zip(home.new_users_over_time, home.new_ratings_over_time)
        ]
        payload = {
            "kind": "area",
            "report_id": cls.report_id,
            "card_id": cls.card_id,
            "data": {"data": merged},
        }
        return [cls.response_model(**payload)]
