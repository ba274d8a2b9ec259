# src/stoutly_dash/reports/ga4_stats.py
# | Card Name             | Visual Type    | Purpose / Data Shown                          |
# | --------------------- | -------------- | --------------------------------------------- |
# | Ga4TrafficLineCard    | line           | Active users and sessions per day             |
# | Ga4DeviceBarCard      | bar-horizontal | Active users by device category               |
# | Ga4TopEventsBarCard   | bar-horizontal | Ten most frequent events                      |
# | Ga4CountriesBarCard   | bar-horizontal | Ten countries with the most active users      |

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from cereon_sdk.fastapi import BaseCard, ChartCardRecord

from stoutly_dash.clients.ga4 import TODAY, DateRange, OrderBy, ReportRequest, ReportResult
from stoutly_dash.errors import InvalidTimePeriodError
from stoutly_dash.models import Ga4Dashboard
from stoutly_dash.reports.shaping import extract_breakdown, extract_kpis, extract_time_series
from stoutly_dash.settings import get_settings
from stoutly_dash.sources import DashboardSources, ReportSource

logger = logging.getLogger(__name__)

GA4_PERIOD_DAYS: Dict[str, int] = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_GA4_PERIOD = "30d"

KPI_FIELDS = {
    "users": "activeUsers",
    "sessions": "sessions",
    "engagementRate": "engagementRate",
    "eventCount": "eventCount",
}
# GA4 reports engagement as a 0..1 ratio; the dashboard shows a percentage
KPI_SCALES = {"engagementRate": 100.0}

# Positions of each report in the batch built by build_report_requests
KPI_REPORT = 0
TRAFFIC_REPORT = 1
DEVICE_REPORT = 2
EVENTS_REPORT = 3
COUNTRY_REPORT = 4


def resolve_report_window(time_period: str, today: date) -> Tuple[DateRange, DateRange]:
    """
    Current window ending today and the equal-length window just before it.

    The current range ends on GA4's own ``today`` so the last day follows the
    property's timezone; the start dates come from ``today`` as given.
    """
    days = GA4_PERIOD_DAYS.get(time_period)
    if days is None:
        raise InvalidTimePeriodError(time_period, tuple(GA4_PERIOD_DAYS))
    current_start = today - timedelta(days=days - 1)
    previous_end = current_start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=days - 1)
    return (
        DateRange(current_start.isoformat(), TODAY),
        DateRange(previous_start.isoformat(), previous_end.isoformat()),
    )


def build_report_requests(current: DateRange, previous: DateRange) -> Tuple[ReportRequest, ...]:
    return (
        ReportRequest(
            metric_names=("activeUsers", "sessions", "engagementRate", "eventCount"),
            date_range=current,
            comparison_date_range=previous,
        ),
        ReportRequest(
            metric_names=("activeUsers", "sessions"),
            dimension_names=("date",),
            date_range=current,
            order_by=OrderBy("date", by="dimension"),
        ),
        ReportRequest(
            metric_names=("activeUsers",),
            dimension_names=("deviceCategory",),
            date_range=current,
            order_by=OrderBy("activeUsers", descending=True),
        ),
        ReportRequest(
            metric_names=("eventCount",),
            dimension_names=("eventName",),
            date_range=current,
            order_by=OrderBy("eventCount", descending=True),
            limit=10,
        ),
        ReportRequest(
            metric_names=("activeUsers",),
            dimension_names=("country",),
            date_range=current,
            order_by=OrderBy("activeUsers", descending=True),
            limit=10,
        ),
    )


def shape_ga4_dashboard(results: Sequence[ReportResult]) -> Ga4Dashboard:
    def report(index: int) -> ReportResult:
        return results[index] if index < len(results) else ReportResult()

    return Ga4Dashboard(
        kpis=extract_kpis(report(KPI_REPORT), KPI_FIELDS, KPI_SCALES),
        users_over_time=extract_time_series(report(TRAFFIC_REPORT), "activeUsers"),
        sessions_over_time=extract_time_series(report(TRAFFIC_REPORT), "sessions"),
        device_breakdown=extract_breakdown(report(DEVICE_REPORT), "activeUsers", "deviceCategory"),
        top_events=extract_breakdown(report(EVENTS_REPORT), "eventCount", "eventName"),
        users_by_country=extract_breakdown(report(COUNTRY_REPORT), "activeUsers", "country"),
    )


async def build_ga4_dashboard(
    source: ReportSource,
    time_period: str = DEFAULT_GA4_PERIOD,
    today: Optional[date] = None,
) -> Ga4Dashboard:
    current, previous = resolve_report_window(time_period, today or date.today())
    logger.info(
        "GA4 stats for %s: current %s..%s, previous %s..%s",
        time_period,
        current.start,
        current.end,
        previous.start,
        previous.end,
    )
    results = await source.run_reports(build_report_requests(current, previous))
    return shape_ga4_dashboard(results)


async def _load_dashboard(ctx) -> Ga4Dashboard:
    params = (ctx or {}).get("params", {}) if ctx else {}
    time_period = str(params.get("time_period", DEFAULT_GA4_PERIOD))
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        sources = DashboardSources(settings, client)
        return await build_ga4_dashboard(sources.reports, time_period)


class Ga4TrafficLineCard(BaseCard[ChartCardRecord]):
    kind = "recharts:line"
    card_id = "ga4_traffic_line"
    report_id = "ga4"
    route_prefix = "/cards"
    response_model = ChartCardRecord
    transport = "http"

    @classmethod
    async def handler(cls, ctx=None) -> List[ChartCardRecord]:
        dashboard = await _load_dashboard(ctx)
        # both series come from the same report, so their dates line up
        merged: List[Dict[str, Any]] = [
            {"date": users.date, "users": users.value, "sessions": sessions.value}
            for users, sessions in zip(dashboard.users_over_time, dashboard.sessions_over_time)
        ]
        payload = {
            "kind": "line",
            "report_id": cls.report_id,
            "card_id": cls.card_id,
            "data": {"data": merged},
        }
        return [cls.response_model(**payload)]


async def _breakdown_records(card, ctx, table_name: str) -> List[ChartCardRecord]:
    dashboard = await _load_dashboard(ctx)
    rows = [item.as_dict() for item in getattr(dashboard, table_name)]
    payload = {
        "kind": "bar-horizontal",
        "report_id": card.report_id,
        "card_id": card.card_id,
        "data": {"data": rows},
    }
    return [card.response_model(**payload)]


class Ga4DeviceBarCard(BaseCard[ChartCardRecord]):
    kind = "recharts:bar"
    card_id = "ga4_device_breakdown"
    report_id = "ga4"
    route_prefix = "/cards"
    response_model = ChartCardRecord
    transport = "http"

    @classmethod
    async def handler(cls, ctx=None) -> List[ChartCardRecord]:
        return await _breakdown_records(cls, ctx, "device_breakdown")


class Ga4TopEventsBarCard(BaseCard[ChartCardRecord]):
    kind = "recharts:bar"
    card_id = "ga4_top_events"
    report_id = "ga4"
    route_prefix = "/cards"
    response_model = ChartCardRecord
    transport = "http"

    @classmethod
    async def handler(cls, ctx=None) -> List[ChartCardRecord]:
        return await _breakdown_records(cls, ctx, "top_events")


class Ga4CountriesBarCard(BaseCard[ChartCardRecord]):
    kind = "recharts:bar"
    card_id = "ga4_users_by_country"
    report_id = "ga4"
    route_prefix = "/cards"
    response_model = ChartCardRecord
    transport = "http"

    @classmethod
    async def handler(cls, ctx=None) -> List[ChartCardRecord]:
        return await _breakdown_records(cls, ctx, "users_by_country")
