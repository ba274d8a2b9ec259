# src/stoutly_dash/reports/shaping.py
"""
Pure transforms from GA4 report results to dashboard structures.

Nothing here reads the clock or the network: the same results always shape
to the same output.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Union

from stoutly_dash.clients.ga4 import DATE_RANGE_DIMENSION, ReportResult, ReportRow
from stoutly_dash.models import KpiSet, NamedValue, TimeSeriesPoint

Number = Union[int, float]

INVALID_DATE = "Invalid Date"
NOT_SET = "(not set)"
UNKNOWN = "Unknown"


def percent_change(current: Number, previous: Number) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return ((current - previous) / previous) * 100


def to_number(raw: Optional[str]) -> Number:
    """Parse a metric value string; missing or malformed values count as 0."""
    if raw is None or raw == "":
        return 0
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return 0


def short_date_label(value: date) -> str:
    # "Mar 17", matching en-US month/day formatting
    return f"{value:%b} {value.day}"


def format_report_date(raw: Optional[str]) -> str:
    """Render a GA4 ``YYYYMMDD`` date as a short month/day label."""
    if not raw or len(raw) != 8:
        return INVALID_DATE
    try:
        parsed = datetime.strptime(raw, "%Y%m%d").date()
    except ValueError:
        return INVALID_DATE
    return short_date_label(parsed)


def _period_rows(result: ReportResult) -> tuple:
    rows = result.rows
    if any(DATE_RANGE_DIMENSION in row.dimensions for row in rows):
        by_range: Dict[str, ReportRow] = {}
        for row in rows:
            label = row.dimension(DATE_RANGE_DIMENSION)
            if label is not None:
                by_range.setdefault(label, row)
        return by_range.get("date_range_0"), by_range.get("date_range_1")
    current = rows[0] if len(rows) > 0 else None
    previous = rows[1] if len(rows) > 1 else None
    return current, previous


def extract_kpis(
    result: ReportResult,
    fields: Mapping[str, str],
    scales: Optional[Mapping[str, float]] = None,
) -> KpiSet:
    """
    Build a KpiSet from a two-date-range report.

    ``fields`` maps output names to metric names, e.g. ``{"users":
    "activeUsers"}``. A scale multiplies the reported value only; the change
    is a ratio and is computed on the raw numbers.
    """
    current_row, previous_row = _period_rows(result)
    scales = scales or {}
    values: Dict[str, float] = {}
    changes: Dict[str, float] = {}
    for name, metric in fields.items():
        current = to_number(current_row.metric(metric)) if current_row else 0
        previous = to_number(previous_row.metric(metric)) if previous_row else 0
        scale = scales.get(name)
        values[name] = current * scale if scale is not None else current
        changes[name] = percent_change(current, previous)
    return KpiSet(values=values, changes=changes)


def extract_time_series(
    result: ReportResult,
    metric: str,
    dimension: str = "date",
) -> List[TimeSeriesPoint]:
    rows = sorted(result.rows, key=lambda row: row.dimension(dimension) or "")
    return [
        TimeSeriesPoint(
            date=format_report_date(row.dimension(dimension)),
            value=to_number(row.metric(metric)),
        )
        for row in rows
    ]


def extract_breakdown(result: ReportResult, metric: str, dimension: str) -> List[NamedValue]:
    """Name/value pairs in the order the API returned them, minus ``(not set)`` rows."""
    out: List[NamedValue] = []
    for row in result.rows:
        name = row.dimension(dimension)
        if name == NOT_SET:
            continue
        out.append(NamedValue(name=name if name is not None else UNKNOWN, value=to_number(row.metric(metric))))
    return out
