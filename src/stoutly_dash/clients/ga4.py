# src/stoutly_dash/clients/ga4.py
"""GA4 Data API batch reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from stoutly_dash.errors import ReportingApiError

logger = logging.getLogger(__name__)

MAX_BATCH_REQUESTS = 5
DATE_RANGE_DIMENSION = "dateRange"
# resolved by GA4 in the property's timezone
TODAY = "today"


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str

    def to_api(self) -> Dict[str, str]:
        return {"startDate": self.start, "endDate": self.end}


@dataclass(frozen=True)
class OrderBy:
    field_name: str
    by: str = "metric"  # "metric" | "dimension"
    descending: bool = False

    def to_api(self) -> Dict[str, Any]:
        if self.by == "dimension":
            target = {"dimension": {"dimensionName": self.field_name, "orderType": "ALPHANUMERIC"}}
        else:
            target = {"metric": {"metricName": self.field_name}}
        return {**target, "desc": self.descending}


@dataclass(frozen=True)
class ReportRequest:
    metric_names: Tuple[str, ...]
    date_range: DateRange
    dimension_names: Tuple[str, ...] = ()
    comparison_date_range: Optional[DateRange] = None
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None

    def to_api(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "metrics": [{"name": name} for name in self.metric_names],
            "dateRanges": [self.date_range.to_api()],
        }
        if self.comparison_date_range is not None:
            body["dateRanges"].append(self.comparison_date_range.to_api())
        if self.dimension_names:
            body["dimensions"] = [{"name": name} for name in self.dimension_names]
        if self.order_by is not None:
            body["orderBys"] = [self.order_by.to_api()]
        if self.limit is not None:
            body["limit"] = self.limit
        return body


def _cell(value: Any) -> Optional[str]:
    # the API wraps each value as {"value": "..."}
    if isinstance(value, Mapping):
        return value.get("value")
    return value


@dataclass(frozen=True)
class ReportRow:
    """One report row, keyed by the metric and dimension names that produced it."""

    dimensions: Mapping[str, str] = field(default_factory=dict)
    metrics: Mapping[str, str] = field(default_factory=dict)

    def dimension(self, name: str) -> Optional[str]:
        return self.dimensions.get(name)

    def metric(self, name: str) -> Optional[str]:
        return self.metrics.get(name)


@dataclass(frozen=True)
class ReportResult:
    rows: Tuple[ReportRow, ...] = ()
    row_count: Optional[int] = None

    @classmethod
    def from_api(cls, request: ReportRequest, payload: Optional[Mapping[str, Any]]) -> "ReportResult":
        """
        Name the positional values of a raw report using ``request``.

        Comparison-range reports carry an extra trailing ``dateRange``
        dimension (``date_range_0`` / ``date_range_1``) that was never asked for.
        """
        if not payload:
            return cls()
        dimension_names = list(request.dimension_names)
        if request.comparison_date_range is not None:
            dimension_names.append(DATE_RANGE_DIMENSION)

        rows: List[ReportRow] = []
        for raw in payload.get("rows") or []:
            dims = [_cell(v) for v in raw.get("dimensionValues") or []]
            mets = [_cell(v) for v in raw.get("metricValues") or []]
            rows.append(
                ReportRow(
                    dimensions={n: v for n, v in zip(dimension_names, dims) if v is not None},
                    metrics={n: v for n, v in zip(request.metric_names, mets) if v is not None},
                )
            )
        row_count = payload.get("rowCount")
        return cls(rows=tuple(rows), row_count=int(row_count) if row_count is not None else None)


def build_batch_body(requests: Sequence[ReportRequest]) -> Dict[str, Any]:
    if not requests:
        raise ValueError("At least one report request is required")
    if len(requests) > MAX_BATCH_REQUESTS:
        raise ValueError(
            f"GA4 accepts at most {MAX_BATCH_REQUESTS} requests per batch, got {len(requests)}"
        )
    return {"requests": [r.to_api() for r in requests]}


async def run_batch_reports(
    client: httpx.AsyncClient,
    api_base: str,
    property_id: str,
    access_token: str,
    requests: Sequence[ReportRequest],
) -> List[ReportResult]:
    """Run up to five reports in one call; results follow request order."""
    body = build_batch_body(requests)
    url = f"{api_base.rstrip('/')}/properties/{property_id}:batchRunReports"
    try:
        r = await client.post(url, json=body, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.HTTPError as e:
        logger.error("GA4 batchRunReports failed: %s", e)
        raise ReportingApiError(0, str(e), f"GA4 reporting request failed: {e}") from e
    if r.status_code // 100 != 2:
        logger.error("GA4 batchRunReports failed (%s): %s", r.status_code, r.text)
        raise ReportingApiError(r.status_code, r.text)
    try:
        reports = r.json().get("reports") or []
    except ValueError as e:
        raise ReportingApiError(r.status_code, r.text, "GA4 reporting returned invalid JSON") from e
    return [
        ReportResult.from_api(request, reports[i] if i < len(reports) else None)
        for i, request in enumerate(requests)
    ]
