# src/stoutly_dash/generators/mock_data.py
from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence

from faker import Faker

from stoutly_dash.clients.ga4 import TODAY, ReportRequest, ReportResult
from stoutly_dash.models import Charge, UserProfile

DIMENSION_VALUES: Dict[str, List[str]] = {
    "deviceCategory": ["mobile", "desktop", "tablet"],
    "eventName": [
        "page_view",
        "session_start",
        "first_visit",
        "user_engagement",
        "scroll",
        "click",
        "rate_pub",
        "upload_image",
        "search",
        "share",
        "sign_up",
    ],
    "country": [
        "United Kingdom",
        "Ireland",
        "United States",
        "Germany",
        "France",
        "Australia",
        "Canada",
        "Netherlands",
        "Spain",
        "(not set)",
        "Belgium",
    ],
}
PINT_COUNTRIES = [
    ("United Kingdom", "GB", 5.2),
    ("Ireland", "IE", 6.1),
    ("United States", "US", 7.4),
    ("Germany", "DE", 4.6),
    ("Australia", "AU", 8.3),
]
HOME_PERIOD_DAYS = {"24h": 1, "7d": 7, "30d": 30, "90d": 90, "1y": 365}


def ga4_date(value: date) -> str:
    return value.strftime("%Y%m%d")


class MockDataset:
    """
    Synthetic stand-in for GA4, Stripe and Supabase used when
    ``USE_MOCK_DATA=true``. Seeded, so a given instance always answers the
    same way.
    """

    def __init__(
        self,
        seed: int = 0,
        donors: int = 12,
        charges: int = 160,
        today: Optional[date] = None,
    ):
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.rng = random.Random(seed)
        self.now = datetime.now(timezone.utc)
        self.today = today or date.today()
        self.profiles = self._make_profiles(donors)
        self.charges = self._make_charges(charges)

    def _make_profiles(self, count: int) -> Dict[str, UserProfile]:
        profiles: Dict[str, UserProfile] = {}
        for _ in range(count):
            user_id = str(self.fake.uuid4())
            profiles[user_id] = UserProfile(
                id=user_id,
                display_name=self.fake.user_name(),
                avatar_ref=f"avatar_{self.rng.randint(1, 24)}",
            )
        return profiles

    def _make_charges(self, count: int) -> List[Charge]:
        user_ids = list(self.profiles) + [str(self.fake.uuid4())]
        charges: List[Charge] = []
        for _ in range(count):
            amount = self.rng.choice([300, 500, 500, 1000, 1500, 2000, 5000])
            created = self.now - timedelta(minutes=self.rng.randint(5, 60 * 24 * 500))
            user_id = self.rng.choice(user_ids) if self.rng.random() > 0.2 else None
            charges.append(
                Charge(
                    id=f"ch_{self.fake.pystr(min_chars=24, max_chars=24)}",
                    amount_minor=amount,
                    fee_minor=int(round(amount * 0.015)) + 20,
                    succeeded=self.rng.random() > 0.08,
                    created_at=created,
                    user_id=user_id,
                )
            )
        # Stripe lists newest first
        charges.sort(key=lambda c: c.created_at, reverse=True)
        return charges

    async def iter_charges(self, created_gte: Optional[datetime] = None) -> AsyncIterator[Charge]:
        for charge in self.charges:
            if created_gte is None or charge.created_at >= created_gte:
                yield charge

    async def fetch_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        return {uid: self.profiles[uid] for uid in set(user_ids) if uid in self.profiles}

    async def run_reports(self, requests: Sequence[ReportRequest]) -> List[ReportResult]:
        return [ReportResult.from_api(request, self._report_payload(request)) for request in requests]

    def _metric_value(self, metric: str, base: int) -> str:
        if metric == "engagementRate":
            return f"{self.rng.uniform(0.45, 0.75):.4f}"
        return str(max(0, int(base * self.rng.uniform(0.6, 1.4))))

    def _row(self, dims: Sequence[str], metrics: Sequence[str], base: int) -> Dict[str, Any]:
        return {
            "dimensionValues": [{"value": d} for d in dims],
            "metricValues": [{"value": self._metric_value(m, base)} for m in metrics],
        }

    def _resolve_date(self, value: str) -> date:
        return self.today if value == TODAY else date.fromisoformat(value)

    def _report_payload(self, request: ReportRequest) -> Mapping[str, Any]:
        metrics = request.metric_names
        rows: List[Dict[str, Any]] = []
        if request.comparison_date_range is not None:
            rows.append(self._row(["date_range_0"], metrics, 4000))
            rows.append(self._row(["date_range_1"], metrics, 3500))
        elif request.dimension_names == ("date",):
            start = self._resolve_date(request.date_range.start)
            end = self._resolve_date(request.date_range.end)
            day = start
            while day <= end:
                rows.append(self._row([ga4_date(day)], metrics, 150))
                day += timedelta(days=1)
        elif request.dimension_names:
            values = DIMENSION_VALUES.get(request.dimension_names[0], ["other"])
            rows = [self._row([value], metrics, 800) for value in values]
            rows.sort(key=lambda r: int(r["metricValues"][0]["value"]), reverse=True)
        else:
            rows.append(self._row([], metrics, 4000))
        if request.limit is not None:
            rows = rows[: request.limit]
        return {"rows": rows, "rowCount": len(rows)}

    async def rpc(self, function: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        params = params or {}
        if function == "get_dashboard_stats":
            return [
                {
                    "total_users": 5000 + self.rng.randint(0, 500),
                    "new_users": self.rng.randint(50, 300),
                    "new_users_change": round(self.rng.uniform(-20, 40), 1),
                    "active_users": self.rng.randint(400, 900),
                    "active_users_change": round(self.rng.uniform(-20, 40), 1),
                    "total_ratings": 20000 + self.rng.randint(0, 2000),
                    "new_ratings": self.rng.randint(200, 900),
                    "new_ratings_change": round(self.rng.uniform(-20, 40), 1),
                    "total_pubs_with_ratings": 3100 + self.rng.randint(0, 200),
                    "total_uploaded_images": 1800 + self.rng.randint(0, 200),
                    "total_comments": 900 + self.rng.randint(0, 100),
                }
            ]
        if function == "get_dashboard_timeseries":
            days = HOME_PERIOD_DAYS.get(str(params.get("time_period")), 90)
            today = self.today
            return [
                {
                    "date": (today - timedelta(days=days - i - 1)).isoformat(),
                    "new_users": self.rng.randint(0, 40),
                    "new_ratings": self.rng.randint(5, 120),
                }
                for i in range(days)
            ]
        if function == "get_price_stats_by_country":
            return [
                {
                    "country": name,
                    "countryCode": code,
                    "price": round(price * self.rng.uniform(0.9, 1.1), 2),
                    "pubsCount": self.rng.randint(20, 900),
                    "priceRatingsCount": self.rng.randint(50, 4000),
                }
                for name, code, price in PINT_COUNTRIES
            ]
        return []
