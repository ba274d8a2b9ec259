# src/stoutly_dash/reports/donations.py
# | Card Name             | Visual Type    | Purpose / Data Shown                          |
# | --------------------- | -------------- | --------------------------------------------- |
# | DonorLeaderboardCard  | bar-horizontal | Ten largest donors in the lookback window     |

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx
from cereon_sdk.fastapi import BaseCard, ChartCardRecord
from dateutil.relativedelta import relativedelta

from stoutly_dash.errors import InvalidTimePeriodError
from stoutly_dash.models import (
    ANONYMOUS_KEY,
    Charge,
    Donation,
    DonationAggregate,
    TopDonor,
    UserProfile,
)
from stoutly_dash.settings import get_settings
from stoutly_dash.sources import ChargeSource, DashboardSources, ProfileSource

logger = logging.getLogger(__name__)

# None means no lower bound
LOOKBACK_WINDOWS: Dict[str, Optional[relativedelta]] = {
    "24h": relativedelta(days=1),
    "7d": relativedelta(days=7),
    "30d": relativedelta(days=30),
    "1y": relativedelta(years=1),
    "all": None,
}
DEFAULT_LOOKBACK = "30d"
RECENT_DONATIONS_LIMIT = 10


def resolve_lookback(time_period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Lower bound for charge creation time, or None for all time."""
    if time_period not in LOOKBACK_WINDOWS:
        raise InvalidTimePeriodError(time_period, tuple(LOOKBACK_WINDOWS))
    window = LOOKBACK_WINDOWS[time_period]
    if window is None:
        return None
    return (now or datetime.now(timezone.utc)) - window


async def aggregate_donations(
    charges: ChargeSource,
    profiles: ProfileSource,
    time_period: str = DEFAULT_LOOKBACK,
    now: Optional[datetime] = None,
    recent_limit: int = RECENT_DONATIONS_LIMIT,
) -> DonationAggregate:
    """
    Fold every successful charge in the window into donation totals.

    Charges are consumed as they stream in; only per-user totals and the
    first ``recent_limit`` charges are held. Profiles for every user id seen
    are then fetched in one batch. A failing charge listing or profile lookup
    propagates; there is no partial result.
    """
    created_gte = resolve_lookback(time_period, now)

    gross = 0
    fees = 0
    count = 0
    per_user: Dict[str, int] = {}
    recent: List[Charge] = []
    seen = 0

    async for charge in charges.iter_charges(created_gte):
        seen += 1
        if not charge.succeeded:
            continue
        gross += charge.amount_minor
        fees += charge.fee_minor
        count += 1
        key = charge.user_id or ANONYMOUS_KEY
        per_user[key] = per_user.get(key, 0) + charge.amount_minor
        if len(recent) < recent_limit:
            recent.append(charge)

    user_ids = [key for key in per_user if key != ANONYMOUS_KEY]
    logger.info(
        "Aggregated %d successful of %d charges for %s across %d known users",
        count,
        seen,
        time_period,
        len(user_ids),
    )
    found = await profiles.fetch_profiles(user_ids) if user_ids else {}
    donors: Dict[str, UserProfile] = {
        key: found.get(key) or UserProfile.anonymous(key if key != ANONYMOUS_KEY else None)
        for key in per_user
    }

    top = TopDonor.none()
    for key, amount in per_user.items():
        # strict comparison keeps the first donor reaching the maximum
        if amount > top.amount_minor:
            donor = donors[key]
            top = TopDonor(
                id=key if key != ANONYMOUS_KEY else None,
                name=donor.display_name,
                avatar_ref=donor.avatar_ref,
                amount_minor=amount,
            )

    return DonationAggregate(
        gross_minor=gross,
        fee_minor=fees,
        count=count,
        per_user_totals=per_user,
        top_donor=top,
        recent_donations=tuple(
            Donation(
                charge_id=c.id,
                donor=donors[c.user_id or ANONYMOUS_KEY],
                amount_minor=c.amount_minor,
                created_at=c.created_at,
            )
            for c in recent
        ),
        donors=donors,
    )


class DonorLeaderboardCard(BaseCard[ChartCardRecord]):
    kind = "recharts:bar"
    card_id = "donor_leaderboard"
    report_id = "financials"
    route_prefix = "/cards"
    response_model = ChartCardRecord
    transport = "http"

    @classmethod
    async def handler(cls, ctx=None) -> List[ChartCardRecord]:
        params = (ctx or {}).get("params", {}) if ctx else {}
        time_period = str(params.get("time_period", DEFAULT_LOOKBACK))
        settings = get_settings()
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            sources = DashboardSources(settings, client)
            aggregate = await aggregate_donations(sources.charges, sources.profiles, time_period)

        rows = [
            {"name": donor.display_name, "value": amount}
            for donor, amount in aggregate.leaderboard()
        ]
        payload = {
            "kind": "bar-horizontal",
            "report_id": cls.report_id,
            "card_id": cls.card_id,
            "data": {"data": rows},
        }
        return [cls.response_model(**payload)]
