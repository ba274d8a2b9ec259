from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

ANONYMOUS_KEY = "anonymous"
ANONYMOUS_NAME = "Anonymous"


def _to_major(amount_minor: int) -> float:
    return amount_minor / 100


@dataclass(frozen=True)
class TimeSeriesPoint:
    date: str
    value: float

    def as_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "value": self.value}


@dataclass(frozen=True)
class NamedValue:
    name: str
    value: float

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class KpiSet:
    """
    Named KPI values, each paired with a percentage change against the
    previous period of equal length. Serialises to ``{name, nameChange}``.
    """

    values: Mapping[str, float]
    changes: Mapping[str, float]

    def __getitem__(self, name: str) -> float:
        return self.values[name]

    def change(self, name: str) -> float:
        return self.changes[name]

    def as_dict(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for name, value in self.values.items():
            out[name] = value
            out[f"{name}Change"] = self.changes.get(name, 0.0)
        return out


@dataclass(frozen=True)
class Ga4Dashboard:
    kpis: KpiSet
    users_over_time: Sequence[TimeSeriesPoint]
    sessions_over_time: Sequence[TimeSeriesPoint]
    device_breakdown: Sequence[NamedValue]
    top_events: Sequence[NamedValue]
    users_by_country: Sequence[NamedValue]
    # the top pages report no longer fits in a five-request batch
    top_pages: Sequence[NamedValue] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kpis": self.kpis.as_dict(),
            "charts": {
                "usersOverTime": [p.as_dict() for p in self.users_over_time],
                "sessionsOverTime": [p.as_dict() for p in self.sessions_over_time],
                "deviceBreakdown": [v.as_dict() for v in self.device_breakdown],
            },
            "tables": {
                "topEvents": [v.as_dict() for v in self.top_events],
                "topPages": [v.as_dict() for v in self.top_pages],
                "usersByCountry": [v.as_dict() for v in self.users_by_country],
            },
        }


@dataclass(frozen=True)
class Charge:
    """
    A Stripe charge reduced to the fields the donation aggregate needs.

    Amounts stay in minor units (pence/cents) so totals add up exactly.
    """

    id: str
    amount_minor: int
    fee_minor: int
    succeeded: bool
    created_at: datetime
    user_id: Optional[str] = None

    @classmethod
    def from_stripe(cls, payload: Mapping[str, Any]) -> "Charge":
        balance_transaction = payload.get("balance_transaction")
        fee = 0
        if isinstance(balance_transaction, Mapping):
            fee = int(balance_transaction.get("fee") or 0)
        metadata = payload.get("metadata") or {}
        return cls(
            id=str(payload["id"]),
            amount_minor=int(payload.get("amount") or 0),
            fee_minor=fee,
            succeeded=bool(payload.get("paid")) and payload.get("status") == "succeeded",
            created_at=datetime.fromtimestamp(int(payload.get("created") or 0), tz=timezone.utc),
            user_id=metadata.get("supabase_user_id") or None,
        )


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: str
    avatar_ref: str = ""

    @classmethod
    def anonymous(cls, user_id: Optional[str] = None) -> "UserProfile":
        return cls(id=user_id or "", display_name=ANONYMOUS_NAME, avatar_ref="")


@dataclass(frozen=True)
class TopDonor:
    id: Optional[str]
    name: str
    avatar_ref: str
    amount_minor: int

    @classmethod
    def none(cls) -> "TopDonor":
        return cls(id=None, name="N/A", avatar_ref="", amount_minor=0)

    @property
    def amount(self) -> float:
        return _to_major(self.amount_minor)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.name,
            "avatar_id": self.avatar_ref,
            "totalAmount": self.amount,
        }


@dataclass(frozen=True)
class Donation:
    charge_id: str
    donor: UserProfile
    amount_minor: int
    created_at: datetime

    @property
    def amount(self) -> float:
        return _to_major(self.amount_minor)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.charge_id,
            "user": {
                "id": self.donor.id or None,
                "username": self.donor.display_name,
                "avatar_id": self.donor.avatar_ref,
            },
            "amount": self.amount,
            "date": self.created_at.strftime("%d/%m/%Y"),
        }


@dataclass(frozen=True)
class DonationAggregate:
    """
    Donation totals for one lookback window.

    ``per_user_totals`` is keyed by Supabase user id, or ``"anonymous"`` for
    charges without one. ``recent_donations`` keeps fetch order.
    """

    gross_minor: int
    fee_minor: int
    count: int
    per_user_totals: Mapping[str, int]
    top_donor: TopDonor
    recent_donations: Sequence[Donation] = field(default_factory=tuple)
    donors: Mapping[str, UserProfile] = field(default_factory=dict)

    def leaderboard(self, limit: int = 10) -> List[Tuple[UserProfile, float]]:
        """Largest per-user totals first; equal totals keep first-seen order."""
        ranked = sorted(self.per_user_totals.items(), key=lambda item: item[1], reverse=True)
        return [
            (self.donors.get(key) or UserProfile.anonymous(), _to_major(amount))
            for key, amount in ranked[:limit]
        ]

    @property
    def gross_total(self) -> float:
        return _to_major(self.gross_minor)

    @property
    def fee_total(self) -> float:
        return _to_major(self.fee_minor)

    @property
    def net_total(self) -> float:
        return _to_major(self.gross_minor - self.fee_minor)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "grossDonations": self.gross_total,
            "stripeFees": self.fee_total,
            "netDonations": self.net_total,
            "totalDonations": self.count,
            "topDonator": self.top_donor.as_dict(),
            "recentDonations": [d.as_dict() for d in self.recent_donations],
            "perUserTotals": {k: _to_major(v) for k, v in self.per_user_totals.items()},
        }


@dataclass(frozen=True)
class HomeDashboard:
    kpis: Mapping[str, float]
    new_users_over_time: Sequence[TimeSeriesPoint]
    new_ratings_over_time: Sequence[TimeSeriesPoint]
    avg_pint_price_by_country: List[Dict[str, Any]]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kpis": dict(self.kpis),
            "charts": {
                "newUsersOverTime": [p.as_dict() for p in self.new_users_over_time],
                "newRatingsOverTime": [p.as_dict() for p in self.new_ratings_over_time],
            },
            "tables": {"avgPintPriceByCountry": list(self.avg_pint_price_by_country)},
        }
