from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

from stoutly_dash.clients.supabase import SupabaseProfileLookup, SupabaseRestClient
from stoutly_dash.errors import DashboardError, ProfileLookupError, SupabaseApiError


class FakeQuery:
    def __init__(self, owner):
        self.owner = owner

    def select(self, columns):
        self.owner.calls.append(("select", columns))
        return self

    def in_(self, column, values):
        self.owner.calls.append(("in", column, list(values)))
        return self

    async def execute(self):
        self.owner.calls.append(("execute",))
        if self.owner.error is not None:
            raise self.owner.error
        return SimpleNamespace(data=self.owner.data)


class FakeSupabase:
    """Records the query-builder chain the way supabase-py's AsyncClient exposes it."""

    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error
        self.calls = []

    def table(self, name):
        self.calls.append(("table", name))
        return FakeQuery(self)

    def rpc(self, function, params):
        self.calls.append(("rpc", function, params))
        return FakeQuery(self)


def _rest(fake: FakeSupabase) -> SupabaseRestClient:
    return SupabaseRestClient("https://stoutly.supabase.co", "service-role", client=fake)


async def test_fetch_profiles_uses_one_filtered_select():
    fake = FakeSupabase(
        data=[
            {"id": "user-a", "username": "alice_pints", "avatar_id": "avatars/a.png"},
            {"id": "user-b", "username": None, "avatar_id": None},
        ]
    )

    profiles = await SupabaseProfileLookup(_rest(fake)).fetch_profiles(
        ["user-b", "user-a", "user-b", "user-c"]
    )

    assert fake.calls == [
        ("table", "profiles"),
        ("select", "id,username,avatar_id"),
        ("in", "id", ["user-a", "user-b", "user-c"]),
        ("execute",),
    ]
    assert set(profiles) == {"user-a", "user-b"}
    assert profiles["user-a"].display_name == "alice_pints"
    assert profiles["user-a"].avatar_ref == "avatars/a.png"
    assert profiles["user-b"].display_name == ""


async def test_fetch_profiles_with_no_ids_makes_no_request():
    fake = FakeSupabase(data=[])

    assert await SupabaseProfileLookup(_rest(fake)).fetch_profiles([]) == {}
    assert fake.calls == []


async def test_fetch_profiles_api_error_becomes_profile_lookup_error():
    fake = FakeSupabase(
        error=APIError(
            {"message": 'relation "profiles" does not exist', "code": "42P01", "hint": None, "details": None}
        )
    )

    with pytest.raises(ProfileLookupError) as info:
        await SupabaseProfileLookup(_rest(fake), table="profiles").fetch_profiles(["user-a"])

    assert "does not exist" in str(info.value)
    assert "42P01" in info.value.body
    assert info.value.http_status == 502


@pytest.mark.parametrize(
    "error",
    [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
        ValueError("Expecting value: line 1 column 1 (char 0)"),
    ],
)
async def test_fetch_profiles_network_failure_becomes_profile_lookup_error(error):
    fake = FakeSupabase(error=error)

    with pytest.raises(ProfileLookupError) as info:
        await SupabaseProfileLookup(_rest(fake)).fetch_profiles(["user-a"])

    assert info.value.status == 0


async def test_rpc_passes_params_and_returns_data():
    fake = FakeSupabase(data=[{"total_users": 12}])

    result = await _rest(fake).rpc("get_dashboard_stats", {"time_period": "7d"})

    assert result == [{"total_users": 12}]
    assert fake.calls[0] == ("rpc", "get_dashboard_stats", {"time_period": "7d"})


async def test_rpc_without_params_sends_empty_mapping():
    fake = FakeSupabase(data=[])

    await _rest(fake).rpc("get_price_stats_by_country")

    assert fake.calls[0] == ("rpc", "get_price_stats_by_country", {})


async def test_rpc_api_error_raises_supabase_error():
    fake = FakeSupabase(
        error=APIError({"message": "function not found", "code": "PGRST202", "hint": None, "details": None})
    )

    with pytest.raises(SupabaseApiError, match="get_price_stats_by_country"):
        await _rest(fake).rpc("get_price_stats_by_country")


async def test_rpc_connection_failure_is_a_dashboard_error():
    fake = FakeSupabase(error=httpx.ConnectError("connection refused"))

    with pytest.raises(SupabaseApiError) as info:
        await _rest(fake).rpc("get_dashboard_stats", {"time_period": "30d"})

    assert isinstance(info.value, DashboardError)
    assert info.value.status == 0
    assert "connection refused" in str(info.value)
