from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from stoutly_dash.clients.stripe import StripeChargeLister
from stoutly_dash.errors import PaymentApiError
from stoutly_dash.models import Charge

API_BASE = "https://api.stripe.com/v1"


def _charge(charge_id, amount=1000, fee=30, user_id=None, status="succeeded", paid=True, created=1742212800):
    payload = {
        "id": charge_id,
        "object": "charge",
        "amount": amount,
        "paid": paid,
        "status": status,
        "created": created,
        "metadata": {"supabase_user_id": user_id} if user_id else {},
        "balance_transaction": {"id": f"txn_{charge_id}", "fee": fee},
    }
    return payload


async def _collect(lister, created_gte=None):
    return [c async for c in lister.iter_charges(created_gte)]


def test_charge_from_stripe():
    payload = _charge("ch_1", amount=2500, fee=103, user_id="user-1")

    charge = Charge.from_stripe(payload)

    assert charge.id == "ch_1"
    assert charge.amount_minor == 2500
    assert charge.fee_minor == 103
    assert charge.succeeded is True
    assert charge.user_id == "user-1"
    assert charge.created_at == datetime(2025, 3, 17, 12, 0, tzinfo=timezone.utc)
    assert set(Charge.__dataclass_fields__) == {
        "id", "amount_minor", "fee_minor", "succeeded", "created_at", "user_id"
    }


def test_charge_from_stripe_unexpanded_and_failed():
    payload = _charge("ch_2", status="failed", paid=False)
    payload["balance_transaction"] = "txn_123"

    charge = Charge.from_stripe(payload)

    assert charge.fee_minor == 0
    assert charge.succeeded is False
    assert charge.user_id is None


async def test_iter_charges_follows_cursor_until_exhausted():
    seen = []
    pages = {
        None: {"data": [_charge("ch_1"), _charge("ch_2")], "has_more": True},
        "ch_2": {"data": [_charge("ch_3")], "has_more": False},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=pages[request.url.params.get("starting_after")])

    created_gte = datetime(2025, 2, 15, 12, 0, tzinfo=timezone.utc)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        lister = StripeChargeLister(client, "sk_test_123", API_BASE)
        charges = await _collect(lister, created_gte)

    assert [c.id for c in charges] == ["ch_1", "ch_2", "ch_3"]
    assert len(seen) == 2
    first = seen[0]
    assert first.url.path == "/v1/charges"
    assert first.headers["Authorization"] == "Bearer sk_test_123"
    assert first.url.params["limit"] == "100"
    assert first.url.params.get_list("expand[]") == ["data.balance_transaction"]
    assert first.url.params["created[gte]"] == str(int(created_gte.timestamp()))
    assert "starting_after" not in first.url.params
    assert seen[1].url.params["starting_after"] == "ch_2"


async def test_iter_charges_without_lower_bound_omits_created_filter():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [], "has_more": False})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        charges = await _collect(StripeChargeLister(client, "sk_test_123", API_BASE))

    assert charges == []
    assert "created[gte]" not in seen[0].url.params


async def test_iter_charges_stops_on_empty_page_even_if_has_more():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"data": [], "has_more": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        charges = await _collect(StripeChargeLister(client, "sk_test_123", API_BASE))

    assert charges == []
    assert len(calls) == 1


async def test_iter_charges_raises_on_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Invalid API Key provided"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(PaymentApiError) as info:
            await _collect(StripeChargeLister(client, "sk_bad", API_BASE))

    assert info.value.status == 401
    assert "Invalid API Key" in info.value.body


async def test_transport_errors_are_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"data": [_charge("ch_1")], "has_more": False})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        lister = StripeChargeLister(client, "sk_test_123", API_BASE, retry_attempts=3, retry_backoff=0.0)
        charges = await _collect(lister)

    assert [c.id for c in charges] == ["ch_1"]
    assert len(attempts) == 3


async def test_exhausted_retries_raise_payment_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        lister = StripeChargeLister(client, "sk_test_123", API_BASE, retry_attempts=2, retry_backoff=0.0)
        with pytest.raises(PaymentApiError) as info:
            await _collect(lister)

    assert info.value.status == 0
    assert "after 2 attempts" in str(info.value)


async def test_max_pages_caps_listing():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        n = len(calls)
        calls.append(request)
        return httpx.Response(200, json={"data": [_charge(f"ch_{n}")], "has_more": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        lister = StripeChargeLister(client, "sk_test_123", API_BASE, max_pages=2)
        charges = await _collect(lister)

    assert [c.id for c in charges] == ["ch_0", "ch_1"]
    assert len(calls) == 2


async def test_iter_charges_rejects_non_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="maintenance")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(PaymentApiError, match="invalid JSON"):
            await _collect(StripeChargeLister(client, "sk_test_123", API_BASE))
