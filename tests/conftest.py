"""Shared fixtures: throwaway RSA keys, explicit settings and fake collaborators."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from stoutly_dash.errors import ProfileLookupError
from stoutly_dash.models import Charge, UserProfile
from stoutly_dash.settings import AppSettings

TOKEN_URL = "https://oauth2.googleapis.com/token"


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture()
def service_account_json(rsa_private_pem) -> str:
    return json.dumps(
        {
            "type": "service_account",
            "client_email": "dash@stoutly-analytics.iam.gserviceaccount.com",
            "private_key": rsa_private_pem,
        }
    )


@pytest.fixture()
def settings(service_account_json) -> AppSettings:
    return AppSettings(
        _env_file=None,
        ga4_property_id="123456",
        google_service_account_key=service_account_json,
        stripe_secret_key="sk_test_123",
        stripe_retry_backoff=0.0,
        supabase_url="https://stoutly.supabase.co",
        supabase_service_role_key="service-role",
        use_mock_data=False,
    )


def make_charge(
    charge_id: str,
    amount_minor: int,
    fee_minor: int = 0,
    user_id: Optional[str] = None,
    succeeded: bool = True,
    created_at: Optional[datetime] = None,
) -> Charge:
    return Charge(
        id=charge_id,
        amount_minor=amount_minor,
        fee_minor=fee_minor,
        succeeded=succeeded,
        created_at=created_at or datetime(2025, 3, 17, 12, 0, tzinfo=timezone.utc),
        user_id=user_id,
    )


class FakeChargeSource:
    def __init__(self, charges: Iterable[Charge]):
        self.charges = list(charges)
        self.created_gte: List[Optional[datetime]] = []

    async def iter_charges(self, created_gte=None):
        self.created_gte.append(created_gte)
        for charge in self.charges:
            yield charge


class FakeProfileSource:
    def __init__(self, profiles: Iterable[UserProfile] = (), fail: bool = False):
        self.profiles = {p.id: p for p in profiles}
        self.fail = fail
        self.calls: List[List[str]] = []

    async def fetch_profiles(self, user_ids) -> Dict[str, UserProfile]:
        ids = list(user_ids)
        self.calls.append(ids)
        if self.fail:
            raise ProfileLookupError(503, "upstream unavailable")
        return {uid: self.profiles[uid] for uid in ids if uid in self.profiles}
