# src/stoutly_dash/sources.py
"""
Per-request wiring of the upstream collaborators.

Nothing here is module-level state: a ``DashboardSources`` is built from an
explicit settings object and HTTP client at the start of each request, and
each collaborator is constructed (and its configuration checked) only when
first used.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

import httpx

from stoutly_dash.clients.ga4 import ReportRequest, ReportResult, run_batch_reports
from stoutly_dash.clients.google_auth import ServiceAccountKey, fetch_access_token
from stoutly_dash.clients.stripe import StripeChargeLister
from stoutly_dash.clients.supabase import SupabaseProfileLookup, SupabaseRestClient
from stoutly_dash.generators.mock_data import MockDataset
from stoutly_dash.models import Charge, UserProfile
from stoutly_dash.settings import AppSettings

logger = logging.getLogger(__name__)


class ReportSource(Protocol):
    async def run_reports(self, requests: Sequence[ReportRequest]) -> List[ReportResult]: ...


class ChargeSource(Protocol):
    def iter_charges(self, created_gte: Optional[datetime] = None) -> AsyncIterator[Charge]: ...


class ProfileSource(Protocol):
    async def fetch_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]: ...


class RpcSource(Protocol):
    async def rpc(self, function: str, params: Optional[Mapping[str, Any]] = None) -> Any: ...


class Ga4ReportSource:
    """Authenticates with the service account, then runs one batch report."""

    def __init__(self, client: httpx.AsyncClient, settings: AppSettings):
        self.client = client
        self.settings = settings
        self.account = ServiceAccountKey.from_json(settings.google_service_account_key or "")

    async def run_reports(self, requests: Sequence[ReportRequest]) -> List[ReportResult]:
        token = await fetch_access_token(
            self.client,
            self.account,
            scope=self.settings.google_analytics_scope,
            token_url=self.settings.google_token_url,
        )
        logger.debug("GA4 access token obtained")
        return await run_batch_reports(
            self.client,
            self.settings.ga4_api_base,
            self.settings.ga4_property_id or "",
            token,
            requests,
        )


class DashboardSources:
    def __init__(self, settings: AppSettings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client
        self._mock: Optional[MockDataset] = None
        self._rest: Optional[SupabaseRestClient] = None

    @property
    def mock(self) -> MockDataset:
        if self._mock is None:
            self._mock = MockDataset()
        return self._mock

    @property
    def reports(self) -> ReportSource:
        if self.settings.use_mock_data:
            return self.mock
        self.settings.require("ga4_property_id", "google_service_account_key")
        return Ga4ReportSource(self.client, self.settings)

    @property
    def charges(self) -> ChargeSource:
        if self.settings.use_mock_data:
            return self.mock
        self.settings.require("stripe_secret_key")
        return StripeChargeLister(
            self.client,
            self.settings.stripe_secret_key or "",
            api_base=self.settings.stripe_api_base,
            max_pages=self.settings.stripe_max_pages,
            retry_attempts=self.settings.stripe_retry_attempts,
            retry_backoff=self.settings.stripe_retry_backoff,
        )

    @property
    def profiles(self) -> ProfileSource:
        if self.settings.use_mock_data:
            return self.mock
        return SupabaseProfileLookup(self._supabase(), self.settings.supabase_profiles_table)

    @property
    def rpc(self) -> RpcSource:
        if self.settings.use_mock_data:
            return self.mock
        return self._supabase()

    def _supabase(self) -> SupabaseRestClient:
        if self._rest is None:
            self.settings.require("supabase_url", "supabase_service_role_key")
            self._rest = SupabaseRestClient(
                self.settings.supabase_url or "",
                self.settings.supabase_service_role_key or "",
                timeout=self.settings.http_timeout,
            )
        return self._rest
