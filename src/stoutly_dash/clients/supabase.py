from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from stoutly_dash.errors import ProfileLookupError, SupabaseApiError
from stoutly_dash.models import UserProfile

logger = logging.getLogger(__name__)


class SupabaseRestClient:
    """
    Table reads and RPC calls through supabase-py, authenticated with the
    service-role key. The underlying client is created on first use.
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 10.0,
        client: Optional[AsyncClient] = None,
    ):
        self.url = url
        self.service_key = service_key
        self.timeout = timeout
        self._client = client

    async def _connect(self) -> AsyncClient:
        if self._client is None:
            self._client = await acreate_client(
                self.url,
                self.service_key,
                options=AsyncClientOptions(postgrest_client_timeout=self.timeout),
            )
        return self._client

    async def select_in(
        self,
        table: str,
        columns: str,
        column: str,
        values: Iterable[str],
    ) -> List[Dict[str, Any]]:
        client = await self._connect()
        query = client.table(table).select(columns).in_(column, list(values))
        return await self._execute(query, f"select on {table}") or []

    async def rpc(self, function: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        client = await self._connect()
        return await self._execute(client.rpc(function, dict(params or {})), f"rpc {function}")

    async def _execute(self, query, action: str) -> Any:
        try:
            response = await query.execute()
        except APIError as e:
            logger.error("Supabase %s failed (%s): %s", action, e.code, e.message)
            raise SupabaseApiError(0, str(e.json()), f"Supabase {action} failed: {e.message}") from e
        except (httpx.HTTPError, ValueError) as e:
            # status 0: no usable response was received
            logger.error("Supabase %s failed: %s", action, e)
            raise SupabaseApiError(0, str(e), f"Supabase {action} failed: {e}") from e
        return response.data


class SupabaseProfileLookup:
    def __init__(self, rest: SupabaseRestClient, table: str = "profiles"):
        self.rest = rest
        self.table = table

    async def fetch_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        """One batched read of display fields for ``user_ids``; absent ids are simply missing."""
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        try:
            rows = await self.rest.select_in(self.table, "id,username,avatar_id", "id", ids)
        except SupabaseApiError as e:
            raise ProfileLookupError(e.status, e.body, f"Profile lookup failed: {e}") from e
        profiles: Dict[str, UserProfile] = {}
        for row in rows:
            profile = UserProfile(
                id=str(row["id"]),
                display_name=row.get("username") or "",
                avatar_ref=row.get("avatar_id") or "",
            )
            profiles[profile.id] = profile
        logger.debug("Fetched %d of %d requested profiles", len(profiles), len(ids))
        return profiles
