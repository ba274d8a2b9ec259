# src/stoutly_dash/clients/stripe.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from stoutly_dash.errors import PaymentApiError
from stoutly_dash.models import Charge

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class StripeChargeLister:
    """
    Pages through ``GET /v1/charges`` with each charge's balance transaction
    expanded so the processing fee is available.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        secret_key: str,
        api_base: str = "https://api.stripe.com/v1",
        max_pages: Optional[int] = None,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        self.client = client
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.max_pages = max_pages
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff

    async def iter_charges(self, created_gte: Optional[datetime] = None) -> AsyncIterator[Charge]:
        cursor: Optional[str] = None
        pages = 0
        while True:
            items, has_more = await self._fetch_page(created_gte, cursor)
            pages += 1
            for item in items:
                yield Charge.from_stripe(item)
            if not has_more or not items:
                return
            if self.max_pages is not None and pages >= self.max_pages:
                logger.warning(
                    "Stopped listing Stripe charges after %d pages; later charges are not included",
                    pages,
                )
                return
            cursor = str(items[-1]["id"])

    async def _fetch_page(
        self, created_gte: Optional[datetime], cursor: Optional[str]
    ) -> Tuple[List[Dict[str, Any]], bool]:
        params: List[Tuple[str, Any]] = [
            ("limit", PAGE_SIZE),
            ("expand[]", "data.balance_transaction"),
        ]
        if created_gte is not None:
            params.append(("created[gte]", int(created_gte.timestamp())))
        if cursor:
            params.append(("starting_after", cursor))

        r = await self._get_with_retry(f"{self.api_base}/charges", params)
        if r.status_code // 100 != 2:
            logger.error("Stripe charge listing failed (%s): %s", r.status_code, r.text)
            raise PaymentApiError(r.status_code, r.text)
        try:
            payload = r.json()
        except ValueError as e:
            raise PaymentApiError(r.status_code, r.text, "Stripe returned invalid JSON") from e
        return list(payload.get("data") or []), bool(payload.get("has_more"))

    async def _get_with_retry(self, url: str, params: List[Tuple[str, Any]]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        attempt = 1
        while True:
            try:
                return await self.client.get(url, params=params, headers=headers)
            except httpx.TransportError as e:
                if attempt >= self.retry_attempts:
                    # status 0: no response was received
                    raise PaymentApiError(
                        0, str(e), f"Stripe request failed after {attempt} attempts: {e}"
                    ) from e
                delay = self.retry_backoff * attempt
                logger.warning(
                    "Stripe request failed (%s), attempt %d/%d; retrying in %.1fs",
                    e,
                    attempt,
                    self.retry_attempts,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
