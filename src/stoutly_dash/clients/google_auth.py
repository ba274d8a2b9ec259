# src/stoutly_dash/clients/google_auth.py
"""Service-account JWT assertion exchanged for a short-lived Google access token."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from stoutly_dash.errors import AuthExchangeError, ConfigError, CredentialError

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


@dataclass(frozen=True)
class ServiceAccountKey:
    client_email: str
    private_key: str

    @classmethod
    def from_json(cls, raw: str) -> "ServiceAccountKey":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError("GOOGLE_SERVICE_ACCOUNT_KEY is not valid JSON") from e
        if not isinstance(data, dict):
            raise ConfigError("GOOGLE_SERVICE_ACCOUNT_KEY must be a JSON object")
        email = data.get("client_email")
        key = data.get("private_key")
        if not email or not key:
            raise ConfigError(
                "GOOGLE_SERVICE_ACCOUNT_KEY must contain client_email and private_key"
            )
        # keys pasted into env vars often carry literal "\n" sequences
        return cls(client_email=email, private_key=key.replace("\\n", "\n"))


def load_private_key(pem: str) -> RSAPrivateKey:
    try:
        key = load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialError(f"Service account private key could not be parsed: {e}") from e
    if not isinstance(key, RSAPrivateKey):
        raise CredentialError("Service account private key is not an RSA key")
    return key


def build_assertion(
    account: ServiceAccountKey,
    scope: str,
    audience: str,
    now: Optional[int] = None,
) -> str:
    """Sign the RS256 assertion Google expects for the jwt-bearer grant."""
    issued_at = int(time.time()) if now is None else int(now)
    claims: Dict[str, Any] = {
        "scope": scope,
        "iat": issued_at,
        "iss": account.client_email,
        "aud": audience,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
    }
    key = load_private_key(account.private_key)
    return jwt.encode(claims, key, algorithm="RS256", headers={"typ": "JWT"})


async def fetch_access_token(
    client: httpx.AsyncClient,
    account: ServiceAccountKey,
    scope: str,
    token_url: str,
) -> str:
    """
    Exchange a freshly signed assertion for a bearer token.

    Tokens are not cached: every call performs one round trip to ``token_url``.
    """
    assertion = build_assertion(account, scope=scope, audience=token_url)
    try:
        r = await client.post(
            token_url,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )
    except httpx.HTTPError as e:
        logger.error("Token exchange failed: %s", e)
        raise AuthExchangeError(0, str(e), f"Google token exchange failed: {e}") from e
    if r.status_code // 100 != 2:
        logger.error("Token exchange failed (%s): %s", r.status_code, r.text)
        raise AuthExchangeError(r.status_code, r.text)
    try:
        token = r.json().get("access_token")
    except ValueError as e:
        raise AuthExchangeError(r.status_code, r.text, "Token endpoint returned invalid JSON") from e
    if not token:
        raise AuthExchangeError(r.status_code, r.text, "Token endpoint returned no access_token")
    return token
