"""Exception taxonomy shared by the dashboard functions.

Every error here is terminal for the request that raised it; the API layer
turns them into a single ``{"error": ...}`` payload.
"""

from __future__ import annotations

from typing import Optional


class DashboardError(Exception):
    """Base class for failures surfaced to dashboard callers."""

    http_status: int = 500


class ConfigError(DashboardError):
    """Missing or invalid credentials or environment."""


class CredentialError(DashboardError):
    """Key material could not be parsed."""


class InvalidTimePeriodError(DashboardError):
    http_status = 400

    def __init__(self, time_period: object, allowed: tuple) -> None:
        self.time_period = time_period
        self.allowed = allowed
        super().__init__(
            f"Unsupported time_period {time_period!r}; expected one of {', '.join(allowed)}"
        )


class UpstreamApiError(DashboardError):
    """A third-party API answered with a non-2xx status."""

    http_status = 502
    service = "upstream"

    def __init__(self, status: int, body: str = "", message: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"{self.service} request failed with status {status}")


class AuthExchangeError(UpstreamApiError):
    service = "Google token exchange"


class ReportingApiError(UpstreamApiError):
    service = "GA4 reporting"


class PaymentApiError(UpstreamApiError):
    service = "Stripe"


class SupabaseApiError(UpstreamApiError):
    service = "Supabase"


class ProfileLookupError(SupabaseApiError):
    service = "Profile lookup"
