# src/stoutly_dash/settings.py
from __future__ import annotations

import json
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stoutly_dash.errors import ConfigError


class AppSettings(BaseSettings):
    # Application
    app_name: str = Field(default="stoutly-dash-api")
    app_version: str = Field(default="0.1.0")
    log_level: str = Field(default="INFO")

    # CORS
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=False)

    # Google Analytics 4
    ga4_property_id: Optional[str] = Field(default=None)
    google_service_account_key: Optional[str] = Field(default=None)
    google_token_url: str = Field(default="https://oauth2.googleapis.com/token")
    google_analytics_scope: str = Field(
        default="https://www.googleapis.com/auth/analytics.readonly"
    )
    ga4_api_base: str = Field(default="https://analyticsdata.googleapis.com/v1beta")

    # Stripe
    stripe_secret_key: Optional[str] = Field(default=None)
    stripe_api_base: str = Field(default="https://api.stripe.com/v1")
    # None keeps paging until Stripe reports no more results
    stripe_max_pages: Optional[int] = Field(default=None)
    stripe_retry_attempts: int = Field(default=3)
    stripe_retry_backoff: float = Field(default=0.5)

    # Supabase
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)
    supabase_profiles_table: str = Field(default="profiles")

    # Outbound HTTP
    http_timeout: float = Field(default=10.0)
    use_mock_data: bool = Field(default=False)

    # Celery
    celery_broker_url: Optional[str] = Field(default=None)
    celery_result_backend: Optional[str] = Field(default=None)
    celery_task_default_queue: str = Field(default="default")

    # Host / Port for serving the app
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        protected_namespaces=(),
        validate_default=True,
        extra="ignore",
    )

    @staticmethod
    def _parse_list(value: object) -> List[str]:
        """
        Accept JSON array, '*' literal, or comma-separated string.
        Always returns a list of stripped strings. Empty parts are discarded.
        """
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        if isinstance(value, str):
            s = value.strip()
            if s == "*":
                return ["*"]
            if s.startswith("[") and s.endswith("]"):
                try:
                    parsed = json.loads(s)
                    if not isinstance(parsed, list):
                        raise ValueError("Expected JSON array")
                    return [str(v).strip() for v in parsed if str(v).strip()]
                except json.JSONDecodeError as e:
                    raise ValueError(f"Invalid JSON array: {e}") from e
            return [part.strip() for part in s.split(",") if part.strip()]
        raise TypeError(f"Unsupported list value type: {type(value).__name__}")

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        mode="before",
    )
    @classmethod
    def _lists_from_env(cls, v: object) -> List[str]:
        return cls._parse_list(v)

    @field_validator("log_level", mode="after")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        x = (v or "INFO").upper()
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
        if x not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(valid)}")
        return x

    @field_validator("stripe_retry_attempts", mode="after")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("STRIPE_RETRY_ATTEMPTS must be at least 1")
        return v

    def require(self, *names: str) -> None:
        """Raise ConfigError listing every named setting that is unset."""
        missing = [name.upper() for name in names if not getattr(self, name)]
        if missing:
            raise ConfigError(
                "Missing required environment variables: " + ", ".join(missing)
            )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()
