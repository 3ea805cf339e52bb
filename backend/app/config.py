"""
Application settings.

All configuration is read from environment variables (a .env file in the
working directory is loaded first). Settings are built once and cached;
tests that change the environment call ``get_settings.cache_clear()``.

Environment variables
---------------------
SUPABASE_URL                 Supabase project URL.
SUPABASE_SERVICE_KEY         Service-role key (bypasses RLS).
EMAIL_BUCKET                 Storage bucket holding raw inbound emails.
TRACKING_TABLE               Tracking ledger table.
TENANTS_TABLE                Tenant directory table.
TENANT_SECRETS_TABLE         Table holding per-tenant Graph client secrets.
RESEND_API_KEY               API key used to send reviewer notifications.
API_KEY                      Shared key for the tenant and trigger routes.
ENVIRONMENT                  "development" (default) or "production".
RETRY_MAX_ATTEMPTS           Attempts per remote call (default 3).
RETRY_BASE_DELAY_SECONDS     Backoff base delay (default 0.5).
RETRY_MAX_DELAY_SECONDS      Backoff ceiling (default 15).
UPLOAD_CONCURRENCY           Parallel uploads per submission (default 3).
EMAIL_CONCURRENCY            Parallel messages per queue batch (default 5).
SECRETS_CACHE_TTL_SECONDS    Client-secret cache lifetime (default 300).
GRAPH_TIMEOUT_SECONDS        HTTP timeout for Graph calls (default 30).
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    email_bucket: str = "inbound-emails"
    tracking_table: str = "tracking_records"
    tenants_table: str = "tenants"
    tenant_secrets_table: str = "tenant_secrets"

    resend_api_key: Optional[str] = None
    api_key: Optional[str] = None
    environment: str = "development"

    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 15.0
    upload_concurrency: int = 3
    email_concurrency: int = 5
    secrets_cache_ttl_seconds: float = 300.0
    graph_timeout_seconds: float = 30.0

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def _optional(key: str) -> Optional[str]:
    value = os.getenv(key, "").strip()
    return value or None


def _int(key: str, fallback: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return fallback
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}")


def _float(key: str, fallback: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return fallback
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {key} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """Build a Settings object from the current environment."""
    return Settings(
        supabase_url=_optional("SUPABASE_URL"),
        supabase_service_key=_optional("SUPABASE_SERVICE_KEY"),
        email_bucket=os.getenv("EMAIL_BUCKET") or "inbound-emails",
        tracking_table=os.getenv("TRACKING_TABLE") or "tracking_records",
        tenants_table=os.getenv("TENANTS_TABLE") or "tenants",
        tenant_secrets_table=os.getenv("TENANT_SECRETS_TABLE") or "tenant_secrets",
        resend_api_key=_optional("RESEND_API_KEY"),
        api_key=_optional("API_KEY"),
        environment=os.getenv("ENVIRONMENT") or "development",
        retry_max_attempts=_int("RETRY_MAX_ATTEMPTS", 3),
        retry_base_delay_seconds=_float("RETRY_BASE_DELAY_SECONDS", 0.5),
        retry_max_delay_seconds=_float("RETRY_MAX_DELAY_SECONDS", 15.0),
        upload_concurrency=_int("UPLOAD_CONCURRENCY", 3),
        email_concurrency=_int("EMAIL_CONCURRENCY", 5),
        secrets_cache_ttl_seconds=_float("SECRETS_CACHE_TTL_SECONDS", 300.0),
        graph_timeout_seconds=_float("GRAPH_TIMEOUT_SECONDS", 30.0),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
