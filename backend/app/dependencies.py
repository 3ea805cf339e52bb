"""
Wiring of the pipeline's collaborators.

FastAPI routes depend on ``get_processor`` / ``get_tenant_directory``;
tests replace them through ``app.dependency_overrides``.

The cached Graph client and email sender belong to the API process and are
closed on shutdown. httpx clients are bound to the event loop they first
ran on, so the queue handler (one ``asyncio.run`` per batch) opens its own
pair with ``new_graph_client`` / ``new_email_sender`` and passes them to
``build_processor``.
"""

from functools import lru_cache

from app.config import get_settings
from app.db import get_supabase_admin
from app.services.email_parser import EmailParser, SupabaseBlobStore
from app.services.graph_client import GraphClient
from app.services.notification import ResendEmailSender
from app.services.onedrive import OneDriveService
from app.services.processing import EmailProcessor
from app.services.secrets import SecretStore
from app.services.tenant_service import TenantDirectory
from app.services.tracking import TrackingLedger
from app.utils.resilience import RetryOptions


def get_retry_options() -> RetryOptions:
    settings = get_settings()
    return RetryOptions(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
    )


@lru_cache
def get_secret_store() -> SecretStore:
    settings = get_settings()
    return SecretStore(
        get_supabase_admin(),
        table=settings.tenant_secrets_table,
        cache_ttl_seconds=settings.secrets_cache_ttl_seconds,
    )


@lru_cache
def get_tenant_directory() -> TenantDirectory:
    settings = get_settings()
    return TenantDirectory(
        get_supabase_admin(),
        get_secret_store(),
        table=settings.tenants_table,
    )


def new_graph_client() -> GraphClient:
    settings = get_settings()
    return GraphClient(
        retry_options=get_retry_options(),
        timeout=settings.graph_timeout_seconds,
    )


def new_email_sender() -> ResendEmailSender:
    return ResendEmailSender(get_settings().resend_api_key, retry_options=get_retry_options())


@lru_cache
def get_graph_client() -> GraphClient:
    return new_graph_client()


@lru_cache
def get_email_sender() -> ResendEmailSender:
    return new_email_sender()


def build_processor(graph: GraphClient, email_sender: ResendEmailSender) -> EmailProcessor:
    """Assemble an EmailProcessor around the given HTTP-backed collaborators."""
    settings = get_settings()
    admin = get_supabase_admin()
    retry = get_retry_options()
    return EmailProcessor(
        parser=EmailParser(SupabaseBlobStore(admin, retry_options=retry)),
        tenants=get_tenant_directory(),
        ledger=TrackingLedger(admin, table=settings.tracking_table, retry_options=retry),
        drive=OneDriveService(graph, upload_concurrency=settings.upload_concurrency),
        email_sender=email_sender,
        default_bucket=settings.email_bucket,
    )


@lru_cache
def get_processor() -> EmailProcessor:
    return build_processor(get_graph_client(), get_email_sender())
