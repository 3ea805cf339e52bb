"""
Per-tenant Graph client secret storage.

Secrets live in a service-role-only table (RLS denies every other role);
tenant rows hold only the secret's reference id. Reads go through a short
in-memory TTL cache to avoid a round trip per pipeline run.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from app.db import execute
from app.models.tenant import GraphCredentials, Tenant

logger = logging.getLogger(__name__)


class SecretNotFoundError(Exception):
    pass


class SecretStore:
    def __init__(
        self,
        client,
        table: str = "tenant_secrets",
        cache_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._table = table
        self._ttl = cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[str, float]] = {}

    async def store_secret(self, tenant_id: str, secret_value: str) -> str:
        """Persist a new secret and return its reference id."""
        secret_ref = str(uuid4())
        now_iso = datetime.now(timezone.utc).isoformat()
        await execute(
            self._client.table(self._table).insert(
                {
                    "id": secret_ref,
                    "tenant_id": tenant_id,
                    "secret_value": secret_value,
                    "created_at": now_iso,
                    "updated_at": now_iso,
                }
            )
        )
        return secret_ref

    async def get_secret(self, secret_ref: str) -> str:
        cached = self._cache.get(secret_ref)
        if cached and self._clock() < cached[1]:
            return cached[0]

        result = await execute(
            self._client.table(self._table).select("secret_value").eq("id", secret_ref)
        )
        if not result.data:
            raise SecretNotFoundError(f"Secret {secret_ref!r} not found")

        value = result.data[0]["secret_value"]
        self._cache[secret_ref] = (value, self._clock() + self._ttl)
        return value

    async def update_secret(self, secret_ref: str, secret_value: str) -> None:
        await execute(
            self._client.table(self._table)
            .update(
                {
                    "secret_value": secret_value,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            .eq("id", secret_ref)
        )
        self._cache.pop(secret_ref, None)

    async def delete_secret(self, secret_ref: str) -> None:
        await execute(self._client.table(self._table).delete().eq("id", secret_ref))
        self._cache.pop(secret_ref, None)

    async def resolve_credentials(self, tenant: Tenant) -> GraphCredentials:
        """Build the Graph credentials for a tenant, fetching its client secret."""
        client_secret = await self.get_secret(tenant.client_secret_ref)
        return GraphCredentials(
            tenant_id=tenant.azure_tenant_id,
            client_id=tenant.azure_client_id,
            client_secret=client_secret,
        )
