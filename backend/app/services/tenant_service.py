"""
Tenant directory.

Resolves tenants by their receiving (routing) address, enforces the
active/inactive status, and manages the tenant lifecycle. The Graph client
secret is kept in the SecretStore; tenant rows only carry a reference.

Receiving addresses are stored and compared lower-cased and must be unique
across tenants.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from postgrest.exceptions import APIError

from app.db import execute
from app.models.tenant import GraphCredentials, Tenant, TenantCreate, TenantUpdate
from app.services.secrets import SecretStore
from app.utils.sanitize import is_valid_email

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION = "23505"

# (field, max length) for every free-text tenant field
_FIELD_LIMITS = {
    "company_name": 200,
    "receiving_email": 254,
    "reviewer_email": 254,
    "reviewer_user_id": 200,
    "azure_tenant_id": 100,
    "azure_client_id": 100,
    "azure_client_secret": 500,
    "root_folder_name": 500,
    "notify_from_address": 254,
}

_EMAIL_FIELDS = ("receiving_email", "reviewer_email", "notify_from_address")


class TenantNotFoundError(Exception):
    pass


class TenantInactiveError(Exception):
    pass


class TenantConflictError(Exception):
    pass


class TenantValidationError(ValueError):
    pass


def validate_tenant_fields(fields: dict) -> None:
    """
    Validate the provided tenant fields (absent/None fields are skipped).

    Raises:
        TenantValidationError: on an over-long value, an empty required value,
            or a malformed email address
    """
    for key, max_len in _FIELD_LIMITS.items():
        value = fields.get(key)
        if value is None:
            continue
        if not value.strip():
            raise TenantValidationError(f"{key} must not be empty")
        if len(value) > max_len:
            raise TenantValidationError(f"{key} exceeds maximum length of {max_len}")

    for key in _EMAIL_FIELDS:
        value = fields.get(key)
        if value is not None and not is_valid_email(value.strip()):
            raise TenantValidationError(f"{key} is not a valid email address")


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TenantDirectory:
    def __init__(self, client, secrets: SecretStore, table: str = "tenants") -> None:
        self._client = client
        self._secrets = secrets
        self._table = table

    # ------------------------------------------------------------------
    # Resolution (pipeline path)
    # ------------------------------------------------------------------

    async def resolve_by_receiving_email(self, email: str) -> Optional[Tenant]:
        if not email:
            return None
        result = await execute(
            self._client.table(self._table)
            .select("*")
            .eq("receiving_email", _normalize_email(email))
            .limit(1)
        )
        if not result.data:
            return None
        return Tenant(**result.data[0])

    @staticmethod
    def assert_active(tenant: Tenant) -> None:
        if tenant.status != "active":
            raise TenantInactiveError(
                f"Tenant {tenant.tenant_id} ({tenant.company_name}) is {tenant.status}"
            )

    async def resolve_credentials(self, tenant: Tenant) -> GraphCredentials:
        return await self._secrets.resolve_credentials(tenant)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        result = await execute(
            self._client.table(self._table).select("*").eq("tenant_id", tenant_id)
        )
        if not result.data:
            return None
        return Tenant(**result.data[0])

    async def list_tenants(self) -> list[Tenant]:
        result = await execute(self._client.table(self._table).select("*"))
        return [Tenant(**row) for row in result.data or []]

    async def create_tenant(self, payload: TenantCreate) -> Tenant:
        """
        Create an active tenant.

        Raises:
            TenantValidationError: invalid input
            TenantConflictError: receiving_email already belongs to a tenant
        """
        fields = payload.model_dump()
        validate_tenant_fields(fields)

        receiving_email = _normalize_email(payload.receiving_email)
        if await self.resolve_by_receiving_email(receiving_email):
            raise TenantConflictError(
                f'A tenant with receiving email "{receiving_email}" already exists'
            )

        tenant_id = str(uuid4())
        secret_ref = await self._secrets.store_secret(tenant_id, payload.azure_client_secret)

        now_iso = _now_iso()
        tenant = Tenant(
            tenant_id=tenant_id,
            company_name=payload.company_name.strip(),
            receiving_email=receiving_email,
            reviewer_email=payload.reviewer_email.strip(),
            reviewer_user_id=payload.reviewer_user_id.strip(),
            azure_tenant_id=payload.azure_tenant_id.strip(),
            azure_client_id=payload.azure_client_id.strip(),
            client_secret_ref=secret_ref,
            root_folder_name=payload.root_folder_name.strip(),
            notify_from_address=payload.notify_from_address.strip(),
            status="active",
            created_at=now_iso,
            updated_at=now_iso,
        )

        try:
            await execute(self._client.table(self._table).insert(tenant.model_dump()))
        except Exception as e:
            await self._secrets.delete_secret(secret_ref)
            if isinstance(e, APIError) and e.code == _UNIQUE_VIOLATION:
                raise TenantConflictError(
                    f'A tenant with receiving email "{receiving_email}" already exists'
                )
            raise

        logger.info(f"Created tenant {tenant_id} for {receiving_email}")
        return tenant

    async def update_tenant(self, tenant_id: str, updates: TenantUpdate) -> Optional[Tenant]:
        """
        Apply a partial update. Returns None when the tenant does not exist.

        A changed receiving_email is re-checked for uniqueness; a new
        azure_client_secret rotates the stored secret in place.
        """
        existing = await self.get_tenant(tenant_id)
        if not existing:
            return None

        changes = updates.model_dump(exclude_none=True)
        validate_tenant_fields(changes)

        new_secret = changes.pop("azure_client_secret", None)

        if "receiving_email" in changes:
            changes["receiving_email"] = _normalize_email(changes["receiving_email"])
            if changes["receiving_email"] != existing.receiving_email:
                conflict = await self.resolve_by_receiving_email(changes["receiving_email"])
                if conflict and conflict.tenant_id != tenant_id:
                    raise TenantConflictError(
                        f'A tenant with receiving email "{changes["receiving_email"]}" already exists'
                    )

        if new_secret is not None:
            await self._secrets.update_secret(existing.client_secret_ref, new_secret)

        updated = existing.model_copy(update={**changes, "updated_at": _now_iso()})

        row = updated.model_dump(exclude={"tenant_id", "created_at", "client_secret_ref"})
        await execute(
            self._client.table(self._table).update(row).eq("tenant_id", tenant_id)
        )
        return updated

    async def delete_tenant(self, tenant_id: str) -> bool:
        """Delete the tenant and its stored client secret. False when absent."""
        existing = await self.get_tenant(tenant_id)
        if not existing:
            return False

        await execute(self._client.table(self._table).delete().eq("tenant_id", tenant_id))
        try:
            await self._secrets.delete_secret(existing.client_secret_ref)
        except Exception as e:
            logger.error(f"Tenant {tenant_id} deleted but its secret could not be removed: {e}")
        return True
