"""
Pydantic models for the tenant directory.

Models:
  GraphCredentials  - resolved Microsoft Graph app credentials for one tenant
  Tenant            - tenant row as stored (secret held by reference only)
  TenantCreate      - request body for POST /api/tenants
  TenantUpdate      - request body for PUT /api/tenants/{id}
  TenantResponse    - API response (client secret masked)
"""

from typing import Literal, Optional
from pydantic import BaseModel

TenantStatus = Literal["active", "inactive"]

MASKED_SECRET = "********"


class GraphCredentials(BaseModel):
    """Client-credentials grant material for one Azure AD app registration."""

    tenant_id: str
    client_id: str
    client_secret: str

    @property
    def cache_key(self) -> str:
        return f"{self.tenant_id}:{self.client_id}"


class Tenant(BaseModel):
    """Full tenant record from the database."""
    model_config = {"from_attributes": True, "extra": "ignore"}

    tenant_id: str
    company_name: str
    receiving_email: str
    reviewer_email: str
    reviewer_user_id: str
    azure_tenant_id: str
    azure_client_id: str
    # Reference into the secret store; the secret itself never lives on this row.
    client_secret_ref: str
    root_folder_name: str = "Onboarding Documents"
    notify_from_address: str
    status: TenantStatus = "active"
    created_at: str
    updated_at: str


class TenantCreate(BaseModel):
    company_name: str
    receiving_email: str
    reviewer_email: str
    reviewer_user_id: str
    azure_tenant_id: str
    azure_client_id: str
    azure_client_secret: str
    root_folder_name: str = "Onboarding Documents"
    notify_from_address: str


class TenantUpdate(BaseModel):
    """All fields optional; only the ones provided are changed."""
    model_config = {"extra": "forbid"}

    company_name: Optional[str] = None
    receiving_email: Optional[str] = None
    reviewer_email: Optional[str] = None
    reviewer_user_id: Optional[str] = None
    azure_tenant_id: Optional[str] = None
    azure_client_id: Optional[str] = None
    azure_client_secret: Optional[str] = None
    root_folder_name: Optional[str] = None
    notify_from_address: Optional[str] = None
    status: Optional[TenantStatus] = None


class TenantResponse(BaseModel):
    tenant_id: str
    company_name: str
    receiving_email: str
    reviewer_email: str
    reviewer_user_id: str
    azure_tenant_id: str
    azure_client_id: str
    azure_client_secret: str = MASKED_SECRET
    root_folder_name: str
    notify_from_address: str
    status: TenantStatus
    created_at: str
    updated_at: str

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "TenantResponse":
        data = tenant.model_dump(exclude={"client_secret_ref"})
        return cls(**data)
