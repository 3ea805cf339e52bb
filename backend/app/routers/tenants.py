"""
Tenant management router.

Endpoints (all require X-API-Key):
  POST   /api/tenants         - create a tenant (201)
  GET    /api/tenants         - list tenants
  GET    /api/tenants/{id}    - get one tenant
  PUT    /api/tenants/{id}    - partial update
  DELETE /api/tenants/{id}    - delete tenant and its stored secret (204)

Client secrets are never returned; responses carry "********" instead.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from app.auth import require_api_key
from app.dependencies import get_tenant_directory
from app.models.tenant import TenantCreate, TenantResponse, TenantUpdate
from app.services.tenant_service import (
    TenantConflictError,
    TenantDirectory,
    TenantValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("", status_code=201, response_model=TenantResponse)
async def create_tenant(
    body: TenantCreate,
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> TenantResponse:
    try:
        tenant = await directory.create_tenant(body)
    except TenantValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TenantConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return TenantResponse.from_tenant(tenant)


@router.get("", response_model=list[TenantResponse])
async def list_tenants(
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> list[TenantResponse]:
    tenants = await directory.list_tenants()
    return [TenantResponse.from_tenant(t) for t in tenants]


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: str,
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> TenantResponse:
    tenant = await directory.get_tenant(tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return TenantResponse.from_tenant(tenant)


@router.put("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> TenantResponse:
    try:
        updated = await directory.update_tenant(tenant_id, body)
    except TenantValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TenantConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return TenantResponse.from_tenant(updated)


@router.delete("/{tenant_id}", status_code=204)
async def delete_tenant(
    tenant_id: str,
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> Response:
    deleted = await directory.delete_tenant(tenant_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Tenant not found")
    logger.info(f"Deleted tenant {tenant_id}")
    return Response(status_code=204)
