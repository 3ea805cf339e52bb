"""
OneDrive operations for a tenant's reviewer drive.

Folder layout: /{tenant.root_folder_name}/{employee name}/{normalized file}.pdf
Folders are find-or-create, so repeated runs for the same employee reuse
the existing folder. Uploads fan out with bounded concurrency and report
partial success instead of raising.
"""

import logging
from typing import Optional
from urllib.parse import quote

from pydantic import BaseModel

from app.models.graph import DriveItem, SharingLink
from app.models.submission import DocumentAttachment
from app.models.tenant import GraphCredentials, Tenant
from app.models.tracking import FailedUpload
from app.services.graph_client import GraphClient
from app.utils.resilience import Fulfilled, map_with_concurrency

logger = logging.getLogger(__name__)


class UploadResult(BaseModel):
    uploaded: list[str] = []
    failed: list[FailedUpload] = []


def _drive_path(tenant: Tenant) -> str:
    return f"/users/{quote(tenant.reviewer_user_id, safe='')}/drive"


def _odata_literal(value: str) -> str:
    # OData string literals escape a single quote by doubling it.
    return "'" + value.replace("'", "''") + "'"


class OneDriveService:
    def __init__(self, graph: GraphClient, upload_concurrency: int = 3) -> None:
        self._graph = graph
        self._upload_concurrency = upload_concurrency

    async def find_child_folder(
        self,
        tenant: Tenant,
        parent_id: str,
        name: str,
        credentials: GraphCredentials,
    ) -> Optional[DriveItem]:
        """
        Look up a child folder by exact name.

        Lookup errors are logged and reported as "not found"; creation with
        rename-on-conflict is safe to attempt instead.
        """
        try:
            response = await self._graph.call(
                f"{_drive_path(tenant)}/items/{parent_id}/children",
                credentials,
                params={"$filter": f"name eq {_odata_literal(name)}"},
            )
        except Exception as e:
            logger.warning(f"Folder lookup for {name!r} under {parent_id!r} failed: {e}")
            return None

        for raw in (response or {}).get("value", []):
            item = DriveItem.model_validate(raw)
            if item.is_folder and item.name == name:
                return item
        return None

    async def ensure_folder(
        self,
        tenant: Tenant,
        parent_id: str,
        name: str,
        credentials: GraphCredentials,
    ) -> DriveItem:
        existing = await self.find_child_folder(tenant, parent_id, name, credentials)
        if existing:
            return existing

        created = await self._graph.call(
            f"{_drive_path(tenant)}/items/{parent_id}/children",
            credentials,
            method="POST",
            json={
                "name": name,
                "folder": {},
                "@microsoft.graph.conflictBehavior": "rename",
            },
        )
        logger.info(f"Created folder {name!r} under {parent_id!r}")
        return DriveItem.model_validate(created)

    async def create_employee_folder(
        self,
        employee_name: str,
        tenant: Tenant,
        credentials: GraphCredentials,
    ) -> DriveItem:
        """Ensure ``root/{tenant root folder}/{employee_name}`` exists and return it."""
        root_folder = await self.ensure_folder(tenant, "root", tenant.root_folder_name, credentials)
        return await self.ensure_folder(tenant, root_folder.id, employee_name, credentials)

    async def upload_document(
        self,
        folder_id: str,
        attachment: DocumentAttachment,
        tenant: Tenant,
        credentials: GraphCredentials,
    ) -> DriveItem:
        """
        Simple (single PUT) upload. Graph caps this at 4 MB; onboarding PDFs
        are expected to stay below that.
        """
        filename = quote(attachment.normalized_name, safe="")
        result = await self._graph.upload(
            f"{_drive_path(tenant)}/items/{folder_id}:/{filename}:/content",
            attachment.content,
            credentials,
        )
        return DriveItem.model_validate(result)

    async def upload_all_documents(
        self,
        folder_id: str,
        attachments: list[DocumentAttachment],
        tenant: Tenant,
        credentials: GraphCredentials,
    ) -> UploadResult:
        """Upload every attachment; never raises for an individual failure."""

        async def upload_one(attachment: DocumentAttachment, _index: int) -> str:
            await self.upload_document(folder_id, attachment, tenant, credentials)
            return attachment.normalized_name

        settled = await map_with_concurrency(attachments, self._upload_concurrency, upload_one)

        result = UploadResult()
        for attachment, outcome in zip(attachments, settled):
            if isinstance(outcome, Fulfilled):
                result.uploaded.append(outcome.value)
            else:
                logger.warning(f"Upload of {attachment.normalized_name!r} failed: {outcome.error}")
                result.failed.append(
                    FailedUpload(name=attachment.normalized_name, error=str(outcome.error))
                )
        return result

    async def create_sharing_link(
        self,
        folder_id: str,
        tenant: Tenant,
        credentials: GraphCredentials,
    ) -> str:
        """Create an organization-scoped, view-only link and return its URL."""
        response = await self._graph.call(
            f"{_drive_path(tenant)}/items/{folder_id}/createLink",
            credentials,
            method="POST",
            json={"type": "view", "scope": "organization"},
        )
        return SharingLink.model_validate(response).link.web_url
