"""
OneDrive operation tests.

The Graph client is replaced with an AsyncMock; no HTTP is performed.

Coverage:
  - find-or-create folder, including lookup errors falling through to create
  - employee folder path (root -> tenant root folder -> employee)
  - upload path encoding and partial-failure aggregation
  - sharing link creation
"""

from unittest.mock import AsyncMock

import pytest

from app.models.submission import DocumentAttachment
from app.models.tenant import GraphCredentials, Tenant
from app.services.graph_client import GraphAPIError
from app.services.onedrive import OneDriveService

_CREDS = GraphCredentials(tenant_id="az", client_id="cid", client_secret="s")


def _make_tenant(**overrides) -> Tenant:
    data = {
        "tenant_id": "tenant-1",
        "company_name": "Acme",
        "receiving_email": "onboarding@acme.example",
        "reviewer_email": "hr@acme.example",
        "reviewer_user_id": "reviewer@acme.example",
        "azure_tenant_id": "az",
        "azure_client_id": "cid",
        "client_secret_ref": "ref-1",
        "root_folder_name": "Onboarding Documents",
        "notify_from_address": "noreply@acme.example",
        "status": "active",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }
    data.update(overrides)
    return Tenant(**data)


def _attachment(name: str) -> DocumentAttachment:
    return DocumentAttachment(
        original_name=name,
        normalized_name=name,
        content=b"%PDF-1.4",
        content_type="application/pdf",
        size=8,
    )


def _folder(item_id: str, name: str, web_url: str = "") -> dict:
    return {"id": item_id, "name": name, "webUrl": web_url, "folder": {"childCount": 0}}


class TestEnsureFolder:
    """Find-or-create for a single folder."""

    @pytest.mark.asyncio
    async def test_existing_folder_is_reused(self):
        """An existing folder with the exact name is returned without creating one."""
        graph = AsyncMock()
        graph.call.return_value = {"value": [_folder("f-1", "Jane Roe")]}
        service = OneDriveService(graph)

        folder = await service.ensure_folder(_make_tenant(), "root", "Jane Roe", _CREDS)

        assert folder.id == "f-1"
        graph.call.assert_awaited_once()
        path = graph.call.await_args.args[0]
        assert path == "/users/reviewer%40acme.example/drive/items/root/children"
        assert graph.call.await_args.kwargs["params"] == {"$filter": "name eq 'Jane Roe'"}

    @pytest.mark.asyncio
    async def test_missing_folder_is_created_with_rename_on_conflict(self):
        graph = AsyncMock()
        graph.call.side_effect = [{"value": []}, _folder("f-new", "Jane Roe")]
        service = OneDriveService(graph)

        folder = await service.ensure_folder(_make_tenant(), "root", "Jane Roe", _CREDS)

        assert folder.id == "f-new"
        create_call = graph.call.await_args_list[1]
        assert create_call.kwargs["method"] == "POST"
        assert create_call.kwargs["json"] == {
            "name": "Jane Roe",
            "folder": {},
            "@microsoft.graph.conflictBehavior": "rename",
        }

    @pytest.mark.asyncio
    async def test_lookup_error_falls_through_to_create(self):
        """A failed lookup is treated as not found."""
        graph = AsyncMock()
        graph.call.side_effect = [GraphAPIError("boom", status_code=400), _folder("f-2", "X")]
        service = OneDriveService(graph)

        folder = await service.ensure_folder(_make_tenant(), "root", "X", _CREDS)

        assert folder.id == "f-2"
        assert graph.call.await_count == 2

    @pytest.mark.asyncio
    async def test_files_with_same_name_are_not_treated_as_folders(self):
        """Only folder items satisfy the lookup."""
        graph = AsyncMock()
        graph.call.side_effect = [
            {"value": [{"id": "file-1", "name": "Jane Roe", "file": {}}]},
            _folder("f-3", "Jane Roe"),
        ]
        service = OneDriveService(graph)

        folder = await service.ensure_folder(_make_tenant(), "root", "Jane Roe", _CREDS)

        assert folder.id == "f-3"

    @pytest.mark.asyncio
    async def test_quotes_in_names_are_escaped_for_odata(self):
        graph = AsyncMock()
        graph.call.return_value = {"value": [_folder("f-4", "Anne O'Neil")]}
        service = OneDriveService(graph)

        await service.ensure_folder(_make_tenant(), "root", "Anne O'Neil", _CREDS)

        assert graph.call.await_args.kwargs["params"] == {"$filter": "name eq 'Anne O''Neil'"}


class TestCreateEmployeeFolder:
    """Root folder then employee folder."""

    @pytest.mark.asyncio
    async def test_nests_employee_under_tenant_root_folder(self):
        graph = AsyncMock()
        graph.call.side_effect = [
            {"value": [_folder("root-f", "HR Intake")]},
            {"value": [_folder("emp-f", "Jane Roe", "https://onedrive/emp")]},
        ]
        service = OneDriveService(graph)
        tenant = _make_tenant(root_folder_name="HR Intake")

        folder = await service.create_employee_folder("Jane Roe", tenant, _CREDS)

        assert folder.id == "emp-f"
        assert folder.web_url == "https://onedrive/emp"
        first_path = graph.call.await_args_list[0].args[0]
        second_path = graph.call.await_args_list[1].args[0]
        assert first_path.endswith("/items/root/children")
        assert second_path.endswith("/items/root-f/children")


class TestUploads:
    """Batch uploads with partial success."""

    @pytest.mark.asyncio
    async def test_upload_path_is_url_encoded(self):
        graph = AsyncMock()
        graph.upload.return_value = {"id": "file-1", "name": "jane roe.pdf"}
        service = OneDriveService(graph)

        await service.upload_document("f-1", _attachment("jane roe.pdf"), _make_tenant(), _CREDS)

        path, content, creds = graph.upload.await_args.args
        assert path == "/users/reviewer%40acme.example/drive/items/f-1:/jane%20roe.pdf:/content"
        assert content == b"%PDF-1.4"
        assert creds is _CREDS

    @pytest.mark.asyncio
    async def test_partial_failures_are_aggregated(self):
        """Failed uploads are reported per file while the rest succeed."""
        async def fake_upload(path, content, credentials):
            if "bad" in path:
                raise GraphAPIError("Graph upload error (400): nope", status_code=400)
            return {"id": "ok", "name": "ok"}

        graph = AsyncMock()
        graph.upload.side_effect = fake_upload
        service = OneDriveService(graph, upload_concurrency=2)

        result = await service.upload_all_documents(
            "f-1",
            [_attachment("a.pdf"), _attachment("bad.pdf"), _attachment("c.pdf")],
            _make_tenant(),
            _CREDS,
        )

        assert result.uploaded == ["a.pdf", "c.pdf"]
        assert len(result.failed) == 1
        assert result.failed[0].name == "bad.pdf"
        assert "nope" in result.failed[0].error

    @pytest.mark.asyncio
    async def test_all_failures_do_not_raise(self):
        graph = AsyncMock()
        graph.upload.side_effect = GraphAPIError("down", status_code=403)
        service = OneDriveService(graph)

        result = await service.upload_all_documents(
            "f-1", [_attachment("a.pdf"), _attachment("b.pdf")], _make_tenant(), _CREDS
        )

        assert result.uploaded == []
        assert [f.name for f in result.failed] == ["a.pdf", "b.pdf"]


class TestSharingLink:
    """Organization-scoped view links."""

    @pytest.mark.asyncio
    async def test_creates_organization_view_link(self):
        graph = AsyncMock()
        graph.call.return_value = {
            "id": "link-1",
            "link": {"type": "view", "scope": "organization", "webUrl": "https://share/abc"},
        }
        service = OneDriveService(graph)

        url = await service.create_sharing_link("f-1", _make_tenant(), _CREDS)

        assert url == "https://share/abc"
        assert graph.call.await_args.args[0].endswith("/items/f-1/createLink")
        assert graph.call.await_args.kwargs["json"] == {"type": "view", "scope": "organization"}
