"""
HTTP surface tests: manual trigger, tenant management, health checks.

Dependencies are replaced through app.dependency_overrides; the API key is
set per test through the environment.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.config import get_settings
from app.dependencies import get_processor, get_tenant_directory
from app.main import app
from app.models.tenant import MASKED_SECRET, Tenant
from app.models.tracking import ProcessingRunResult
from app.services.tenant_service import TenantConflictError, TenantValidationError

API_KEY = "test-api-key"
AUTH = {"X-API-Key": API_KEY}


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("API_KEY", API_KEY)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def _tenant(**overrides) -> Tenant:
    data = {
        "tenant_id": "tenant-1",
        "company_name": "Acme",
        "receiving_email": "onboarding@acme.example",
        "reviewer_email": "hr@acme.example",
        "reviewer_user_id": "reviewer@acme.example",
        "azure_tenant_id": "az",
        "azure_client_id": "cid",
        "client_secret_ref": "ref-1",
        "notify_from_address": "noreply@acme.example",
        "status": "active",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }
    data.update(overrides)
    return Tenant(**data)


_CREATE_BODY = {
    "company_name": "Acme",
    "receiving_email": "onboarding@acme.example",
    "reviewer_email": "hr@acme.example",
    "reviewer_user_id": "reviewer@acme.example",
    "azure_tenant_id": "az",
    "azure_client_id": "cid",
    "azure_client_secret": "super-secret",
    "notify_from_address": "noreply@acme.example",
}


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------

class TestApiKey:
    """X-API-Key enforcement."""

    def test_missing_key_rejected(self, client):
        app.dependency_overrides[get_processor] = lambda: AsyncMock()
        response = client.post("/api/trigger", json={"key": "k"})
        assert response.status_code == 401

    def test_wrong_key_rejected(self, client):
        app.dependency_overrides[get_tenant_directory] = lambda: AsyncMock()
        response = client.get("/api/tenants", headers={"X-API-Key": "wrong"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or missing API key"

    def test_unconfigured_key_open_in_development(self, client, monkeypatch):
        monkeypatch.delenv("API_KEY")
        get_settings.cache_clear()
        directory = AsyncMock()
        directory.list_tenants.return_value = []
        app.dependency_overrides[get_tenant_directory] = lambda: directory

        assert client.get("/api/tenants").status_code == 200

    def test_unconfigured_key_refused_in_production(self, client, monkeypatch):
        monkeypatch.delenv("API_KEY")
        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()
        app.dependency_overrides[get_tenant_directory] = lambda: AsyncMock()

        assert client.get("/api/tenants").status_code == 500


# ---------------------------------------------------------------------------
# Trigger
# ---------------------------------------------------------------------------

class TestTrigger:
    """POST /api/trigger."""

    def test_successful_run(self, client):
        processor = AsyncMock()
        processor.process_email.return_value = ProcessingRunResult(
            success=True,
            message_id="<m@x>",
            tenant_id="tenant-1",
            folder_url="https://share/abc",
            documents_uploaded=["jane_roe_passport.pdf"],
            documents_failed=[],
        )
        app.dependency_overrides[get_processor] = lambda: processor

        response = client.post("/api/trigger", json={"key": "incoming/abc"}, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["folder_url"] == "https://share/abc"
        assert "failed_at_step" not in body
        processor.process_email.assert_awaited_once_with("incoming/abc")

    def test_failed_run_is_still_200(self, client):
        """Business failures are reported in the body, not the status code."""
        processor = AsyncMock()
        processor.process_email.return_value = ProcessingRunResult(
            success=False, message_id="k", error="No tenant", failed_at_step="tenant-resolution"
        )
        app.dependency_overrides[get_processor] = lambda: processor

        response = client.post("/api/trigger", json={"key": "k"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["failed_at_step"] == "tenant-resolution"
        processor.process_email.assert_awaited_once_with("k")

    def test_unexpected_exception_is_500(self, client):
        processor = AsyncMock()
        processor.process_email.side_effect = RuntimeError("kaboom")
        app.dependency_overrides[get_processor] = lambda: processor

        response = client.post("/api/trigger", json={"key": "k"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "kaboom"}

    def test_empty_key_is_422(self, client):
        app.dependency_overrides[get_processor] = lambda: AsyncMock()

        response = client.post("/api/trigger", json={"key": ""}, headers=AUTH)

        assert response.status_code == 422

    def test_bucket_cannot_be_chosen_by_caller(self, client):
        """Only the configured inbound bucket can be read through the trigger."""
        processor = AsyncMock()
        app.dependency_overrides[get_processor] = lambda: processor

        response = client.post(
            "/api/trigger", json={"key": "k", "bucket": "tenant-b-private"}, headers=AUTH
        )

        assert response.status_code == 422
        processor.process_email.assert_not_awaited()


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------

class TestTenantRoutes:
    """Tenant management endpoints."""

    def _override(self, directory):
        app.dependency_overrides[get_tenant_directory] = lambda: directory

    def test_create_returns_201_with_masked_secret(self, client):
        """The client secret never appears in a response."""
        directory = AsyncMock()
        directory.create_tenant.return_value = _tenant()
        self._override(directory)

        response = client.post("/api/tenants", json=_CREATE_BODY, headers=AUTH)

        assert response.status_code == 201
        body = response.json()
        assert body["azure_client_secret"] == MASKED_SECRET
        assert "client_secret_ref" not in body
        assert "super-secret" not in response.text

    def test_create_conflict_is_409(self, client):
        directory = AsyncMock()
        directory.create_tenant.side_effect = TenantConflictError("taken")
        self._override(directory)

        response = client.post("/api/tenants", json=_CREATE_BODY, headers=AUTH)

        assert response.status_code == 409

    def test_create_validation_error_is_400(self, client):
        directory = AsyncMock()
        directory.create_tenant.side_effect = TenantValidationError("receiving_email is not a valid email address")
        self._override(directory)

        response = client.post("/api/tenants", json=_CREATE_BODY, headers=AUTH)

        assert response.status_code == 400
        assert "receiving_email" in response.json()["detail"]

    def test_list(self, client):
        directory = AsyncMock()
        directory.list_tenants.return_value = [_tenant(), _tenant(tenant_id="tenant-2")]
        self._override(directory)

        response = client.get("/api/tenants", headers=AUTH)

        assert response.status_code == 200
        assert [t["tenant_id"] for t in response.json()] == ["tenant-1", "tenant-2"]

    def test_get_missing_is_404(self, client):
        directory = AsyncMock()
        directory.get_tenant.return_value = None
        self._override(directory)

        assert client.get("/api/tenants/nope", headers=AUTH).status_code == 404

    def test_update(self, client):
        directory = AsyncMock()
        directory.update_tenant.return_value = _tenant(status="inactive")
        self._override(directory)

        response = client.put("/api/tenants/tenant-1", json={"status": "inactive"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["status"] == "inactive"
        tenant_id, updates = directory.update_tenant.await_args.args
        assert tenant_id == "tenant-1"
        assert updates.status == "inactive"

    def test_update_rejects_unknown_fields(self, client):
        self._override(AsyncMock())

        response = client.put("/api/tenants/tenant-1", json={"tenant_id": "x"}, headers=AUTH)

        assert response.status_code == 422

    def test_update_missing_is_404(self, client):
        directory = AsyncMock()
        directory.update_tenant.return_value = None
        self._override(directory)

        response = client.put("/api/tenants/nope", json={"company_name": "X"}, headers=AUTH)

        assert response.status_code == 404

    def test_delete(self, client):
        directory = AsyncMock()
        directory.delete_tenant.return_value = True
        self._override(directory)

        response = client.delete("/api/tenants/tenant-1", headers=AUTH)

        assert response.status_code == 204

    def test_delete_missing_is_404(self, client):
        directory = AsyncMock()
        directory.delete_tenant.return_value = False
        self._override(directory)

        assert client.delete("/api/tenants/nope", headers=AUTH).status_code == 404


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:
    """Health endpoints."""

    def test_root_and_health(self, client):
        assert client.get("/").json()["message"] == "Onboarding Document Intake API"
        assert client.get("/health").json() == {"status": "ok"}

    def test_db_reachable(self, client):
        with patch("app.main.get_supabase_admin", return_value=MagicMock()):
            response = client.get("/health/db")

        assert response.status_code == 200
        assert response.json()["database"] == "reachable"

    def test_db_unreachable_is_503(self, client):
        admin = MagicMock()
        admin.table.return_value.select.return_value.limit.return_value.execute.side_effect = Exception("timeout")

        with patch("app.main.get_supabase_admin", return_value=admin):
            response = client.get("/health/db")

        assert response.status_code == 503

    def test_db_not_configured_is_503(self, client):
        with patch("app.main.get_supabase_admin", side_effect=ValueError("SUPABASE_URL is not set")):
            response = client.get("/health/db")

        assert response.status_code == 503
