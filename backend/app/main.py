"""
Onboarding Document Intake API
FastAPI application exposing the manual processing trigger, tenant
management, and health checks. Queue-driven processing lives in
app.handlers.process_emails.
"""

import logging

from fastapi import FastAPI, HTTPException

from app.config import get_settings
from app.db import execute, get_supabase_admin
from app.dependencies import get_email_sender, get_graph_client
from app.routers import tenants, trigger

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Onboarding Document Intake API",
    description="Turns emailed onboarding documents into per-tenant OneDrive folders",
    version="0.1.0",
)

# Include routers
app.include_router(trigger.router, prefix="/api/trigger", tags=["trigger"])
app.include_router(tenants.router, prefix="/api/tenants", tags=["tenants"])


@app.on_event("shutdown")
async def close_http_clients() -> None:
    """Close the shared HTTP clients that were created."""
    if get_graph_client.cache_info().currsize:
        await get_graph_client().aclose()
    if get_email_sender.cache_info().currsize:
        await get_email_sender().aclose()


@app.get("/")
async def root():
    return {"message": "Onboarding Document Intake API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Executes a lightweight query (SELECT 1 row from the tenants table).
    Returns 503 on failure.
    """
    try:
        admin = get_supabase_admin()
    except ValueError as exc:
        raise HTTPException(
            status_code=503,
            detail=f"Database client unavailable: {exc}",
        )

    try:
        settings = get_settings()
        await execute(admin.table(settings.tenants_table).select("tenant_id").limit(1))
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
