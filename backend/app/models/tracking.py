"""
Tracking ledger row and the per-run result returned to invocation layers.
"""

from typing import Literal, Optional
from pydantic import BaseModel

TrackingStatus = Literal["processed", "failed"]


class TrackingRecord(BaseModel):
    """One row of the tracking ledger, keyed by message_id."""
    model_config = {"from_attributes": True, "extra": "ignore"}

    tenant_id: str
    message_id: str
    employee_name: str
    employee_email: str
    folder_url: str = ""
    documents_uploaded: list[str] = []
    processed_at: str
    status: TrackingStatus
    error: Optional[str] = None


class FailedUpload(BaseModel):
    name: str
    error: str


class ProcessingRunResult(BaseModel):
    """
    Outcome of one pipeline run. Not persisted as-is.

    failed_at_step is set only when success is False.
    """

    success: bool
    message_id: str
    tenant_id: Optional[str] = None
    employee_name: Optional[str] = None
    employee_email: Optional[str] = None
    folder_url: Optional[str] = None
    documents_uploaded: Optional[list[str]] = None
    documents_failed: Optional[list[FailedUpload]] = None
    warnings: Optional[list[str]] = None
    error: Optional[str] = None
    failed_at_step: Optional[str] = None
