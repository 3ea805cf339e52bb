"""
Parsed inbound submission models.

An EmployeeSubmission is produced once per inbound email by the parser and
is treated as immutable for the rest of the pipeline run.
"""

from pydantic import BaseModel


class DocumentAttachment(BaseModel):
    """A single PDF attachment, already decoded to raw bytes."""

    original_name: str
    normalized_name: str      # unique within the submission
    content: bytes
    content_type: str
    size: int


class EmployeeSubmission(BaseModel):
    message_id: str           # external identity, also the idempotency key
    recipient_email: str
    employee_name: str
    employee_email: str
    subject: str
    received_at: str
    attachments: list[DocumentAttachment] = []
