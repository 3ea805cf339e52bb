"""
Provider-agnostic inbound email model.

These models represent a raw MIME email after parsing, before any
tenant routing or document normalization. Only the parser knows about
MIME structure; everything downstream works with these models.
"""

from typing import Optional
from pydantic import BaseModel


class InboundAttachment(BaseModel):
    """A single file attachment, already decoded to raw bytes."""

    filename: Optional[str] = None
    content: bytes
    content_type: str
    size: int


class InboundEmail(BaseModel):
    """Normalized inbound email."""

    message_id: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: str
    recipients: list[str] = []
    subject: Optional[str] = None
    date: Optional[str] = None
    attachments: list[InboundAttachment] = []
