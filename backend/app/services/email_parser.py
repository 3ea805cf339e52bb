"""
Inbound email parsing.

Raw MIME emails are deposited into a Supabase Storage bucket by the mail
receiving service. This module fetches the blob (with retry), parses it
with the standard library ``email`` package, keeps only PDF attachments,
and assigns each one a normalized filename.

Only PDF-vs-not is checked; attachment content is never validated.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Optional

from app.models.inbound_email import InboundAttachment, InboundEmail
from app.models.submission import DocumentAttachment, EmployeeSubmission
from app.services.document_normalizer import normalize_document_names
from app.utils.resilience import RetryOptions, with_retry

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
UNNAMED_ATTACHMENT = "unnamed.pdf"


class EmailParseError(Exception):
    pass


class NoPdfAttachmentsError(EmailParseError):
    pass


# ---------------------------------------------------------------------------
# Blob storage
# ---------------------------------------------------------------------------

class SupabaseBlobStore:
    """Reads raw email blobs from Supabase Storage."""

    def __init__(self, client, retry_options: Optional[RetryOptions] = None) -> None:
        self._client = client
        self._retry = retry_options or RetryOptions()

    async def get_object(self, bucket: str, key: str) -> bytes:
        def download() -> bytes:
            return self._client.storage.from_(bucket).download(key)

        return await with_retry(lambda: asyncio.to_thread(download), self._retry)


# ---------------------------------------------------------------------------
# MIME parsing
# ---------------------------------------------------------------------------

def _first_address(message: EmailMessage, header_name: str):
    header = message[header_name]
    addresses = getattr(header, "addresses", None) or ()
    return addresses[0] if addresses else None


def parse_raw_email(raw: bytes) -> InboundEmail:
    """
    Parse raw RFC 5322 bytes into an InboundEmail.

    Raises:
        EmailParseError: when no sender address can be extracted
    """
    message = BytesParser(policy=policy.default).parsebytes(raw)

    sender = _first_address(message, "From")
    if sender is None or not sender.addr_spec:
        raise EmailParseError("Could not extract sender from email")

    recipients: list[str] = []
    to_header = message["To"]
    for address in getattr(to_header, "addresses", None) or ():
        if address.addr_spec:
            recipients.append(address.addr_spec)

    date_header = message["Date"]
    date: Optional[str] = None
    parsed_date = getattr(date_header, "datetime", None)
    if parsed_date is not None:
        if parsed_date.tzinfo is None:
            parsed_date = parsed_date.replace(tzinfo=timezone.utc)
        date = parsed_date.isoformat()

    attachments: list[InboundAttachment] = []
    for part in message.walk():
        if part.is_multipart():
            continue
        filename = part.get_filename()
        if not filename and not part.is_attachment():
            continue
        content = part.get_payload(decode=True) or b""
        attachments.append(
            InboundAttachment(
                filename=filename,
                content=content,
                content_type=part.get_content_type(),
                size=len(content),
            )
        )

    message_id = message["Message-ID"]
    return InboundEmail(
        message_id=str(message_id).strip() if message_id else None,
        sender_name=sender.display_name or None,
        sender_email=sender.addr_spec,
        recipients=recipients,
        subject=str(message["Subject"]) if message["Subject"] else None,
        date=date,
        attachments=attachments,
    )


def extract_employee_name(display_name: Optional[str], email_address: Optional[str]) -> str:
    """
    Prefer the sender's display name; otherwise derive one from the address.

    Examples:
        ("Jane Roe", "x@y.com")   -> "Jane Roe"
        (None, "john.doe@y.com")  -> "John Doe"
        (None, None)              -> "Unknown"
    """
    if display_name and display_name.strip():
        return display_name.strip()

    if not email_address:
        return "Unknown"

    local_part = email_address.split("@")[0]
    spaced = re.sub(r"[._-]", " ", local_part)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced).strip() or "Unknown"


def is_pdf_attachment(attachment: InboundAttachment) -> bool:
    if attachment.content_type == PDF_CONTENT_TYPE:
        return True
    return bool(attachment.filename) and attachment.filename.lower().endswith(".pdf")


def build_submission(email: InboundEmail, fallback_message_id: str) -> EmployeeSubmission:
    """
    Turn a parsed email into an EmployeeSubmission with normalized PDF names.

    Raises:
        NoPdfAttachmentsError: when no attachment is a PDF
    """
    pdf_attachments = [att for att in email.attachments if is_pdf_attachment(att)]
    if not pdf_attachments:
        raise NoPdfAttachmentsError(f"No PDF attachments found in email from {email.sender_email}")

    employee_name = extract_employee_name(email.sender_name, email.sender_email)
    original_names = [att.filename or UNNAMED_ATTACHMENT for att in pdf_attachments]
    normalized_names = normalize_document_names(original_names, employee_name)

    return EmployeeSubmission(
        message_id=email.message_id or fallback_message_id,
        recipient_email=email.recipients[0] if email.recipients else "",
        employee_name=employee_name,
        employee_email=email.sender_email,
        subject=email.subject or "",
        received_at=email.date or datetime.now(timezone.utc).isoformat(),
        attachments=[
            DocumentAttachment(
                original_name=original,
                normalized_name=normalized,
                content=att.content,
                content_type=att.content_type,
                size=att.size,
            )
            for att, original, normalized in zip(pdf_attachments, original_names, normalized_names)
        ],
    )


class EmailParser:
    """Fetches a raw email from storage and returns the parsed submission."""

    def __init__(self, blob_store: SupabaseBlobStore) -> None:
        self._blob_store = blob_store

    async def parse_from_storage(self, bucket: str, key: str) -> EmployeeSubmission:
        raw = await self._blob_store.get_object(bucket, key)
        if isinstance(raw, str):
            raw = raw.encode()
        email = parse_raw_email(raw)
        submission = build_submission(email, fallback_message_id=key)
        logger.info(
            f"Parsed {key}: {len(submission.attachments)} PDF attachment(s) "
            f"from {submission.employee_email}"
        )
        return submission
