"""
Reviewer notification.

Sends one HTML email per successful run through the Resend HTTP API,
telling the tenant's reviewer which documents arrived and where they live.
Every user-supplied value is HTML-escaped before rendering.
"""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx

from app.models.tenant import Tenant
from app.utils.resilience import RetryableError, RetryOptions, is_retryable_error, with_retry
from app.utils.sanitize import escape_html

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class NotificationError(Exception):
    pass


class ResendEmailSender:
    """``send(from, to, subject, html)`` over the Resend API."""

    def __init__(
        self,
        api_key: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        retry_options: Optional[RetryOptions] = None,
    ) -> None:
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=30.0)
        base = retry_options or RetryOptions()
        self._retry = RetryOptions(
            max_attempts=base.max_attempts,
            base_delay=base.base_delay,
            max_delay=base.max_delay,
            is_retryable=is_retryable_error,
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def send(self, from_address: str, to_address: str, subject: str, html_body: str) -> None:
        if not self._api_key:
            raise NotificationError("RESEND_API_KEY is not configured")

        payload = {
            "from": from_address,
            "to": [to_address],
            "subject": subject,
            "html": html_body,
        }

        async def attempt() -> None:
            try:
                response = await self._http.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
            except httpx.TransportError as exc:
                raise RetryableError(f"Resend transport error: {exc}") from exc

            if response.is_success:
                return
            message = f"Resend API error ({response.status_code}): {response.text}"
            if response.status_code in _RETRYABLE_STATUS_CODES:
                raise RetryableError(message, status_code=response.status_code)
            raise NotificationError(message)

        await with_retry(attempt, self._retry)


def render_notification_html(
    employee_name: str,
    employee_email: str,
    company_name: str,
    documents: list[str],
    folder_url: str,
    processed_at: str,
) -> str:
    try:
        received = datetime.fromisoformat(processed_at).strftime("%Y-%m-%d %H:%M %Z").strip()
    except ValueError:
        received = processed_at

    doc_items = "\n      ".join(f"<li>{escape_html(doc)}</li>" for doc in documents)
    safe_url = escape_html(quote(folder_url, safe=":/?#[]@!$&'()*+,;=%-._~"))

    return f"""<h2>Onboarding Documents Received</h2>
    <p><strong>Employee:</strong> {escape_html(employee_name)}</p>
    <p><strong>Email:</strong> {escape_html(employee_email)}</p>
    <p><strong>Company:</strong> {escape_html(company_name)}</p>
    <p><strong>Received:</strong> {escape_html(received)}</p>
    <hr />
    <p><strong>Documents uploaded:</strong></p>
    <ul>
      {doc_items}
    </ul>
    <p>
      <a href="{safe_url}" style="display:inline-block;padding:10px 20px;background:#0078d4;color:#fff;text-decoration:none;border-radius:4px;">
        View Documents on OneDrive
      </a>
    </p>
    <hr />
    <p style="color:#888;font-size:12px;">
      This is an automated notification from the onboarding document intake service.
    </p>"""


async def notify_reviewer(
    sender,
    tenant: Tenant,
    employee_name: str,
    employee_email: str,
    documents: list[str],
    folder_url: str,
    processed_at: str,
) -> None:
    """Render and send the reviewer notification for one processed submission."""
    html_body = render_notification_html(
        employee_name=employee_name,
        employee_email=employee_email,
        company_name=tenant.company_name,
        documents=documents,
        folder_url=folder_url,
        processed_at=processed_at,
    )
    subject = f"Onboarding Documents Received - {employee_name}"
    await sender.send(tenant.notify_from_address, tenant.reviewer_email, subject, html_body)
    logger.info(f"Notified {tenant.reviewer_email} about {len(documents)} document(s)")
