"""
API key authentication for the tenant-management and trigger routes.

Clients send the shared key in the ``X-API-Key`` header. The comparison is
constant-time. When API_KEY is not configured the routes are open in
development and refuse every request in production.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException

from app.config import get_settings
from app.utils.sanitize import timing_safe_compare

logger = logging.getLogger(__name__)


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """
    FastAPI dependency verifying the X-API-Key header.

    Raises:
        HTTPException: 500 if API_KEY is unset in production,
                       401 if the key is missing or wrong
    """
    settings = get_settings()
    expected = settings.api_key

    if not expected:
        if settings.is_production:
            logger.error("API_KEY is not configured in production; rejecting request")
            raise HTTPException(status_code=500, detail="API_KEY not configured")
        return

    if not x_api_key or not timing_safe_compare(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
