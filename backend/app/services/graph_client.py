"""
Microsoft Graph client with per-tenant OAuth token caching.

Tokens are obtained with the client-credentials grant and cached per
``{azure_tenant_id}:{client_id}`` until 60 seconds before expiry. Every
request runs through ``with_retry``: 429/500/502/503/504 and transport
errors are retried (honouring Retry-After), every other non-2xx is fatal.
A 401 evicts the cached token so the next attempt re-authenticates.

The cache is owned by the client instance. Concurrent runs for the same
tenant may both refresh an expired token; the second write simply wins.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional

import httpx

from app.models.graph import GraphTokenResponse
from app.models.tenant import GraphCredentials
from app.utils.resilience import RetryableError, RetryOptions, is_retryable_error, with_retry

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Refresh tokens this many seconds before they actually expire.
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class GraphAPIError(Exception):
    """A non-retryable Graph or token-endpoint failure."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def is_token_fresh(now: float, expires_at: float) -> bool:
    return now < expires_at - TOKEN_EXPIRY_MARGIN_SECONDS


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("120") or an HTTP-date. Returns None when the
    header is missing or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - current).total_seconds())


@dataclass
class CachedToken:
    token: str
    expires_at: float


class TokenCache:
    """Access tokens keyed by credential identity."""

    def __init__(self) -> None:
        self._entries: dict[str, CachedToken] = {}

    def get(self, key: str, now: float) -> Optional[str]:
        entry = self._entries.get(key)
        if entry and is_token_fresh(now, entry.expires_at):
            return entry.token
        return None

    def set(self, key: str, token: str, expires_at: float) -> None:
        self._entries[key] = CachedToken(token=token, expires_at=expires_at)

    def evict(self, key: str) -> None:
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class GraphClient:
    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[TokenCache] = None,
        retry_options: Optional[RetryOptions] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30.0,
        graph_base: str = GRAPH_BASE,
        token_url_template: str = TOKEN_URL_TEMPLATE,
    ) -> None:
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self.token_cache = token_cache or TokenCache()
        base = retry_options or RetryOptions()
        self._retry = RetryOptions(
            max_attempts=base.max_attempts,
            base_delay=base.base_delay,
            max_delay=base.max_delay,
            is_retryable=is_retryable_error,
        )
        self._clock = clock
        self._graph_base = graph_base.rstrip("/")
        self._token_url_template = token_url_template

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def acquire_token(self, credentials: GraphCredentials) -> str:
        """Return a cached token, or exchange client credentials for a new one."""
        cache_key = credentials.cache_key
        cached = self.token_cache.get(cache_key, self._clock())
        if cached:
            return cached

        token_url = self._token_url_template.format(tenant_id=credentials.tenant_id)
        form = {
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "scope": GRAPH_SCOPE,
            "grant_type": "client_credentials",
        }

        async def exchange() -> str:
            response = await self._send("POST", token_url, data=form)
            if not response.is_success:
                self._raise_for_status(response, "Token acquisition failed")

            token = GraphTokenResponse.model_validate(response.json())
            self.token_cache.set(
                cache_key,
                token.access_token,
                self._clock() + token.expires_in,
            )
            logger.debug("Acquired Graph token for %s", cache_key)
            return token.access_token

        return await with_retry(exchange, self._retry)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def call(
        self,
        path: str,
        credentials: GraphCredentials,
        *,
        method: str = "GET",
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Authenticated JSON request against the Graph base URL.

        Returns the parsed body, or None for 204 No Content.
        """

        async def attempt() -> Any:
            token = await self.acquire_token(credentials)
            response = await self._send(
                method,
                f"{self._graph_base}{path}",
                headers={"Authorization": f"Bearer {token}"},
                json=json,
                params=params,
            )
            if not response.is_success:
                self._handle_failure(response, credentials, f"Graph API error on {path}")
            if response.status_code == 204:
                return None
            return response.json()

        return await with_retry(attempt, self._retry)

    async def upload(self, path: str, content: bytes, credentials: GraphCredentials) -> Any:
        """PUT raw bytes (application/octet-stream) under the Graph base URL."""

        async def attempt() -> Any:
            token = await self.acquire_token(credentials)
            response = await self._send(
                "PUT",
                f"{self._graph_base}{path}",
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/octet-stream",
                },
                content=content,
            )
            if not response.is_success:
                self._handle_failure(response, credentials, f"Graph upload error on {path}")
            if response.status_code == 204:
                return None
            return response.json()

        return await with_retry(attempt, self._retry)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise RetryableError(f"Transport error calling {url}: {exc}") from exc

    def _handle_failure(
        self,
        response: httpx.Response,
        credentials: GraphCredentials,
        label: str,
    ) -> None:
        if response.status_code == 401:
            logger.warning("Graph returned 401; evicting cached token for %s", credentials.cache_key)
            self.token_cache.evict(credentials.cache_key)
        self._raise_for_status(response, label)

    def _raise_for_status(self, response: httpx.Response, label: str) -> None:
        status = response.status_code
        message = f"{label} ({status}): {response.text}"
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableError(
                message,
                status_code=status,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        raise GraphAPIError(message, status_code=status)
