"""
Front API client with token refresh, error classification and a circuit breaker
"""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import quote

import httpx

import settings
from .circuit_breaker import CircuitBreaker
from .errors import (
    AuthError,
    HTTPError,
    NotFoundError,
    RateLimitError,
    UsageError,
)
from .idprefix import prefix_for, validate_id_prefix
from .token_source import AccessTokenSource

if TYPE_CHECKING:
    from config.credentials import ClientCredentials
    from utils.storage import CredentialStore

logger = logging.getLogger(__name__)

RESOURCE_COLLECTIONS = {
    "conversation": "conversations",
    "message": "messages",
    "comment": "comments",
    "teammate": "teammates",
    "tag": "tags",
    "inbox": "inboxes",
    "channel": "channels",
    "contact": "contacts",
}

# Upper bound on pages followed by list helpers
MAX_PAGES = 50


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> int:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)"""
    if not value:
        return 0
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return 0
    if when is None:
        return 0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((when - now).total_seconds()))


def parse_error_body(response: httpx.Response):
    """(message, details) from a Front error response

    Front errors look like ``{"_error": {"status": 404, "title": "Not found",
    "message": "..."}}``; anything else falls back to the reason phrase.
    """
    message = response.reason_phrase or f"HTTP {response.status_code}"
    details = ""
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return message, text[:200]

    error = payload.get("_error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        message = error.get("title") or message
        details = error.get("message") or ""
    elif isinstance(payload, dict) and payload.get("message"):
        details = str(payload["message"])
    return message, details


class FrontClient:
    """
    Authenticated client for the Front core API.

    Every call gets an access token first (refreshing it if needed), then asks
    the circuit breaker for admission, then sends the request and turns any
    non-2xx response into a typed ``FrontError``.
    """

    def __init__(
        self,
        token_source: AccessTokenSource,
        base_url: Optional[str] = None,
        breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.token_source = token_source
        self.base_url = (base_url or settings.API_BASE).rstrip("/")
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            reset_timeout=settings.CIRCUIT_BREAKER_COOLDOWN,
        )
        self.timeout = httpx.Timeout(
            timeout if timeout is not None else settings.REQUEST_TIMEOUT,
            connect=settings.CONNECT_TIMEOUT,
        )
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=self.timeout)

    @classmethod
    def for_account(
        cls,
        credentials: "ClientCredentials",
        store: "CredentialStore",
        account: str,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> "FrontClient":
        """Client authenticated as a stored account"""
        source = AccessTokenSource.from_store(credentials, store, account, http_client=http_client)
        return cls(source, http_client=http_client, **kwargs)

    async def __aenter__(self) -> "FrontClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        requested_id: str = "",
        expected_resource: str = "",
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send one API request.

        Args:
            method: HTTP method
            path: Path below the API base (or an absolute URL, for pagination links)
            params: Query parameters
            json: JSON body
            requested_id: Resource ID in the path, for 404 hints
            expected_resource: Resource kind the caller expected, for 404 hints
            timeout: Per-call timeout override in seconds

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            AuthError: Token refresh failed, or 401/403 from the API
            CircuitOpenError: Breaker is open; nothing was sent
            NotFoundError: 404
            RateLimitError: 429
            HTTPError: Any other non-2xx response or a transport failure
        """
        used_cached_token = self.token_source.has_cached_token
        access_token = await self.token_source.get_token()
        response = await self._send(method, path, access_token, params, json, timeout)

        if response.status_code == 401 and used_cached_token:
            # Cached token may have been revoked early; refresh and retry once
            logger.info("Got 401 with a cached access token, refreshing and retrying once")
            self.token_source.invalidate()
            access_token = await self.token_source.get_token()
            response = await self._send(method, path, access_token, params, json, timeout)

        return self._handle_response(response, requested_id, expected_resource)

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str,
        params: Optional[Dict[str, Any]],
        json: Optional[Any],
        timeout: Optional[float],
    ) -> httpx.Response:
        self.breaker.before_call()

        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "User-Agent": settings.USER_AGENT,
        }
        request_timeout = self.timeout if timeout is None else httpx.Timeout(timeout, connect=settings.CONNECT_TIMEOUT)

        logger.debug(f"{method} {url}")
        try:
            response = await self.http_client.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=request_timeout,
            )
        except httpx.HTTPError as e:
            self.breaker.record_failure()
            logger.warning(f"{method} {url} failed: {type(e).__name__}: {e}")
            raise HTTPError(0, "request failed", details=str(e) or type(e).__name__) from e
        except BaseException:
            # Cancelled or malformed calls must still release a half-open probe
            self.breaker.record_failure()
            raise

        logger.debug(f"{method} {url} -> {response.status_code}")
        if response.status_code == 429 or response.status_code >= 500:
            self.breaker.record_failure()
        else:
            self.breaker.record_success()
        return response

    def _handle_response(self, response: httpx.Response, requested_id: str, expected_resource: str) -> Any:
        status = response.status_code
        if 200 <= status < 300:
            if status == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise HTTPError(status, "invalid JSON in response", details=str(e)) from e

        if status == 429:
            raise RateLimitError(parse_retry_after(response.headers.get("Retry-After")))

        message, details = parse_error_body(response)
        if status in (401, 403):
            raise AuthError(HTTPError(status, message, details=details))
        if status == 404:
            raise NotFoundError(
                resource=expected_resource,
                id=requested_id,
                details=details,
                expected_resource=expected_resource,
            )
        raise HTTPError(
            status,
            message,
            details=details,
            requested_id=requested_id,
            expected_resource=expected_resource,
        )

    async def get_resource(self, resource: str, id: str) -> Dict[str, Any]:
        """
        Fetch a single resource by ID.

        The ID prefix is checked locally first, so a message ID passed where a
        conversation is expected fails without a request.

        Raises:
            UsageError: ``resource`` is not a known kind
            WrongResourceTypeError: ``id`` belongs to another kind
        """
        collection = RESOURCE_COLLECTIONS.get(resource)
        prefix = prefix_for(resource)
        if collection is None or prefix is None:
            raise UsageError(f"unknown resource type '{resource}'")
        validate_id_prefix(id, prefix)
        return await self.request(
            "GET",
            f"/{collection}/{quote(id, safe='')}",
            requested_id=id,
            expected_resource=resource,
        )

    async def me(self) -> Dict[str, Any]:
        """Details of the company account the token belongs to"""
        return await self.request("GET", "/me")

    async def list_teammates(self) -> List[Dict[str, Any]]:
        """All teammates of the account, following pagination"""
        return await self._list_all("/teammates")

    async def _list_all(self, path: str) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        next_url: Optional[str] = path
        pages = 0
        while next_url and pages < MAX_PAGES:
            page = await self.request("GET", next_url) or {}
            results.extend(page.get("_results", []))
            next_url = (page.get("_pagination") or {}).get("next")
            pages += 1
        if next_url:
            logger.warning(f"Stopped listing {path} after {MAX_PAGES} pages")
        return results
