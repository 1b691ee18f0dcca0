"""
OAuth token endpoint calls: authorization-code exchange and refresh
"""
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

import settings
from api.errors import TokenExchangeError

if TYPE_CHECKING:
    from config.credentials import ClientCredentials

logger = logging.getLogger(__name__)


class TokenResponse:
    """OAuth token response"""

    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: int,
        token_type: str = "Bearer",
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.token_type = token_type
        self.expires_in = expires_in
        self.expires_at = time.time() + expires_in

    def is_expired(self, skew: float = 0) -> bool:
        """Check if access token is expired, ``skew`` seconds early"""
        return time.time() >= self.expires_at - skew

    def __repr__(self) -> str:
        return f"TokenResponse(token_type={self.token_type!r}, expires_in={self.expires_in})"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenResponse":
        access_token = payload.get("access_token")
        if not access_token:
            raise TokenExchangeError("token endpoint response is missing access_token")
        try:
            expires_in = int(payload.get("expires_in") or 3600)
        except (TypeError, ValueError):
            expires_in = 3600
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_in=expires_in,
            token_type=payload.get("token_type", "Bearer"),
        )


def _default_timeout() -> httpx.Timeout:
    return httpx.Timeout(settings.REQUEST_TIMEOUT, connect=settings.CONNECT_TIMEOUT)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if not isinstance(payload, dict):
        return response.text[:200]

    # Front wraps errors as {"_error": {"title": ..., "message": ...}}
    front_error = payload.get("_error")
    if isinstance(front_error, dict):
        return front_error.get("message") or front_error.get("title") or ""

    # RFC 6749 error response
    error = payload.get("error")
    description = payload.get("error_description")
    if error and description:
        return f"{error}: {description}"
    return str(error or "")


async def _post_token_request(
    data: Dict[str, str],
    credentials: "ClientCredentials",
    http_client: Optional[httpx.AsyncClient],
    token_url: Optional[str],
) -> TokenResponse:
    url = token_url or settings.TOKEN_URL
    kwargs = dict(
        data=data,
        auth=(credentials.client_id, credentials.client_secret),
        headers={"Accept": "application/json", "User-Agent": settings.USER_AGENT},
    )
    try:
        if http_client is not None:
            response = await http_client.post(url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=_default_timeout()) as client:
                response = await client.post(url, **kwargs)
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"token endpoint unreachable: {e}") from e

    if response.status_code != 200:
        detail = _error_detail(response)
        logger.error(f"Token request ({data['grant_type']}) failed with status {response.status_code}")
        message = f"token request failed ({response.status_code})"
        if detail:
            message += f": {detail}"
        raise TokenExchangeError(message, status_code=response.status_code)

    try:
        payload = response.json()
    except ValueError as e:
        raise TokenExchangeError("token endpoint returned invalid JSON") from e
    if not isinstance(payload, dict):
        raise TokenExchangeError("token endpoint returned an unexpected payload")
    return TokenResponse.from_payload(payload)


async def exchange_code(
    code: str,
    credentials: "ClientCredentials",
    redirect_uri: str,
    http_client: Optional[httpx.AsyncClient] = None,
    token_url: Optional[str] = None,
) -> TokenResponse:
    """
    Exchange an authorization code for access and refresh tokens.

    Args:
        code: Authorization code from the callback
        credentials: OAuth client credentials
        redirect_uri: The redirect URI used in the authorization request
        http_client: Optional client to send the request with
        token_url: Override for the token endpoint

    Returns:
        TokenResponse with a refresh token

    Raises:
        TokenExchangeError: The endpoint rejected the code or returned no refresh token
    """
    tokens = await _post_token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        },
        credentials,
        http_client,
        token_url,
    )
    if not tokens.refresh_token:
        raise TokenExchangeError("token endpoint did not return a refresh token")
    logger.info("Authorization code exchanged for tokens")
    return tokens


async def refresh_access_token(
    refresh_token: str,
    credentials: "ClientCredentials",
    http_client: Optional[httpx.AsyncClient] = None,
    token_url: Optional[str] = None,
) -> TokenResponse:
    """
    Get a new access token from a refresh token.

    ``refresh_token`` on the result is set only when the server rotated it.

    Raises:
        TokenExchangeError: The refresh token was rejected or the endpoint failed
    """
    if not refresh_token:
        raise TokenExchangeError("no refresh token available")
    tokens = await _post_token_request(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
        credentials,
        http_client,
        token_url,
    )
    if tokens.refresh_token == refresh_token:
        tokens.refresh_token = None
    logger.debug("Access token refreshed")
    return tokens
