"""Access tokens for API calls

Only refresh tokens are persisted. ``AccessTokenSource`` trades the stored
refresh token for a short-lived access token on first use, keeps it in
memory, and refreshes again shortly before it expires.
"""

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Optional

import httpx

import settings
from api.errors import AuthError, FrontError
from oauth.token_exchange import TokenResponse, refresh_access_token

if TYPE_CHECKING:
    from config.credentials import ClientCredentials
    from utils.storage import CredentialStore

logger = logging.getLogger(__name__)


class AccessTokenSource:
    """Hands out a valid access token, refreshing at most once at a time"""

    def __init__(
        self,
        credentials: "ClientCredentials",
        load_refresh_token: Callable[[], str],
        save_refresh_token: Optional[Callable[[str], None]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        token_url: Optional[str] = None,
        expiry_skew: Optional[float] = None,
    ):
        self.credentials = credentials
        self.load_refresh_token = load_refresh_token
        self.save_refresh_token = save_refresh_token
        self.http_client = http_client
        self.token_url = token_url
        self.expiry_skew = settings.TOKEN_EXPIRY_SKEW if expiry_skew is None else expiry_skew
        self._current: Optional[TokenResponse] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_store(
        cls,
        credentials: "ClientCredentials",
        store: "CredentialStore",
        account: str,
        **kwargs,
    ) -> "AccessTokenSource":
        """Token source backed by the stored refresh token of ``account``

        Rotated refresh tokens are written back to ``store``.
        """
        client = credentials.client_name

        def load() -> str:
            return store.get_token(client, account).refresh_token

        def save(refresh_token: str) -> None:
            token = store.get_token(client, account)
            store.set_token(client, account, replace(token, refresh_token=refresh_token))

        return cls(credentials, load, save, **kwargs)

    @classmethod
    def from_refresh_token(
        cls,
        credentials: "ClientCredentials",
        refresh_token: str,
        **kwargs,
    ) -> "AccessTokenSource":
        """Token source for a refresh token that is not stored yet (login)

        After a rotation ``load_refresh_token()`` returns the new token.
        """
        holder = {"refresh_token": refresh_token}

        def save(rotated: str) -> None:
            holder["refresh_token"] = rotated

        return cls(credentials, lambda: holder["refresh_token"], save, **kwargs)

    @property
    def has_cached_token(self) -> bool:
        return self._current is not None and not self._current.is_expired(self.expiry_skew)

    async def get_token(self) -> str:
        """
        Return an access token valid for at least ``expiry_skew`` seconds.

        Raises:
            AuthError: No refresh token is stored or the refresh failed
        """
        current = self._current
        if current is not None and not current.is_expired(self.expiry_skew):
            return current.access_token

        async with self._lock:
            # Another task may have refreshed while we waited
            current = self._current
            if current is not None and not current.is_expired(self.expiry_skew):
                return current.access_token
            self._current = await self._refresh()
            return self._current.access_token

    def invalidate(self) -> None:
        """Forget the cached access token (e.g. after a 401)"""
        self._current = None

    async def _refresh(self) -> TokenResponse:
        try:
            refresh_token = self.load_refresh_token()
            tokens = await refresh_access_token(
                refresh_token,
                self.credentials,
                http_client=self.http_client,
                token_url=self.token_url,
            )
        except FrontError as e:
            logger.warning(f"Access token refresh failed: {e}")
            raise AuthError(e) from e

        if tokens.refresh_token and self.save_refresh_token is not None:
            logger.debug("Refresh token was rotated, persisting the new one")
            try:
                self.save_refresh_token(tokens.refresh_token)
            except FrontError as e:
                raise AuthError(e) from e
        return tokens
