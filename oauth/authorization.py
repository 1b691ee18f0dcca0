"""OAuth authorization URL construction"""

import secrets
from typing import Optional
from urllib.parse import urlencode, urlparse, urlunparse

import settings


def create_state() -> str:
    """
    Generate random state parameter for CSRF protection.

    Returns:
        str: URL-safe string from 32 random bytes
    """
    return secrets.token_urlsafe(32)


def with_port(redirect_uri: str, port: int) -> str:
    """Return ``redirect_uri`` with its port replaced by ``port``"""
    parsed = urlparse(redirect_uri)
    host = parsed.hostname or "localhost"
    if ":" in host:
        host = f"[{host}]"
    return urlunparse(parsed._replace(netloc=f"{host}:{port}"))


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    state: str,
    scopes: Optional[str] = None,
    force_consent: bool = False,
    authorize_url: Optional[str] = None,
) -> str:
    """
    Build the authorization-code grant URL.

    Args:
        client_id: OAuth client ID
        redirect_uri: Where the authorization server sends the user back
        state: Nonce echoed back on the redirect
        scopes: Space separated scopes; omitted when empty
        force_consent: Show the consent screen even if already granted
        authorize_url: Override for the authorization endpoint

    Returns:
        Full authorization URL
    """
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "state": state,
    }
    scopes = settings.SCOPES if scopes is None else scopes
    if scopes:
        params["scope"] = scopes
    if force_consent:
        params["prompt"] = "consent"

    base = authorize_url or settings.AUTHORIZE_URL
    return f"{base}?{urlencode(params)}"
