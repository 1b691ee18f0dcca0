"""OAuth client credentials, one JSON file per named client"""

import json
import logging
import os
import platform
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError, field_validator

import settings
from api.errors import NotAuthenticatedError, UsageError

logger = logging.getLogger(__name__)

_CLIENT_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


class ClientCredentials(BaseModel):
    """OAuth application registered with Front"""
    client_name: str = settings.DEFAULT_CLIENT_NAME
    client_id: str
    client_secret: str
    redirect_uri: str = settings.DEFAULT_REDIRECT_URI

    @field_validator("client_id", "client_secret")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("redirect_uri")
    @classmethod
    def _http_redirect(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"redirect URI must be an http(s) URL, got {value!r}")
        return value

    def __repr__(self) -> str:
        return (
            f"ClientCredentials(client_name={self.client_name!r}, client_id={self.client_id!r}, "
            f"client_secret='***', redirect_uri={self.redirect_uri!r})"
        )


def normalize_client_name(name: Optional[str]) -> str:
    """Trim and lower-case a client name, defaulting to 'default'

    Raises:
        UsageError: If the name contains characters unsafe for a file name
    """
    normalized = (name or "").strip().lower()
    if not normalized:
        return settings.DEFAULT_CLIENT_NAME
    if not _CLIENT_NAME_RE.match(normalized):
        raise UsageError(
            f"invalid client name {name!r}: use letters, digits, '.', '_' or '-'"
        )
    return normalized


def client_credentials_path(client_name: Optional[str] = None) -> Path:
    """Path of the credentials file for a client"""
    name = normalize_client_name(client_name)
    return Path(settings.CONFIG_DIR) / f"credentials-{name}.json"


def client_credentials_exist(client_name: Optional[str] = None) -> bool:
    return client_credentials_path(client_name).exists()


def write_client_credentials(credentials: ClientCredentials) -> Path:
    """Persist client credentials with owner-only permissions

    Returns:
        Path the credentials were written to
    """
    name = normalize_client_name(credentials.client_name)
    path = client_credentials_path(name)
    parent_dir = path.parent
    if not parent_dir.exists():
        parent_dir.mkdir(parents=True, exist_ok=True)
        if platform.system() != "Windows":
            os.chmod(parent_dir, 0o700)

    data = credentials.model_dump()
    data["client_name"] = name

    # Write to a sibling file and swap it in so readers never see a partial file
    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_text(json.dumps(data, indent=2))
    if platform.system() != "Windows":
        os.chmod(tmp_path, 0o600)
    os.replace(tmp_path, path)

    logger.debug(f"Saved client credentials for '{name}' to {path}")
    return path


def read_client_credentials(client_name: Optional[str] = None) -> ClientCredentials:
    """Load credentials for a client

    Raises:
        NotAuthenticatedError: If the client has not been set up
        UsageError: If the credentials file is unreadable or invalid
    """
    name = normalize_client_name(client_name)
    path = client_credentials_path(name)
    if not path.exists():
        raise NotAuthenticatedError(f"OAuth client '{name}' is not configured")

    try:
        data = json.loads(path.read_text())
        data.setdefault("client_name", name)
        return ClientCredentials.model_validate(data)
    except (json.JSONDecodeError, OSError) as e:
        raise UsageError(f"cannot read client credentials {path}: {e}") from e
    except ValidationError as e:
        raise UsageError(f"invalid client credentials in {path}: {e}") from e
