"""Shared fixtures: in-memory secret backend, temp config dir, mock HTTP."""

import io
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from rich.console import Console

import settings
from config.credentials import ClientCredentials
from utils.storage import CredentialStore

TOKEN_URL = "https://auth.test/oauth/token"
API_BASE = "https://api.test"


class MemoryBackend:
    """SecretBackend kept in a dict; records operations in order."""

    def __init__(self) -> None:
        self.values: Dict[str, str] = {}
        self.operations: List[tuple] = []

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.operations.append(("set", key))
        self.values[key] = value

    def delete(self, key: str) -> bool:
        self.operations.append(("delete", key))
        return self.values.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self.values)


def make_console() -> Console:
    """Console writing to a buffer; read it back with console.file.getvalue()."""
    return Console(file=io.StringIO(), width=200, force_terminal=False)


def mock_http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def token_payload(access_token: str = "access-1", refresh_token: Optional[str] = None, expires_in: int = 3600) -> dict:
    payload = {"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in}
    if refresh_token:
        payload["refresh_token"] = refresh_token
    return payload


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    path = tmp_path / "frontcli"
    monkeypatch.setattr(settings, "CONFIG_DIR", str(path))
    return path


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend) -> CredentialStore:
    return CredentialStore(backend)


@pytest.fixture
def credentials() -> ClientCredentials:
    return ClientCredentials(
        client_name="default",
        client_id="client-123",
        client_secret="s3cret",
        redirect_uri="http://localhost/callback",
    )
