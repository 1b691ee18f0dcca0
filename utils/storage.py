"""Refresh token storage in the OS keyring

One refresh token is kept per (client name, account) pair. The store works
against the narrow ``SecretBackend`` capability so tests can swap the keyring
for an in-memory backend.
"""

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

import settings
from api.errors import FrontError, TokenNotFoundError, UsageError

logger = logging.getLogger(__name__)

TOKEN_KEY_PREFIX = "token:"
INDEX_KEY = "index"


class StorageError(FrontError):
    """The secret backend failed to read or write"""


class SecretBackend(Protocol):
    """Keyed secret store over strings"""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> List[str]: ...


class KeyringBackend:
    """SecretBackend on top of the ``keyring`` library

    The keyring API cannot enumerate entries, so the backend keeps a JSON list
    of its keys under a reserved index entry.
    """

    def __init__(self, service: Optional[str] = None):
        self.service = service or settings.KEYRING_SERVICE

    def get(self, key: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, key)
        except KeyringError as e:
            raise StorageError(f"keyring read failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            # Value first, then index, so a listed key always has a value
            keyring.set_password(self.service, key, value)
            index = self._read_index()
            if key not in index:
                index.append(key)
                self._write_index(index)
        except KeyringError as e:
            raise StorageError(f"keyring write failed: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            index = self._read_index()
            if key in index:
                index.remove(key)
                self._write_index(index)
            try:
                keyring.delete_password(self.service, key)
            except PasswordDeleteError:
                return False
            return True
        except KeyringError as e:
            raise StorageError(f"keyring delete failed: {e}") from e

    def keys(self) -> List[str]:
        try:
            return list(self._read_index())
        except KeyringError as e:
            raise StorageError(f"keyring read failed: {e}") from e

    def _read_index(self) -> List[str]:
        raw = keyring.get_password(self.service, INDEX_KEY)
        if not raw:
            return []
        try:
            index = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Keyring index is corrupt, starting a new one")
            return []
        return [k for k in index if isinstance(k, str)]

    def _write_index(self, index: List[str]) -> None:
        keyring.set_password(self.service, INDEX_KEY, json.dumps(index))


@dataclass
class Token:
    """Stored refresh token for one (client, account) pair"""
    client: str
    account: str
    refresh_token: str = field(repr=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, str]:
        return {
            "client": self.client,
            "account": self.account,
            "refresh_token": self.refresh_token,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "Token":
        created_at = datetime.fromisoformat(data["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            client=data["client"],
            account=data["account"],
            refresh_token=data["refresh_token"],
            created_at=created_at,
        )


def token_key(client: str, account: str) -> str:
    return f"{TOKEN_KEY_PREFIX}{client}:{account}"


def parse_token_key(key: str) -> Optional[Tuple[str, str]]:
    if not key.startswith(TOKEN_KEY_PREFIX):
        return None
    client, sep, account = key[len(TOKEN_KEY_PREFIX):].partition(":")
    if not sep or not client or not account:
        return None
    return client, account


class CredentialStore:
    """Refresh tokens keyed by (client, account)"""

    def __init__(self, backend: Optional[SecretBackend] = None):
        self.backend = backend if backend is not None else KeyringBackend()
        self._lock = threading.RLock()

    def set_token(self, client: str, account: str, token: Token) -> None:
        """Insert or overwrite the token for (client, account)"""
        if not account:
            raise UsageError("account must not be empty")
        record = replace(token, client=client, account=account)
        with self._lock:
            self.backend.set(token_key(client, account), json.dumps(record.to_dict()))
        logger.debug(f"Stored token for {account} (client {client})")

    def get_token(self, client: str, account: str) -> Token:
        """
        Raises:
            TokenNotFoundError: Nothing stored for (client, account)
        """
        with self._lock:
            raw = self.backend.get(token_key(client, account))
        if raw is None:
            raise TokenNotFoundError(client, account)
        return self._decode(raw, client, account)

    def delete_token(self, client: str, account: str) -> None:
        """
        Raises:
            TokenNotFoundError: Nothing stored for (client, account)
        """
        with self._lock:
            if not self.backend.delete(token_key(client, account)):
                raise TokenNotFoundError(client, account)
        logger.debug(f"Deleted token for {account} (client {client})")

    def list_tokens(self) -> List[Token]:
        """All stored tokens, in no particular order"""
        tokens = []
        with self._lock:
            keys = self.backend.keys()
            for key in keys:
                parsed = parse_token_key(key)
                if parsed is None:
                    continue
                raw = self.backend.get(key)
                if raw is None:
                    # Deleted by another process between keys() and get()
                    continue
                tokens.append(self._decode(raw, *parsed))
        return tokens

    def tokens_for_client(self, client: str) -> List[Token]:
        return [t for t in self.list_tokens() if t.client == client]

    def resolve_account(self, client: str, account: Optional[str] = None) -> str:
        """Pick the account to use for a client

        Returns ``account`` when given, otherwise the client's only account.

        Raises:
            TokenNotFoundError: The client has no stored accounts
            UsageError: The client has several accounts and none was named
        """
        if account:
            return account
        accounts = sorted(t.account for t in self.tokens_for_client(client))
        if not accounts:
            raise TokenNotFoundError(client)
        if len(accounts) > 1:
            raise UsageError(
                f"multiple accounts for client '{client}' ({', '.join(accounts)}); specify --account or --email"
            )
        return accounts[0]

    @staticmethod
    def _decode(raw: str, client: str, account: str) -> Token:
        try:
            data = json.loads(raw)
            data.setdefault("client", client)
            data.setdefault("account", account)
            return Token.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"stored token for {account} (client {client}) is unreadable: {e}") from e

