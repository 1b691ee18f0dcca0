"""Shared utilities package for frontcli"""

from .storage import (
    CredentialStore,
    KeyringBackend,
    SecretBackend,
    StorageError,
    Token,
)
from .debug_console import (
    DebugCapturingConsole,
    create_debug_console,
    setup_debug_logger,
)

__all__ = [
    "CredentialStore",
    "KeyringBackend",
    "SecretBackend",
    "StorageError",
    "Token",
    "DebugCapturingConsole",
    "create_debug_console",
    "setup_debug_logger",
]
