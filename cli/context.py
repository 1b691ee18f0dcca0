"""Shared state handed to every command handler"""

from dataclasses import dataclass, field
from typing import Optional

import httpx
from rich.console import Console

from utils.storage import CredentialStore


@dataclass
class CLIContext:
    """Consoles, token store and flags for one command run"""
    console: Console = field(default_factory=Console)
    err_console: Console = field(default_factory=lambda: Console(stderr=True))
    store: Optional[CredentialStore] = None
    # Injected in tests; commands create their own clients when None
    http_client: Optional[httpx.AsyncClient] = None
    debug: bool = False

    def get_store(self) -> CredentialStore:
        if self.store is None:
            self.store = CredentialStore()
        return self.store
