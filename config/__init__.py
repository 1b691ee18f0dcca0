"""Configuration management package for frontcli

Client credential helpers live in ``config.credentials``; they are not
re-exported here because ``settings`` imports this package while loading.
"""

from .loader import ConfigLoader, get_config_loader

__all__ = [
    "ConfigLoader",
    "get_config_loader",
]
