"""OAuth authorization-code flow for Front"""

from .authorization import build_authorization_url, create_state
from .callback_server import OAuthCallbackServer
from .flow import FlowState, OAuthFlow, parse_pasted_response
from .token_exchange import TokenResponse, exchange_code, refresh_access_token

__all__ = [
    "build_authorization_url",
    "create_state",
    "OAuthCallbackServer",
    "FlowState",
    "OAuthFlow",
    "parse_pasted_response",
    "TokenResponse",
    "exchange_code",
    "refresh_access_token",
]
