"""
Render frontcli errors as actionable messages for the terminal.

Each error kind has one renderer. ``ERROR_RENDERERS`` is scanned in order and
the first entry whose class matches wins, so subclasses must be listed before
their bases.
"""

from typing import Callable, List, Optional, Tuple, Type

from api.errors import (
    AuthError,
    AuthorizationCanceledError,
    AuthorizationDeniedError,
    AuthorizationError,
    AuthorizationTimeoutError,
    CircuitOpenError,
    HTTPError,
    NotAuthenticatedError,
    RateLimitError,
    StateMismatchError,
    TokenExchangeError,
    UsageError,
    WrongResourceTypeError,
)
from api.idprefix import resource_type
from utils.storage import StorageError

RESOURCE_COMMANDS = {
    "conversation": "frontcli conv get",
    "message": "frontcli messages get",
    "comment": "frontcli comments get",
    "contact": "frontcli contacts get",
    "teammate": "frontcli teammates get",
    "tag": "frontcli tags get",
    "inbox": "frontcli inboxes get",
    "channel": "frontcli channels get",
}

LOGIN_HINT = "  Run 'frontcli auth login' to authenticate with Front.\n"
RATE_LIMIT_TIP = "  Tip: Use --limit flag to reduce result set size.\n"


def suggestion_for_resource(kind: str, id: str) -> str:
    """CLI command that fetches a resource of ``kind``, or '' for unknown kinds"""
    command = RESOURCE_COMMANDS.get(kind)
    if not command:
        return ""
    return f"{command} {id}"


def _wrong_type_lines(id: str, actual: str, expected: str) -> str:
    text = f"  '{id}' is a {actual} ID, but a {expected} ID was expected.\n\n"
    suggestion = suggestion_for_resource(actual, id)
    if suggestion:
        text += f"  Try: {suggestion}\n"
    return text


def wrong_id_type_hint(id: str, expected_resource: str) -> str:
    """Hint for a 404 caused by passing an ID of the wrong kind, or ''"""
    actual = resource_type(id)
    if not actual or actual == expected_resource:
        return ""
    return _wrong_type_lines(id, actual, expected_resource)


def _format_wrong_resource_type(err: WrongResourceTypeError) -> str:
    return "Error: Wrong ID type\n\n" + _wrong_type_lines(err.id, err.actual_type, err.expected_type)


def _format_auth(err: AuthError) -> str:
    return (
        "Error: Authentication failed\n\n"
        f"  {err.cause}\n\n"
        "  Try running 'frontcli auth login' to re-authenticate.\n"
    )


def _format_rate_limit(err: RateLimitError) -> str:
    text = "Error: Rate limit exceeded\n\n"
    if err.retry_after > 0:
        text += f"  Retry after {err.retry_after} seconds.\n"
    return text + RATE_LIMIT_TIP


def _format_circuit_open(err: CircuitOpenError) -> str:
    return (
        "Error: Service temporarily unavailable\n\n"
        "  Too many consecutive failures. Please wait and try again.\n"
    )


def _format_not_authenticated(err: NotAuthenticatedError) -> str:
    return (
        "Error: Not authenticated\n\n"
        + LOGIN_HINT
        + "\n"
        "  If you need to set up OAuth credentials first:\n"
        "    frontcli auth setup <client_id>\n"
    )


def _format_http(err: HTTPError) -> str:
    status = err.status_code

    if status == 0:
        text = "Error: Could not reach Front\n\n"
        if err.details:
            text += f"  {err.details}\n"
        return text + "  Check your network connection and try again.\n"

    if status == 401:
        return "Error: Not authenticated\n\n" + LOGIN_HINT

    if status == 403:
        return (
            "Error: Access denied (403)\n\n"
            "  You don't have permission to perform this action.\n"
            "  Check your account permissions in Front.\n"
        )

    if status == 404:
        text = "Error: Not found (404)\n\n"
        if err.details:
            text += f"  {err.details}\n\n"
        if err.requested_id and err.expected_resource:
            hint = wrong_id_type_hint(err.requested_id, err.expected_resource)
            if hint:
                return text + hint
        return text + "  The resource doesn't exist or you don't have access.\n"

    if status == 429:
        return "Error: Rate limit exceeded (429)\n\n  You've hit Front's API rate limit.\n" + RATE_LIMIT_TIP

    text = f"Error: {err.message} ({status})\n"
    if err.details:
        text += f"\n  {err.details}\n"
    return text


def _format_authorization_timeout(err: AuthorizationTimeoutError) -> str:
    return (
        "Error: Authorization timed out\n\n"
        f"  No authorization arrived within {err.timeout:g} seconds.\n"
        "  Run 'frontcli auth login' again, or add --manual to paste the redirect URL.\n"
    )


def _format_authorization_canceled(err: AuthorizationCanceledError) -> str:
    return "Error: Authorization canceled\n\n  No credentials were stored.\n"


def _format_authorization_denied(err: AuthorizationDeniedError) -> str:
    text = "Error: Authorization denied\n\n"
    text += f"  Front returned '{err.error}'"
    text += f": {err.description}\n" if err.description else ".\n"
    return text + "  Approve the request in the browser, or check the app's OAuth settings in Front.\n"


def _format_state_mismatch(err: StateMismatchError) -> str:
    return (
        "Error: Authorization failed (state mismatch)\n\n"
        "  The redirect did not belong to this login attempt, so the code was discarded.\n"
        "  Run 'frontcli auth login' again.\n"
    )


def _format_token_exchange(err: TokenExchangeError) -> str:
    return (
        "Error: Token exchange failed\n\n"
        f"  {err}\n\n"
        "  Check the client ID and secret, or run 'frontcli auth setup <client_id>' again.\n"
    )


def _format_authorization(err: AuthorizationError) -> str:
    return f"Error: Authorization failed\n\n  {err}\n"


def _format_usage(err: UsageError) -> str:
    return f"Error: {err}\n"


def _format_storage(err: StorageError) -> str:
    return (
        "Error: Credential storage failed\n\n"
        f"  {err}\n\n"
        "  Check that a system keyring is available and unlocked.\n"
    )


ERROR_RENDERERS: List[Tuple[Type[BaseException], Callable]] = [
    (WrongResourceTypeError, _format_wrong_resource_type),
    (AuthError, _format_auth),
    (RateLimitError, _format_rate_limit),
    (CircuitOpenError, _format_circuit_open),
    (NotAuthenticatedError, _format_not_authenticated),
    (HTTPError, _format_http),
    (AuthorizationTimeoutError, _format_authorization_timeout),
    (AuthorizationCanceledError, _format_authorization_canceled),
    (AuthorizationDeniedError, _format_authorization_denied),
    (StateMismatchError, _format_state_mismatch),
    (TokenExchangeError, _format_token_exchange),
    (AuthorizationError, _format_authorization),
    (UsageError, _format_usage),
    (StorageError, _format_storage),
]


def renderer_for(err: BaseException) -> Optional[Callable]:
    for error_class, renderer in ERROR_RENDERERS:
        if isinstance(err, error_class):
            return renderer
    return None


def format_error(err: Optional[BaseException]) -> str:
    """
    Format an error into a user-friendly message with actionable suggestions.

    Args:
        err: Any exception; None renders as ''

    Returns:
        Multi-line message: a title, a blank line, then indented details
    """
    if err is None:
        return ""
    renderer = renderer_for(err)
    if renderer is None:
        return f"Error: {err}"
    return renderer(err)
