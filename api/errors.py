"""Typed error taxonomy for frontcli

Every failure that leaves the core is one of the ``FrontError`` subclasses
below. Each carries the structured data ``errfmt`` needs to render an
actionable message, and an ``exit_code`` for the CLI boundary.
"""

from typing import Optional

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_AUTH = 3
EXIT_NOT_FOUND = 4
EXIT_RATE_LIMIT = 5


class FrontError(Exception):
    """Base class for all frontcli errors"""
    exit_code = EXIT_ERROR


class HTTPError(FrontError):
    """Non-2xx response (or transport failure when status_code is 0)"""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: str = "",
        requested_id: str = "",
        expected_resource: str = "",
    ):
        self.status_code = status_code
        self.message = message
        self.details = details
        # ID used in the request and the resource kind the caller expected, for 404 hints
        self.requested_id = requested_id
        self.expected_resource = expected_resource
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message

    @property
    def exit_code(self) -> int:
        if self.status_code in (401, 403):
            return EXIT_AUTH
        if self.status_code == 404:
            return EXIT_NOT_FOUND
        if self.status_code == 429:
            return EXIT_RATE_LIMIT
        return EXIT_ERROR


class NotFoundError(HTTPError):
    """404 from the API"""

    def __init__(
        self,
        resource: str = "",
        id: str = "",
        details: str = "",
        expected_resource: str = "",
    ):
        self.resource = resource
        self.id = id
        super().__init__(
            404,
            "not found",
            details=details,
            requested_id=id,
            expected_resource=expected_resource or resource,
        )

    def __str__(self) -> str:
        resource = self.resource or "resource"
        if self.id:
            return f"{resource} '{self.id}' not found"
        return f"{resource} not found"


class CircuitOpenError(FrontError):
    """Raised without contacting the API while the circuit breaker is open"""

    def __init__(self, message: str = "circuit breaker is open: too many consecutive failures"):
        super().__init__(message)


class AuthError(FrontError):
    """Authentication with the API failed (401/403 or failed token refresh)"""
    exit_code = EXIT_AUTH

    def __init__(self, cause: object):
        self.cause = cause
        super().__init__(f"authentication error: {cause}")


class RateLimitError(FrontError):
    """429 from the API; never retried automatically"""
    exit_code = EXIT_RATE_LIMIT

    def __init__(self, retry_after: int = 0):
        self.retry_after = retry_after
        if retry_after > 0:
            message = f"rate limit exceeded, retry after {retry_after} seconds"
        else:
            message = "rate limit exceeded"
        super().__init__(message)


class WrongResourceTypeError(FrontError):
    """An ID of one resource kind was given where another kind was expected"""
    exit_code = EXIT_USAGE

    def __init__(self, expected_type: str, actual_type: str, id: str):
        self.expected_type = expected_type
        self.actual_type = actual_type
        self.id = id
        super().__init__(self.message())

    def message(self) -> str:
        return f"'{self.id}' is a {self.actual_type} ID, but a {self.expected_type} ID was expected"


class NotAuthenticatedError(FrontError):
    """No usable credentials: client not set up or no stored token"""
    exit_code = EXIT_AUTH

    def __init__(self, message: str = "not authenticated"):
        super().__init__(message)


class TokenNotFoundError(NotAuthenticatedError):
    """No refresh token stored for a (client, account) pair"""

    def __init__(self, client: str, account: Optional[str] = None):
        self.client = client
        self.account = account
        if account:
            message = f"no token stored for '{account}' (client '{client}')"
        else:
            message = f"no authenticated accounts for client '{client}'"
        super().__init__(message)


class UsageError(FrontError):
    """Invalid command-line usage or local configuration"""
    exit_code = EXIT_USAGE


class AuthorizationError(FrontError):
    """Base for failures of the interactive OAuth authorization flow"""
    exit_code = EXIT_AUTH


class AuthorizationTimeoutError(AuthorizationError):
    """The browser redirect did not arrive before the deadline"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"authorization timed out after {timeout:g} seconds")


class AuthorizationCanceledError(AuthorizationError):
    """The user interrupted the authorization flow"""

    def __init__(self, message: str = "authorization canceled"):
        super().__init__(message)


class AuthorizationDeniedError(AuthorizationError):
    """The authorization server redirected back with an error"""

    def __init__(self, error: str, description: str = ""):
        self.error = error
        self.description = description
        message = f"authorization denied: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)


class StateMismatchError(AuthorizationError):
    """The callback carried a state value other than the one we generated"""

    def __init__(self):
        super().__init__("state mismatch in OAuth callback; possible CSRF, code discarded")


class TokenExchangeError(AuthorizationError):
    """The token endpoint rejected a code or refresh token"""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


def exit_code_for(err: Optional[BaseException]) -> int:
    """Exit code for the CLI boundary; unknown exceptions map to 1"""
    if err is None:
        return EXIT_SUCCESS
    if isinstance(err, FrontError):
        return err.exit_code
    return EXIT_ERROR
