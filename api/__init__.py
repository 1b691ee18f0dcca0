"""Front API access: errors, ID prefixes, circuit breaker and the HTTP client"""

from .errors import (
    AuthError,
    CircuitOpenError,
    FrontError,
    HTTPError,
    NotAuthenticatedError,
    NotFoundError,
    RateLimitError,
    UsageError,
    WrongResourceTypeError,
    exit_code_for,
)
from .idprefix import extract_prefix, resource_type, validate_id_prefix
from .circuit_breaker import CircuitBreaker, CircuitState
from .token_source import AccessTokenSource
from .client import FrontClient

__all__ = [
    "AuthError",
    "CircuitOpenError",
    "FrontError",
    "HTTPError",
    "NotAuthenticatedError",
    "NotFoundError",
    "RateLimitError",
    "UsageError",
    "WrongResourceTypeError",
    "exit_code_for",
    "extract_prefix",
    "resource_type",
    "validate_id_prefix",
    "CircuitBreaker",
    "CircuitState",
    "AccessTokenSource",
    "FrontClient",
]
