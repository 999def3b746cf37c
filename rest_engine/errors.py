"""Error taxonomy for the REST execution engine.

Every component raises one of these. RestEngine catches all of them at its
public boundary and turns them into a Failure result, so callers never see
them unless they use the components directly.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine errors."""


class ConfigurationError(EngineError):
    """Raised when a descriptor or config file is malformed. No I/O has happened."""


class AuthenticationError(EngineError):
    """Raised when the token endpoint rejects a grant request (non-2xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TokenParseError(EngineError):
    """Raised when a token response is not JSON or has no access_token."""


class TransportError(EngineError):
    """Raised when a request fails (DNS, connection, timeout, TLS, bad URL)."""
