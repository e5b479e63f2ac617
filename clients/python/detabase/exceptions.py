"""Deta Base client exceptions."""


class DetaError(Exception):
    """Base exception for Deta Base errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class ConfigurationError(DetaError):
    """Project key missing from the environment or malformed."""

    pass


class NetworkError(DetaError):
    """Transport failure: DNS, TLS, connect or timeout."""

    pass


class AuthError(DetaError):
    """The service rejected the project key."""

    pass


class NotFound(DetaError):
    """No record with the requested key."""

    pass


class Conflict(DetaError):
    """A record with the same key already exists."""

    pass


class ValidationError(DetaError):
    """Request validation error.

    Raised locally for oversized or empty batches and malformed input, and
    for HTTP 400 answers from the service (duplicate keys in a batch,
    items over 400KB, requests over 16MB).
    """

    pass


class DecodeError(DetaError):
    """Response body is not JSON or lacks the expected fields."""

    pass


class ServiceError(DetaError):
    """The service failed with a 5xx or another unexpected status."""

    pass
