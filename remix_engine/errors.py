"""Error taxonomy for the generation and personalization paths."""

from __future__ import annotations

from typing import Any


class RemixError(Exception):
    """Base exception for all remix errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(RemixError):
    """Caller supplied an empty or invalid prompt/request."""


class AuthError(RemixError):
    """No usable bearer credential for the gateway."""


class ConfigurationError(RemixError):
    """A call path is not configured (missing credential, bad reference image)."""


class TransportError(RemixError):
    """Timeout or retryable HTTP status on the wire."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        timed_out: bool = False,
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status = status
        self.timed_out = timed_out
        self.retryable = retryable


class GatewayError(RemixError):
    """Gateway retries exhausted."""

    def __init__(self, message: str, *, attempts: int, last_error: RemixError | None = None) -> None:
        super().__init__(message, {"attempts": attempts})
        self.attempts = attempts
        self.last_error = last_error


class ProviderAPIError(RemixError):
    """Non-retryable HTTP error (or malformed response) from either call path."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status = status
        self.provider = provider


class PersistenceError(RemixError):
    """Write to (or read from) the token backing store failed."""


def user_message(exc: BaseException) -> str:
    if isinstance(exc, ValidationError):
        return exc.message
    if isinstance(exc, ConfigurationError):
        return f"Generation is not configured: {exc.message}"
    if isinstance(exc, ProviderAPIError):
        if exc.status == 429:
            return "Rate limit exceeded. Please wait a moment and try again."
        if exc.status == 401:
            return "Authentication required. Please sign in."
        if exc.status:
            return f"Image generation failed ({exc.status}): {exc.message}"
        return f"Image generation failed: {exc.message}"
    if isinstance(exc, (GatewayError, TransportError)):
        return "Image generation service is currently unavailable. Please try again."
    if isinstance(exc, RemixError):
        return exc.message
    return f"Image generation failed: {exc}"
