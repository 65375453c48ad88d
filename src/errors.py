"""
Error taxonomy for LLM calls: retry only transient, fail fast on permanent.

This module is the single source of truth for what the transport retries.
Every error carries enough context (retry-after seconds or a readable reason)
for a caller to render a user-facing message without inspecting internals.
"""

from __future__ import annotations


class LLMClientError(Exception):
    """Base for LLM client errors."""

    retryable: bool = False


class LLMNotConfiguredError(LLMClientError):
    """No credential configured for the selected backend."""


class RateLimitedError(LLMClientError):
    """Backend answered 429, or local admission control denied the call."""

    retryable = True

    def __init__(
        self,
        message: str,
        retry_after_seconds: float = 60,
        from_backend: bool = False,
        explicit_retry_after: bool = False,
    ) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
        # Local denials surface immediately; only backend 429s go through the retry loop
        self.from_backend = from_backend
        # True when the backend sent a Retry-After header (the backoff honors it)
        self.explicit_retry_after = explicit_retry_after


class OverloadedError(LLMClientError):
    """Backend is temporarily out of capacity (529 / 503)."""

    retryable = True


class AuthenticationFailedError(LLMClientError):
    """Invalid or revoked credential (401 / 403); never retried."""


class UsageLimitExceededError(LLMClientError):
    """Tenant spend ceiling reached; terminate gracefully."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class TransportError(LLMClientError):
    """Timeout, connection failure or unexpected HTTP status."""

    def __init__(self, message: str, retryable: bool = True, status_code: int | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class OperationCancelledError(LLMClientError):
    """The caller cancelled the run via its CancellationToken."""


def is_retryable(exc: BaseException) -> bool:
    """True when the transport should try the call again."""
    if isinstance(exc, RateLimitedError):
        return exc.from_backend
    if isinstance(exc, LLMClientError):
        return exc.retryable
    return False
