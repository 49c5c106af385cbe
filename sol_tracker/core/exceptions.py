"""
Application-level exceptions.

RPC failures carry the JSON-RPC / HTTP code so the rate limiter can decide
what to retry; everything derives from TrackerError so the API layer can map
failures to responses in one place.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker errors."""


class ConfigError(TrackerError, ValueError):
    """Invalid or missing configuration value."""


class RpcError(TrackerError):
    """Remote RPC call failed (transport, HTTP status or JSON-RPC error object)."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code={self.code})"


class RateLimitedError(RpcError):
    """Remote signalled a rate limit (HTTP 429 or JSON-RPC rate-limit code)."""

    def __init__(
        self,
        message: str = "rate limited",
        *,
        code: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.retry_after = retry_after


class TransientRpcError(RpcError):
    """Timeout or 5xx; safe to retry with backoff."""


class MalformedResponseError(RpcError):
    """Response body was not valid JSON-RPC."""


class RetriesExhaustedError(RpcError):
    """Retryable failure persisted past the configured retry count."""

    def __init__(self, message: str, *, attempts: int, code: int | None = None) -> None:
        super().__init__(message, code=code)
        self.attempts = attempts


class PersistenceError(TrackerError):
    """Backing store could not be read or written."""


class TrackerUnavailableError(TrackerError):
    """No stored state and the first remote page failed; nothing to serve."""
