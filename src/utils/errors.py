"""
Portal Errors

Exception taxonomy for the workflow core.

- TransportError: network/backend failure, retried by the executor
- AuthError: missing or rejected credential, never retried
- CacheDegradationError: storage trouble, always absorbed by the cache
Guard violations are not exceptions; see src.schemas.process.GuardViolation.
"""

import asyncio

import aiohttp


class ServiceError(RuntimeError):
    """Raised when the backend reports a failure."""
    retryable = False

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(ServiceError):
    """
    Raised on network failures, timeouts and transient HTTP statuses
    (408, 429, 5xx). Safe to retry.
    """
    retryable = True


class AuthError(ServiceError):
    """
    Raised when no credential is available or the backend rejects it.
    The caller must send the user through re-authentication.
    """


class CacheDegradationError(RuntimeError):
    """Raised by storage when a cache entry cannot be read or written."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class StorageQuotaExceededError(CacheDegradationError):
    """Raised by a key/value store that is full."""

    def __init__(self, key: str, required_bytes: int, quota_bytes: int) -> None:
        super().__init__(
            f"Storage quota exceeded writing {key!r}: "
            f"{required_bytes} bytes needed, quota is {quota_bytes}",
            key=key,
        )
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


_RETRYABLE = (TransportError, asyncio.TimeoutError, aiohttp.ClientError, ConnectionError)


def is_retryable(error: BaseException) -> bool:
    """Whether a failed call may be attempted again."""
    if isinstance(error, ServiceError):
        return error.retryable
    return isinstance(error, _RETRYABLE)
