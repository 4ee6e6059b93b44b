"""
Error taxonomy for chainwatch.

Every failure carries a ``should_retry`` flag so the retry helper can
classify it without string matching.

Key patterns:
- FetchError subclasses cover the client layer (transport, body, status)
- ParseError / ExpiryResolutionError / DateArithmeticError are fatal for
  one target only; the batch keeps going
"""

from typing import Optional


class ChainwatchError(Exception):
    """Base exception for all chainwatch errors."""

    error_type = "unknown"

    def __init__(self, message: str, should_retry: bool = False):
        self.message = message
        self.should_retry = should_retry
        super().__init__(message)


class FetchError(ChainwatchError):
    """Base class for exchange client failures."""

    error_type = "fetch"


class TransportError(FetchError):
    """Network-layer failure (connect, read, DNS) or a retryable HTTP status."""

    error_type = "transport"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message, should_retry=True)


class NonJsonResponse(FetchError):
    """A 2xx response whose body is empty or not JSON shaped."""

    error_type = "non_json"

    def __init__(self, message: str, preview: str = "", should_retry: bool = True):
        self.preview = preview
        super().__init__(message, should_retry=should_retry)


class ClientError(FetchError):
    """Non-retryable 4xx response."""

    error_type = "client"

    def __init__(self, status: int, preview: str):
        self.status = status
        self.preview = preview
        super().__init__(f"HTTP {status}: {preview}", should_retry=False)


class RetriesExhausted(FetchError):
    """All attempts of a retry policy failed with retryable errors."""

    error_type = "retries_exhausted"

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts: {last_error}")


class FetchTimeout(FetchError):
    """Target did not complete before the batch deadline."""

    error_type = "timeout"

    def __init__(self, message: str = "Batch deadline reached before completion"):
        super().__init__(message)


class ParseError(ChainwatchError):
    """Response did not match the expected wire shape."""

    error_type = "parse"


class ExpiryResolutionError(ChainwatchError):
    """No candidate expiry date survived selection."""

    error_type = "expiry_resolution"


class DateArithmeticError(ChainwatchError):
    """Expiry date is already in the past."""

    error_type = "date_arithmetic"
