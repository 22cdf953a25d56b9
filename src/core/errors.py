from __future__ import annotations

from typing import Optional


class WaniKaniError(Exception):
    """Base error for the WaniKani data-access layer."""


class ValidationError(WaniKaniError):
    """Raised when user input is invalid."""


class AccessDeniedError(WaniKaniError):
    """Raised when an operation tries to touch storage outside its directory."""


class ExternalServiceError(WaniKaniError):
    """Raised when the WaniKani API (or the network in front of it) fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ExternalServiceError):
    """Raised on HTTP 401. The token is invalid or revoked; never retried."""


class ForbiddenError(ExternalServiceError):
    """Raised on HTTP 403, usually a subscription restriction; never retried."""


class RateLimitError(ExternalServiceError):
    """Raised when 429 responses outlast every retry and nothing is cached."""


class TransientError(ExternalServiceError):
    """Raised for 5xx responses and network failures once retries run out."""


class ApiError(ExternalServiceError):
    """Raised for any other non-successful response."""


class NotFoundError(ApiError):
    """Raised when a requested resource is not found."""


class CacheCorruptionError(WaniKaniError):
    """Raised internally when a stored cache entry cannot be decoded."""


class QuotaExceededError(WaniKaniError):
    """Raised by a storage backend when a write does not fit its quota."""
