"""
Shared error handling for the GitHub profile proxy.

Every failure that leaves the core is one of the ``ProxyError`` subclasses
below. Transport exceptions are converted at the upstream boundary and never
reach callers.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Normalized error taxonomy."""

    RATE_LIMITED = "RateLimited"
    UPSTREAM_ERROR = "UpstreamError"
    NETWORK_ERROR = "NetworkError"
    VALIDATION_ERROR = "ValidationError"


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    success: bool = False
    error: str
    message: Optional[str] = None
    kind: Optional[str] = None
    retry_after: Optional[int] = None


class ProxyError(Exception):
    """Base exception for proxy services."""

    def __init__(
        self,
        kind: ErrorKind,
        status_code: int,
        error: str,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.kind = kind
        self.status_code = status_code
        self.error = error
        self.message = message
        self.retry_after = retry_after
        self.details = details or {}
        super().__init__(message or error)

    @property
    def retryable(self) -> bool:
        """Whether repeating the same request may succeed."""
        if self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.NETWORK_ERROR):
            return True
        if self.kind == ErrorKind.UPSTREAM_ERROR:
            return self.status_code >= 500
        return False

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.error,
            message=self.message,
            kind=self.kind.value,
            retry_after=self.retry_after,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Normalized ``{kind, http_status, message, retry_after}`` view."""
        payload: Dict[str, Any] = {
            "kind": self.kind.value,
            "http_status": self.status_code,
            "error": self.error,
            "message": self.message,
        }
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, error={self.error!r}, message={self.message!r})"


class RateLimitError(ProxyError):
    """Upstream quota exhausted; retry after the indicated reset."""

    def __init__(self, message: str, retry_after: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorKind.RATE_LIMITED,
            429,
            "GitHub API rate limit exceeded",
            message,
            retry_after=retry_after,
            details=details,
        )


class UpstreamServiceError(ProxyError):
    """Upstream returned a non-success response other than rate limiting."""

    def __init__(self, status_code: int, message: str = "GitHub API error", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.UPSTREAM_ERROR, status_code, message, message, details=details)


class NetworkError(ProxyError):
    """No response was received from upstream."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.NETWORK_ERROR, 500, "Network error", message, details=details)


class ValidationError(ProxyError):
    """Inbound request is missing or has an invalid parameter."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.VALIDATION_ERROR, 400, message, message, details=details)
