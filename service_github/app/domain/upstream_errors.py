"""
Mapping of upstream outcomes onto the normalized error taxonomy.

The functions here are pure: given an ``httpx.Response`` (or the transport
exception raised instead of one) and the current time, they return the
``ProxyError`` that callers will see. Nothing in this module raises.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

import httpx

from shared.errors import NetworkError, ProxyError, RateLimitError, UpstreamServiceError


T = TypeVar("T")

RATE_LIMIT_STATUSES = (403, 429)
DEFAULT_UPSTREAM_MESSAGE = "GitHub API error"
INVALID_PAYLOAD_MESSAGE = "Invalid JSON received from GitHub API"


@dataclass(frozen=True)
class UpstreamResult(Generic[T]):
    """Outcome of one upstream call: a value or a normalized error."""

    value: Optional[T] = None
    error: Optional[ProxyError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "UpstreamResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ProxyError) -> "UpstreamResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the normalized error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def _to_datetime(epoch: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def format_reset_time(reset_epoch: float, now: Optional[float] = None) -> str:
    """Wall-clock reset time, e.g. ``14:05:09 UTC``.

    An epoch outside the platform's datetime range renders as ``now``.
    """
    moment = _to_datetime(reset_epoch)
    if moment is None:
        moment = _to_datetime(time.time() if now is None else now)
    return moment.strftime("%H:%M:%S UTC")


def _int_header(response: httpx.Response, name: str) -> Optional[int]:
    raw = response.headers.get(name)
    if raw is None:
        return None
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return None


def _body_message(response: httpx.Response) -> Optional[str]:
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return None


def rate_limit_error(response: httpx.Response, now: Optional[float] = None) -> Optional[RateLimitError]:
    """Return a ``RateLimitError`` when the response signals quota exhaustion."""
    if response.status_code not in RATE_LIMIT_STATUSES:
        return None

    now = time.time() if now is None else now
    remaining = response.headers.get("x-ratelimit-remaining")
    reset_epoch = _int_header(response, "x-ratelimit-reset")

    if remaining is not None and remaining.strip() == "0":
        if reset_epoch is None:
            reset_epoch = int(now)
    else:
        # Secondary rate limits carry only Retry-After.
        retry_after = _int_header(response, "retry-after")
        if retry_after is None:
            return None
        reset_epoch = int(now) + retry_after

    if _to_datetime(reset_epoch) is None:
        reset_epoch = int(now)

    return RateLimitError(
        f"Rate limit will reset at {format_reset_time(reset_epoch, now)}",
        retry_after=max(0, int(reset_epoch - now)),
        details={
            "upstream_status": response.status_code,
            "reset_epoch": reset_epoch,
            "upstream_message": _body_message(response),
        },
    )


def normalize_response_error(response: httpx.Response, now: Optional[float] = None) -> ProxyError:
    """Map a non-success upstream response onto the taxonomy."""
    limited = rate_limit_error(response, now)
    if limited is not None:
        return limited

    message = _body_message(response) or DEFAULT_UPSTREAM_MESSAGE
    return UpstreamServiceError(
        response.status_code,
        message,
        details={"upstream_status": response.status_code},
    )


def normalize_transport_error(exc: Exception) -> NetworkError:
    """Map a failure where no response arrived onto ``NetworkError``."""
    message = str(exc) or type(exc).__name__
    return NetworkError(message, details={"exception": type(exc).__name__})


def invalid_payload_error(response: Optional[httpx.Response] = None) -> UpstreamServiceError:
    """A success status whose body could not be decoded or has the wrong shape."""
    return UpstreamServiceError(502, INVALID_PAYLOAD_MESSAGE)
