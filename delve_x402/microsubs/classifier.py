"""
Classification of request failures into microsub error kinds
Drives retry messaging and the fallback from microsub to fresh payment
"""

from typing import Any, List, Optional

import httpx
from pydantic import BaseModel

from delve_x402.errors import (
    MicrosubError,
    MicrosubExhausted,
    MicrosubExpired,
    MicrosubInvalid,
)
from delve_x402.microsubs.models import InvalidReason

# First match wins
_RULES = [
    (("expired", "expiration"), InvalidReason.EXPIRED),
    (("exhausted", "no queries remaining"), InvalidReason.EXHAUSTED),
    (("409", "conflict"), InvalidReason.EXHAUSTED),
    (("invalid", "not found"), InvalidReason.INVALID),
    (("microsub", "subscription"), InvalidReason.INVALID),
]

_MESSAGES = {
    InvalidReason.EXPIRED: "Your subscription has expired. Please make a new payment to continue.",
    InvalidReason.EXHAUSTED: "Your subscription has no queries remaining. Please make a new payment to continue.",
    InvalidReason.INVALID: "Your subscription is no longer valid. Please make a new payment to continue.",
}

_EXCEPTIONS = {
    InvalidReason.EXPIRED: MicrosubExpired,
    InvalidReason.EXHAUSTED: MicrosubExhausted,
    InvalidReason.INVALID: MicrosubInvalid,
}


class MicrosubErrorInfo(BaseModel):
    is_microsub_error: bool
    error_type: Optional[InvalidReason] = None


NOT_MICROSUB_RELATED = MicrosubErrorInfo(is_microsub_error=False)


def _response_text(response: httpx.Response) -> List[str]:
    parts = [str(response.status_code), response.reason_phrase or ""]
    try:
        parts.append(response.text)
    except httpx.ResponseNotRead:
        pass
    return parts


def _status_text(value: Any) -> List[str]:
    parts = [str(value)]
    if isinstance(value, int) and not isinstance(value, bool):
        parts.append(httpx.codes.get_reason_phrase(value))
    return parts


def _failure_text(failure: Any) -> str:
    """Flatten any failure value into one lowercase string"""
    parts: List[str] = []

    if isinstance(failure, str):
        parts.append(failure)
    elif isinstance(failure, httpx.HTTPStatusError):
        parts.append(str(failure))
        parts.extend(_response_text(failure.response))
    elif isinstance(failure, httpx.Response):
        parts.extend(_response_text(failure))
    elif isinstance(failure, dict):
        for key in ("error", "message", "detail"):
            value = failure.get(key)
            if value is not None:
                parts.append(str(value))
        for key in ("status_code", "status"):
            value = failure.get(key)
            if value is not None:
                parts.extend(_status_text(value))
    elif failure is not None:
        parts.append(str(failure))
        for attr in ("status_code", "status"):
            value = getattr(failure, attr, None)
            if value is not None:
                parts.extend(_status_text(value))

    return " ".join(parts).lower()


def is_microsub_error(failure: Any) -> MicrosubErrorInfo:
    """
    Classify a failure as expired, exhausted, invalid or not microsub related.

    Accepts strings, exceptions, dict error bodies and HTTP responses.

    Examples:
        >>> is_microsub_error("409 Conflict").error_type
        <InvalidReason.EXHAUSTED: 'exhausted'>
        >>> is_microsub_error("random failure").is_microsub_error
        False
    """
    if isinstance(failure, MicrosubError):
        return MicrosubErrorInfo(is_microsub_error=True, error_type=InvalidReason(failure.reason))

    text = _failure_text(failure)
    if not text:
        return NOT_MICROSUB_RELATED

    for needles, error_type in _RULES:
        if any(needle in text for needle in needles):
            return MicrosubErrorInfo(is_microsub_error=True, error_type=error_type)

    return NOT_MICROSUB_RELATED


def microsub_error_message(error_type: InvalidReason) -> str:
    return _MESSAGES[InvalidReason(error_type)]


def to_microsub_exception(info: MicrosubErrorInfo, message: Optional[str] = None) -> MicrosubError:
    if not info.is_microsub_error or info.error_type is None:
        raise ValueError("Failure is not microsub related")
    return _EXCEPTIONS[info.error_type](message or microsub_error_message(info.error_type))


def should_fallback_to_payment(failure: Any) -> bool:
    """True when a failed microsub request should be retried with a fresh payment"""
    return is_microsub_error(failure).is_microsub_error
