"""Error kinds raised by the LLM-facing components and the source fetchers."""

import enum
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

_RETRY_HINT = re.compile(r"retry in\s+([\d.]+)\s*s", re.IGNORECASE)


class ClassifierErrorKind(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    SAFETY_BLOCKED = "safety_blocked"
    INVALID_RESPONSE = "invalid_response"
    PROVIDER = "provider"


class ClassifierError(Exception):
    """Classification failure tagged with a closed kind.

    Callers branch on ``kind``; ``retry_after`` is only set for RATE_LIMITED.
    """

    def __init__(
        self,
        kind: ClassifierErrorKind,
        message: str,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.retry_after = retry_after

    @classmethod
    def rate_limited(cls, message: str, default_delay: int = 60) -> "ClassifierError":
        return cls(
            ClassifierErrorKind.RATE_LIMITED,
            message,
            retry_after=parse_retry_after(message, default_delay),
        )


class EmbeddingError(Exception):
    """Embedding generation failed or returned nothing."""


class SourceRateLimitedError(Exception):
    """A news source answered HTTP 429; try again after ``retry_after`` seconds."""

    def __init__(self, source: str, retry_after: int):
        super().__init__(f"{source} rate limited, retry after {retry_after}s")
        self.source = source
        self.retry_after = retry_after


def parse_retry_after_header(value: Optional[str], default: int = 60) -> int:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    value = (value or "").strip()
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return default
        if when is None:
            return default
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return max(1, math.ceil(seconds))


def parse_retry_after(message: Optional[str], default: int = 60) -> int:
    """Extract "retry in <seconds>s" from a provider message, rounded up."""
    if not message:
        return default
    match = _RETRY_HINT.search(message)
    if not match:
        return default
    try:
        seconds = float(match.group(1))
    except ValueError:
        return default
    return max(1, math.ceil(seconds))
