"""Unified send status returned for every transport."""

from __future__ import annotations

import re
from datetime import timedelta

from pydantic import BaseModel, Field

from fcmpush.exceptions import RetryAfterParseError

# Per-recipient errors worth retrying the whole batch for: legacy error
# names, and the firebase-admin canonical codes for the same conditions
RETRYABLE_ERRORS = frozenset({"Unavailable", "InternalServerError"})
RETRYABLE_ERROR_CODES = frozenset({"UNAVAILABLE", "INTERNAL"})

ERROR_KEY = "error"
ERROR_CODE_KEY = "error_code"

# Seconds per unit
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string such as "300ms", "1.5h" or "2h45m".

    Raises:
        RetryAfterParseError: If the string is empty or not a valid duration
    """
    text = value.strip()
    if not text:
        raise RetryAfterParseError("Invalid duration: empty string", context={"value": value})

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise RetryAfterParseError(f"Invalid duration: {value!r}", context={"value": value})
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0:
        raise RetryAfterParseError(f"Invalid duration: {value!r}", context={"value": value})

    return timedelta(seconds=sign * total)


class DispatchStatus(BaseModel):
    """
    Result of one send.

    ``ok`` is true only when at least one recipient succeeded and none
    failed. A mixed batch yields ``ok=False`` with a positive ``success``;
    callers that can use partial success must read ``results``.
    """

    ok: bool = False
    status_code: int = 0
    multicast_id: int = 0
    success: int = 0
    failure: int = 0
    canonical_ids: int = 0
    results: list[dict[str, str]] = Field(default_factory=list)
    message_id: str | None = None
    error: str | None = None
    retry_after: str = ""
    fallback_errors: list[str] = Field(default_factory=list)

    def is_timeout(self) -> bool:
        """
        Whether the batch is worth retrying.

        True on a 5xx status, or on a 200 where any recipient reported a
        retryable error: a legacy error name in ``error`` or an SDK
        canonical code in ``error_code``. The retry itself is the caller's
        decision.
        """
        if self.status_code >= 500:
            return True
        if self.status_code == 200:
            return any(
                result.get(ERROR_KEY) in RETRYABLE_ERRORS
                or result.get(ERROR_CODE_KEY) in RETRYABLE_ERROR_CODES
                for result in self.results
            )
        return False

    def get_retry_after_time(self) -> timedelta:
        """
        Convert the Retry-After hint to a timedelta.

        Raises:
            RetryAfterParseError: If the hint is absent or malformed
        """
        return parse_duration(self.retry_after)

    def format_results(self) -> str:
        """Human-readable summary for debugging."""
        lines = [
            f"Status Code   : {self.status_code}",
            f"Success       : {self.success}",
            f"Fail          : {self.failure}",
            f"Canonical_ids : {self.canonical_ids}",
            f"Topic MsgId   : {self.message_id or ''}",
            f"Topic Err     : {self.error or ''}",
        ]
        for i, result in enumerate(self.results):
            lines.append(f"Result({i})>")
            lines.extend(f"\t{key} : {value}" for key, value in result.items())
        if self.fallback_errors:
            lines.append("Fallback errors:")
            lines.extend(f"\t{err}" for err in self.fallback_errors)
        return "\n".join(lines)
