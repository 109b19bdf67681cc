"""Retry classification and a bounded retry loop for upstream calls."""

from __future__ import annotations

import enum
import logging
import random
import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Two attempts in total.
MAX_ATTEMPTS = 2

TRANSIENT_CODES = frozenset(
    {"timeout", "dns_failure", "connection_reset", "bad_response"}
)
SERVICE_UNAVAILABLE_STATUS = 503
FLIGHT_LIST_ERRORS = frozenset(
    {
        "TypeError: Cannot read properties of undefined (reading 'flightList')",
        "TypeError: Cannot read property 'flightList' of undefined",
    }
)


class Classification(str, enum.Enum):
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class UpstreamError(RuntimeError):
    """Error talking to the award search API."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        body: object = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.body = body


def classify(error: BaseException) -> Classification:
    """Return whether *error* is worth a second attempt."""
    if not isinstance(error, UpstreamError):
        return Classification.TERMINAL
    if error.code in TRANSIENT_CODES:
        return Classification.RETRYABLE
    if error.status == SERVICE_UNAVAILABLE_STATUS:
        return Classification.RETRYABLE
    if isinstance(error.body, dict) and error.body.get("error") in FLIGHT_LIST_ERRORS:
        return Classification.RETRYABLE
    return Classification.TERMINAL


def call_with_retry(
    func: Callable[[], T],
    *,
    label: str,
    attempts: int = MAX_ATTEMPTS,
    delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *func* until it succeeds, fails terminally or runs out of attempts.

    The last error is re-raised; the caller decides how to degrade.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = func()
        except UpstreamError as exc:
            verdict = classify(exc)
            will_retry = verdict is Classification.RETRYABLE and attempt < attempts
            logger.warning(
                "error getting %s attempt=%d code=%s status=%s will_retry=%s: %s",
                label,
                attempt,
                exc.code,
                exc.status,
                will_retry,
                exc,
            )
            if not will_retry:
                raise
            if delay > 0:
                sleep(random.uniform(0, delay))
            continue
        if attempt > 1:
            logger.info("retry success %s", label)
        return result
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = [
    "MAX_ATTEMPTS",
    "Classification",
    "UpstreamError",
    "classify",
    "call_with_retry",
]
