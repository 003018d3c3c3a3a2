"""Retry upstream AI calls with capped exponential backoff.

Every call to the grounded-search service or the critique model goes through
BackoffExecutor.execute(). Transient upstream errors (rate limits, outages,
deadlines, internal errors) are retried with a delay of

    min(max_delay, base * 2**(n-1)) + uniform[0, base)

before retry n. Anything else fails fast. Either way the caller sees a
FatalUpstreamError once the executor gives up.
"""

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from ..exceptions import FatalUpstreamError
from .logger import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransientKind(str, Enum):
    """Upstream failure kinds that are worth retrying."""

    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    INTERNAL = "internal"


_HTTP_CODES = {
    429: TransientKind.RATE_LIMITED,
    500: TransientKind.INTERNAL,
    502: TransientKind.UNAVAILABLE,
    503: TransientKind.UNAVAILABLE,
    504: TransientKind.DEADLINE_EXCEEDED,
}

_STATUS_STRINGS = {
    "RESOURCE_EXHAUSTED": TransientKind.RATE_LIMITED,
    "UNAVAILABLE": TransientKind.UNAVAILABLE,
    "DEADLINE_EXCEEDED": TransientKind.DEADLINE_EXCEEDED,
    "INTERNAL": TransientKind.INTERNAL,
}

# Message fragments seen on provider errors that carry no structured code
_MESSAGE_INDICATORS = [
    ("rate limit", TransientKind.RATE_LIMITED),
    ("ratelimit", TransientKind.RATE_LIMITED),
    ("too many requests", TransientKind.RATE_LIMITED),
    ("resource exhausted", TransientKind.RATE_LIMITED),
    ("quota exceeded", TransientKind.RATE_LIMITED),
    ("overloaded", TransientKind.UNAVAILABLE),
    ("service unavailable", TransientKind.UNAVAILABLE),
    ("temporarily unavailable", TransientKind.UNAVAILABLE),
    ("connection reset", TransientKind.UNAVAILABLE),
    ("connection error", TransientKind.UNAVAILABLE),
    ("deadline exceeded", TransientKind.DEADLINE_EXCEEDED),
    ("timed out", TransientKind.DEADLINE_EXCEEDED),
    ("timeout", TransientKind.DEADLINE_EXCEEDED),
    ("internal error", TransientKind.INTERNAL),
    ("internal server error", TransientKind.INTERNAL),
]


def classify_transient(error: BaseException) -> Optional[TransientKind]:
    """
    Decide whether an upstream error is transient.

    Checks, in order: an HTTP-style ``code``/``status_code`` attribute, a
    gRPC-style ``status`` string, builtin TimeoutError, then the message.

    Returns:
        The transient kind, or None when the error should not be retried
    """
    for attr in ("code", "status_code"):
        code = getattr(error, attr, None)
        if isinstance(code, int) and code in _HTTP_CODES:
            return _HTTP_CODES[code]

    status = getattr(error, "status", None)
    if isinstance(status, str) and status.upper() in _STATUS_STRINGS:
        return _STATUS_STRINGS[status.upper()]

    if isinstance(error, TimeoutError):
        return TransientKind.DEADLINE_EXCEEDED

    message = str(error).lower()
    for indicator, kind in _MESSAGE_INDICATORS:
        if indicator in message:
            return kind
    for status_name, kind in _STATUS_STRINGS.items():
        if status_name in str(error):
            return kind
    return None


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry budget and delay shape for one executor."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    jitter: bool = True

    @classmethod
    def immediate(cls, max_retries: int = 3) -> "BackoffPolicy":
        """Zero-delay policy, used in tests and dry runs."""
        return cls(max_retries=max_retries, base_delay_ms=0, max_delay_ms=0, jitter=False)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_ms(self, retry_number: int, jitter_fraction: float = 0.0) -> float:
        """Delay before retry ``retry_number`` (1-based)."""
        exponential = min(self.max_delay_ms, self.base_delay_ms * 2 ** (retry_number - 1))
        if not self.jitter:
            return float(exponential)
        return exponential + jitter_fraction * self.base_delay_ms


class BackoffExecutor:
    """Runs an operation under a BackoffPolicy.

    Args:
        policy: Retry budget and delay shape
        sleep: Sleep function (seconds); injectable for tests
        rng: Returns a float in [0, 1) for jitter; injectable for tests
    """

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._rng = rng

    def execute(self, operation: Callable[[], T], label: str) -> T:
        """
        Call ``operation`` until it succeeds, fails permanently, or the
        retry budget runs out.

        Args:
            operation: Zero-argument callable performing one upstream call
            label: Short name for logs and errors (e.g. "phase_a_search")

        Returns:
            Whatever the operation returned on its successful attempt

        Raises:
            FatalUpstreamError: Non-retryable error, or retries exhausted
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                result = operation()
            except Exception as e:
                kind = classify_transient(e)
                if kind is None:
                    log_event(
                        logger,
                        logging.ERROR,
                        "Upstream call failed (not retryable)",
                        label=label,
                        attempt=attempt,
                        outcome="fatal",
                        error=type(e).__name__,
                    )
                    raise FatalUpstreamError(label, attempt, e) from e

                if attempt >= self.policy.max_attempts:
                    log_event(
                        logger,
                        logging.ERROR,
                        "Upstream call failed (retries exhausted)",
                        label=label,
                        attempt=attempt,
                        outcome="exhausted",
                        kind=kind.value,
                    )
                    raise FatalUpstreamError(label, attempt, e, transient_kind=kind.value) from e

                delay_ms = self.policy.delay_ms(attempt, self._rng() if self.policy.jitter else 0.0)
                log_event(
                    logger,
                    logging.WARNING,
                    "Transient upstream error, backing off",
                    label=label,
                    attempt=attempt,
                    delay_ms=int(delay_ms),
                    outcome="retry",
                    kind=kind.value,
                )
                if delay_ms > 0:
                    self._sleep(delay_ms / 1000.0)
                continue

            log_event(logger, logging.DEBUG, "Upstream call succeeded", label=label, attempt=attempt, outcome="ok")
            return result
