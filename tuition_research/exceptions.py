"""
Typed failures raised by the tuition research pipeline.

Only genuinely exceptional conditions live here. "Program not found" and
verification disagreement are ordinary results, not exceptions.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for pipeline failures."""


class InvalidRequestError(PipelineError):
    """School/program input failed validation before any upstream call."""


class FatalUpstreamError(PipelineError):
    """
    An upstream AI call failed for good.

    Raised by the backoff executor when an error is not retryable, or when
    the retry budget is exhausted. Carries the attempt count and the last
    cause so callers can record why no data exists.
    """

    def __init__(
        self,
        label: str,
        attempts: int,
        cause: BaseException,
        transient_kind: Optional[str] = None,
    ):
        self.label = label
        self.attempts = attempts
        self.cause = cause
        self.transient_kind = transient_kind
        reason = "retries exhausted" if transient_kind else "non-retryable error"
        super().__init__(
            f"{label} failed after {attempts} attempt(s) ({reason}): "
            f"{type(cause).__name__}: {cause}"
        )

    @property
    def retries_exhausted(self) -> bool:
        """True when the last error was transient and the budget ran out."""
        return self.transient_kind is not None
