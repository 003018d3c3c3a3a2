"""Judge system schemas - configuration and verdict types."""

from .config import JudgeConfig
from .verdict import (
    CheckOutcome,
    CheckResult,
    ConfidenceTier,
    CritiqueResult,
    JudgeVerdict,
    Severity,
    ValidationIssue,
    VerificationStatus,
    VerificationVerdict,
)

__all__ = [
    "JudgeConfig",
    "JudgeVerdict",
    "ValidationIssue",
    "Severity",
    "CheckOutcome",
    "CheckResult",
    "CritiqueResult",
    "ConfidenceTier",
    "VerificationStatus",
    "VerificationVerdict",
]
