"""Judge system for verifying extracted tuition facts.

Two judge categories:

**Deterministic judges** - pure Python, rule-based, fully reproducible:
- ArithmeticJudge: Stated tuition vs cost per credit x credits
- SourceJudge: Citations come from the school's own domain
- CompletenessJudge: Weighted field coverage score
- PlausibilityJudge: Numeric bounds, academic year freshness

**LLM judges** - use an LLM for semantic validation, non-deterministic:
- CritiqueJudge: Does the cited source text state the extracted figures?

The Verifier (``judges.verifier``) runs them all and aggregates a
VerificationVerdict.

Usage:
    from tuition_research.judges.verifier import Verifier

    verdict = Verifier(JudgeConfig()).verify(facts, citations, school, program)
"""

from .schemas.config import JudgeConfig
from .schemas.verdict import (
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
