"""Completeness Judge - weighted field coverage score.

Deterministic. Score (0-100) = 50 x share of required fields present
+ 35 x share of important fields present + 15 x share of optional fields
present. Any missing required field fails the check; missing important
fields only warn.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..constants import (
    COMPLETENESS_IMPORTANT_FIELDS,
    COMPLETENESS_OPTIONAL_FIELDS,
    COMPLETENESS_REQUIRED_FIELDS,
    COMPLETENESS_WEIGHTS,
)
from .base_judge import BaseJudge, JudgeType, VerificationContext
from .schemas.verdict import JudgeVerdict, Severity, ValidationIssue

if TYPE_CHECKING:
    from ..models.extraction import ExtractedFacts


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip()) and value.strip().lower() not in ("n/a", "not found", "unknown")
    return True


def completeness_score(facts: ExtractedFacts) -> int:
    """Weighted share of populated fields, 0-100."""
    score = 0.0
    for tier, names in (
        ("required", COMPLETENESS_REQUIRED_FIELDS),
        ("important", COMPLETENESS_IMPORTANT_FIELDS),
        ("optional", COMPLETENESS_OPTIONAL_FIELDS),
    ):
        present = sum(1 for name in names if _present(getattr(facts, name)))
        score += COMPLETENESS_WEIGHTS[tier] * present / len(names)
    return int(round(score))


class CompletenessJudge(BaseJudge):
    """Scores how many of the expected fields were extracted."""

    @property
    def name(self) -> str:
        return "completeness"

    @property
    def judge_type(self) -> JudgeType:
        return JudgeType.DETERMINISTIC

    def validate(self, facts: ExtractedFacts, context: VerificationContext) -> JudgeVerdict:
        issues: list[ValidationIssue] = []
        score = completeness_score(facts)
        missing_required = [n for n in COMPLETENESS_REQUIRED_FIELDS if not _present(getattr(facts, n))]
        missing_important = [n for n in COMPLETENESS_IMPORTANT_FIELDS if not _present(getattr(facts, n))]

        for name in missing_required:
            self.add_issue(issues, Severity.ERROR, name, f"Required field missing: {name}")
        if missing_important:
            self.add_issue(
                issues,
                Severity.WARNING,
                "important_fields",
                f"Missing: {', '.join(missing_important)}",
            )

        return self.create_verdict(
            passed=not missing_required,
            issues=issues,
            validations=[f"Completeness {score}/100"],
            metadata={"score": score},
        )
