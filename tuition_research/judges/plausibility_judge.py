"""Plausibility Judge - numeric bounds for graduate business programs.

Deterministic. Each of tuition, cost per credit and credit count must fall
inside its configured range; every out-of-range value is its own failing
sub-check. An academic year older than last year only warns.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from .base_judge import BaseJudge, JudgeType, VerificationContext
from .schemas.verdict import JudgeVerdict, Severity, ValidationIssue

if TYPE_CHECKING:
    from ..models.extraction import ExtractedFacts

_FIELD_LABELS = {
    "tuition_amount": ("Tuition", "tuition_value", True),
    "cost_per_credit": ("Cost per credit", "cost_per_credit_value", True),
    "total_credits": ("Total credits", "total_credits_value", False),
}


class PlausibilityJudge(BaseJudge):
    """Flags values outside realistic ranges."""

    @property
    def name(self) -> str:
        return "plausibility"

    @property
    def judge_type(self) -> JudgeType:
        return JudgeType.DETERMINISTIC

    def validate(self, facts: ExtractedFacts, context: VerificationContext) -> JudgeVerdict:
        issues: list[ValidationIssue] = []
        validations: list[str] = []
        checked = 0

        for field_name, (label, attr, is_money) in _FIELD_LABELS.items():
            value = getattr(facts, attr)
            if value is None:
                continue
            checked += 1
            low, high = self.config.plausibility_bounds[field_name]
            shown = f"${value:,.0f}" if is_money else f"{value:g}"
            if low <= value <= high:
                validations.append(f"{label} {shown} within range")
            else:
                bounds = f"${low:,.0f}-${high:,.0f}" if is_money else f"{low:g}-{high:g}"
                self.add_issue(
                    issues,
                    Severity.ERROR,
                    field_name,
                    f"{label} {shown} outside plausible range {bounds}",
                    details={"value": value, "min": low, "max": high},
                )

        self._check_academic_year(facts, issues)

        if not checked and not issues:
            return self.skip("No numeric values to check")

        passed = not any(i.severity == Severity.ERROR for i in issues)
        return self.create_verdict(passed=passed, issues=issues, validations=validations)

    def _check_academic_year(self, facts: ExtractedFacts, issues: list[ValidationIssue]) -> None:
        if not facts.academic_year:
            return
        match = re.search(r"(20\d{2})", facts.academic_year)
        if not match:
            return
        current_year = self.config.current_year or datetime.now().year
        start_year = int(match.group(1))
        if start_year < current_year - 1:
            self.add_issue(
                issues,
                Severity.WARNING,
                "academic_year",
                f"Academic year {facts.academic_year} may be outdated",
            )
