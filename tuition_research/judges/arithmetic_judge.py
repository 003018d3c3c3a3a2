"""Arithmetic Judge - stated tuition vs cost per credit x credits.

Deterministic. A gap up to ``arithmetic_tolerance`` (5%) passes; up to
``arithmetic_warn_tolerance`` (15%) only warns, since published totals often
fold in fees; anything larger fails. Skipped when an operand is missing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base_judge import BaseJudge, JudgeType, VerificationContext
from .schemas.verdict import JudgeVerdict, Severity, ValidationIssue

if TYPE_CHECKING:
    from ..models.extraction import ExtractedFacts


class ArithmeticJudge(BaseJudge):
    """Checks that tuition, cost per credit and credit count agree."""

    @property
    def name(self) -> str:
        return "arithmetic"

    @property
    def judge_type(self) -> JudgeType:
        return JudgeType.DETERMINISTIC

    def validate(self, facts: ExtractedFacts, context: VerificationContext) -> JudgeVerdict:
        tuition = facts.tuition_value
        cost = facts.cost_per_credit_value
        credits = facts.total_credits_value

        if not tuition or not cost or not credits:
            missing = [
                label
                for label, value in (("tuition", tuition), ("cost per credit", cost), ("total credits", credits))
                if not value
            ]
            return self.skip(f"Cannot verify calculation: missing {', '.join(missing)}")

        issues: list[ValidationIssue] = []
        validations: list[str] = []
        expected = cost * credits
        gap = abs(tuition - expected) / tuition
        metadata = {
            "tuition": tuition,
            "cost_per_credit": cost,
            "total_credits": credits,
            "expected_total": round(expected),
            "gap_pct": round(gap * 100, 2),
        }

        if gap <= self.config.arithmetic_tolerance:
            validations.append(
                f"Tuition ${tuition:,.0f} matches ${cost:,.0f} x {credits:g} credits = ${expected:,.0f}"
            )
        elif gap <= self.config.arithmetic_warn_tolerance:
            self.add_issue(
                issues,
                Severity.WARNING,
                "tuition_amount",
                f"Tuition ${tuition:,.0f} differs from ${cost:,.0f} x {credits:g} credits = ${expected:,.0f} "
                f"by {gap:.1%} (fees may be included)",
                details=metadata,
            )
        else:
            self.add_issue(
                issues,
                Severity.ERROR,
                "tuition_amount",
                f"Tuition ${tuition:,.0f} does not match ${cost:,.0f} x {credits:g} credits = ${expected:,.0f} "
                f"({gap:.1%} apart)",
                details=metadata,
            )

        # A calculated total that disagrees with the components means a stale value slipped through
        calculated = facts.calculated_total_value
        if calculated and abs(calculated - expected) / expected > self.config.calculated_total_tolerance:
            self.add_issue(
                issues,
                Severity.WARNING,
                "calculated_total_cost",
                f"Calculated total ${calculated:,.0f} disagrees with ${expected:,.0f}",
            )

        passed = not any(i.severity == Severity.ERROR for i in issues)
        return self.create_verdict(passed=passed, issues=issues, validations=validations, metadata=metadata)
