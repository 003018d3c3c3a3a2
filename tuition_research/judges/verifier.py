"""Verifier - runs the judges and aggregates a VerificationVerdict.

Deterministic judges (arithmetic, source, completeness, plausibility) run
first; the critique judge sees their results. Aggregation, highest priority
first:

0. Facts not Success: Low confidence. Not Found needs a human to confirm the
   absence (NEEDS_REVIEW); Failed recommends a retry. No judges run.
1. Every deterministic check passes and the critique affirms support:
   High / PASS.
2. The critique denies support: issues = failed checks + 1. One or two
   issues: Medium / NEEDS_REVIEW; three or more: Low / RETRY_RECOMMENDED.
3. Otherwise (a check failed, or the critique was unavailable or disabled):
   Medium / NEEDS_REVIEW.

Warn outcomes never count as failures.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..llm.llm_client import LLMClient
from ..models.extraction import ExtractionStatus
from ..utils.backoff import BackoffExecutor
from ..utils.logger import log_event
from .arithmetic_judge import ArithmeticJudge
from .base_judge import BaseJudge, VerificationContext
from .completeness_judge import CompletenessJudge, completeness_score
from .critique_judge import CritiqueJudge, critique_from_verdict
from .plausibility_judge import PlausibilityJudge
from .schemas.config import JudgeConfig
from .schemas.verdict import (
    CheckResult,
    ConfidenceTier,
    CritiqueResult,
    VerificationStatus,
    VerificationVerdict,
)
from .source_judge import SourceJudge

if TYPE_CHECKING:
    from ..models.extraction import Citation, ExtractedFacts

logger = logging.getLogger(__name__)

# Critique denial plus this many failed checks escalates to a retry
RETRY_ISSUE_THRESHOLD = 3


class Verifier:
    """
    Verifies extracted facts against their citations.

    Args:
        config: Judge thresholds and critique settings
        llm_client: Client for the critique judge (built lazily when None)
        executor: Backoff executor for the critique call
    """

    def __init__(
        self,
        config: Optional[JudgeConfig] = None,
        llm_client: Optional[LLMClient] = None,
        executor: Optional[BackoffExecutor] = None,
    ):
        self.config = config or JudgeConfig()
        self.deterministic_judges: list[BaseJudge] = [
            ArithmeticJudge(self.config),
            SourceJudge(self.config),
            CompletenessJudge(self.config),
            PlausibilityJudge(self.config),
        ]
        self.critique_judge: Optional[CritiqueJudge] = None
        if self.config.enable_critique_judge:
            self.critique_judge = CritiqueJudge(self.config, llm_client=llm_client, executor=executor)

    def verify(
        self,
        facts: ExtractedFacts,
        citations: list[Citation],
        school: str,
        program: str,
        raw_content: str = "",
    ) -> VerificationVerdict:
        """
        Verify one record's facts.

        Args:
            facts: Extracted facts
            citations: Citations backing the facts
            school: School name as requested
            program: Program name the facts were found under
            raw_content: Aggregate source text shown to the critique

        Returns:
            VerificationVerdict
        """
        if facts.status != ExtractionStatus.SUCCESS:
            verdict = self._unverifiable(facts)
            self._log(verdict, school, program, rule="not_success")
            return verdict

        context = VerificationContext(
            school=school,
            program=program,
            citations=list(citations),
            raw_content=raw_content,
        )

        checks: list[CheckResult] = []
        for judge in self.deterministic_judges:
            checks.append(judge.validate(facts, context).to_check())
        context.prior_checks = list(checks)

        critique: Optional[CritiqueResult] = None
        cost = 0.0
        if self.critique_judge is not None:
            critique_verdict = self.critique_judge.validate(facts, context)
            critique = critique_from_verdict(critique_verdict)
            cost = critique_verdict.cost_usd

        verdict, rule = self._aggregate(checks, critique, completeness_score(facts), cost)
        self._log(verdict, school, program, rule=rule)
        return verdict

    def _aggregate(
        self,
        checks: list[CheckResult],
        critique: Optional[CritiqueResult],
        score: int,
        cost: float,
    ) -> tuple[VerificationVerdict, str]:
        failed = [c for c in checks if c.failed]
        affirmed = critique is not None and critique.supports_facts
        denied = critique is not None and critique.available and not critique.supports_facts

        if not failed and affirmed:
            status, confidence, rule = VerificationStatus.PASS, ConfidenceTier.HIGH, "all_pass"
        elif denied:
            issues = len(failed) + 1
            if issues >= RETRY_ISSUE_THRESHOLD:
                status, confidence = VerificationStatus.RETRY_RECOMMENDED, ConfidenceTier.LOW
            else:
                status, confidence = VerificationStatus.NEEDS_REVIEW, ConfidenceTier.MEDIUM
            rule = "critique_denied"
        else:
            status, confidence = VerificationStatus.NEEDS_REVIEW, ConfidenceTier.MEDIUM
            rule = "checks_failed" if failed else "critique_unavailable"

        verdict = VerificationVerdict(
            status=status,
            confidence=confidence,
            checks=checks,
            critique=critique,
            completeness_score=score,
            reasoning=self._reasoning(checks, critique, status),
            cost_usd=cost,
        )
        return verdict, rule

    @staticmethod
    def _unverifiable(facts: ExtractedFacts) -> VerificationVerdict:
        if facts.status == ExtractionStatus.NOT_FOUND:
            return VerificationVerdict(
                status=VerificationStatus.NEEDS_REVIEW,
                confidence=ConfidenceTier.LOW,
                reasoning="Program not found on official sources; confirm it is not offered",
            )
        return VerificationVerdict(
            status=VerificationStatus.RETRY_RECOMMENDED,
            confidence=ConfidenceTier.LOW,
            reasoning=f"Extraction failed: {facts.error or 'unknown error'}",
        )

    @staticmethod
    def _reasoning(
        checks: list[CheckResult], critique: Optional[CritiqueResult], status: VerificationStatus
    ) -> str:
        parts = []
        failed = [c for c in checks if c.failed]
        warned = [c for c in checks if c.outcome.value == "warn"]
        if failed:
            parts.append("Failed: " + "; ".join(f"{c.name} ({c.explanation})" for c in failed))
        if warned:
            parts.append("Warnings: " + "; ".join(f"{c.name} ({c.explanation})" for c in warned))
        if critique is None:
            parts.append("AI critique disabled")
        elif not critique.available:
            parts.append("AI critique unavailable")
        elif critique.supports_facts:
            parts.append("AI critique: source supports the data")
        else:
            parts.append(f"AI critique: source does not support the data ({critique.notes or 'no notes'})")
        if status == VerificationStatus.PASS and not warned:
            parts.insert(0, "All checks passed")
        return ". ".join(parts)

    @staticmethod
    def _log(verdict: VerificationVerdict, school: str, program: str, rule: str) -> None:
        log_event(
            logger,
            logging.INFO,
            "Verification verdict",
            school=school,
            program=program,
            rule=rule,
            status=verdict.status.value,
            confidence=verdict.confidence.value,
            failed_checks=len(verdict.failed_checks),
        )
