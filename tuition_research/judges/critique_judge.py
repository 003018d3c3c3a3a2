"""Critique Judge - does the cited text support the extracted facts?

LLM judge. Sends the facts, the deterministic check results and a sample of
the cited source text to the critique model and asks for a structured
verdict. The call runs under the backoff executor.

When the call fails or the reply cannot be parsed, the judge reports the
critique as unavailable. An unavailable critique never counts as support.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from ..exceptions import FatalUpstreamError
from ..llm.llm_client import LLMClient, get_prompt_version
from ..llm.schemas.extraction import CritiqueReply, ParseFailure, parse_model_reply
from ..utils.backoff import BackoffExecutor
from .base_judge import BaseJudge, JudgeType, VerificationContext
from .schemas.config import JudgeConfig
from .schemas.verdict import CritiqueResult, JudgeVerdict, Severity, ValidationIssue

if TYPE_CHECKING:
    from ..models.extraction import ExtractedFacts

logger = logging.getLogger(__name__)

_FACT_FIELDS = (
    "tuition_amount",
    "tuition_period",
    "academic_year",
    "cost_per_credit",
    "total_credits",
    "calculated_total_cost",
    "program_length",
    "actual_program_name",
    "is_stem",
    "additional_fees",
    "remarks",
)


class CritiqueJudge(BaseJudge):
    """Asks a model whether the cited source text states the extracted figures."""

    def __init__(
        self,
        config: JudgeConfig,
        llm_client: Optional[LLMClient] = None,
        executor: Optional[BackoffExecutor] = None,
    ):
        super().__init__(config, llm_client)
        self.executor = executor or BackoffExecutor()

    @property
    def name(self) -> str:
        return "critique"

    @property
    def judge_type(self) -> JudgeType:
        return JudgeType.LLM

    def validate(self, facts: ExtractedFacts, context: VerificationContext) -> JudgeVerdict:
        """Run the critique.

        The structured result is returned in ``metadata["critique"]``; use
        ``critique_from_verdict`` to read it back.
        """
        issues: list[ValidationIssue] = []
        prompt = self.format_prompt(self._substitutions(facts, context))
        client = self.get_llm_client()

        def call():
            return client.generate(
                prompt=prompt,
                json_schema=CritiqueReply.model_json_schema(),
                prompt_version=get_prompt_version("critique"),
            )

        try:
            response = self.executor.execute(call, "critique")
        except FatalUpstreamError as e:
            logger.error(f"Critique call failed: {e}")
            self.add_issue(
                issues,
                Severity.WARNING,
                "critique",
                f"Could not complete critique: {str(e.cause)[:100]}",
            )
            result = CritiqueResult(supports_facts=False, notes="Critique unavailable", available=False)
            return self._verdict(result, issues, cost_usd=0.0, prompt=prompt)

        parsed = parse_model_reply(response.text, CritiqueReply)
        if isinstance(parsed, ParseFailure):
            logger.warning(f"Critique reply unparseable: {parsed.reason}")
            self.add_issue(
                issues,
                Severity.WARNING,
                "critique",
                f"Critique reply unparseable: {parsed.reason}",
                evidence=parsed.raw_text[:200],
            )
            result = CritiqueResult(supports_facts=False, notes="Critique unavailable", available=False)
            return self._verdict(result, issues, cost_usd=response.cost_usd or 0.0, prompt=prompt)

        reply = parsed.payload
        result = CritiqueResult(
            supports_facts=reply.source_supports_data,
            notes=reply.notes,
            suggested_search_query=reply.alternative_search_query,
        )
        if not result.supports_facts:
            self.add_issue(
                issues,
                Severity.ERROR,
                "source_support",
                reply.notes or "Cited source does not support the extracted data",
            )
        return self._verdict(result, issues, cost_usd=response.cost_usd or 0.0, prompt=prompt)

    def _verdict(
        self, result: CritiqueResult, issues: list[ValidationIssue], cost_usd: float, prompt: str
    ) -> JudgeVerdict:
        validations = [result.notes] if result.supports_facts and result.notes else []
        return self.create_verdict(
            passed=result.supports_facts,
            issues=issues,
            validations=validations,
            cost_usd=cost_usd,
            metadata={"critique": result.to_dict(), "prompt_hash": self.compute_prompt_hash(prompt)},
        )

    def _substitutions(self, facts: ExtractedFacts, context: VerificationContext) -> dict[str, Any]:
        data = {name: getattr(facts, name) for name in _FACT_FIELDS if getattr(facts, name) is not None}
        checks = "\n".join(
            f"- {c.name}: {c.outcome.value} ({c.explanation})" for c in context.prior_checks
        ) or "- none"
        citations = "\n".join(f"- {c.title}: {c.url}" for c in context.citations) or "- none"
        source_content = context.raw_content[: self.config.critique_excerpt_chars] or "(no source text)"
        return {
            "school": context.school,
            "program": context.program,
            "facts": json.dumps(data, indent=2),
            "checks": checks,
            "citations": citations,
            "source_content": source_content,
        }


def critique_from_verdict(verdict: JudgeVerdict) -> CritiqueResult:
    """Rebuild the CritiqueResult a CritiqueJudge stored on its verdict."""
    data = verdict.metadata.get("critique")
    if not data:
        return CritiqueResult(supports_facts=False, notes="Critique unavailable", available=False)
    return CritiqueResult(
        supports_facts=bool(data.get("supports_facts")),
        notes=data.get("notes", ""),
        suggested_search_query=data.get("suggested_search_query"),
        available=bool(data.get("available", True)),
    )
