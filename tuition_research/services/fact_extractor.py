"""
Two-phase grounded fact extraction.

Phase A asks a search-grounded model for the tuition of record and fee
details from official school pages. Phase B runs only when per-credit cost or
credit count is still unknown and asks for curriculum facts, which fill gaps
without ever overwriting Phase A values.

Every upstream call goes through the BackoffExecutor. A Phase A call that
fails for good yields a Failed outcome (not "Not Found"); a Phase B failure
only costs the curriculum gaps.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from ..agents.gemini_search import SearchGroundingResult
from ..config import PipelineConfig
from ..constants import SCHOOL_NAME_MAX_LENGTH
from ..exceptions import FatalUpstreamError
from ..llm.schemas.extraction import (
    CurriculumFactsPayload,
    FinancialFactsPayload,
    ParseFailure,
    parse_model_reply,
)
from ..models.extraction import ExtractedFacts, ExtractionStatus
from ..utils.backoff import BackoffExecutor
from ..utils.logger import log_event
from ..utils.prompt_utils import sanitize_for_prompt
from ..utils.text_sanitizer import format_currency, parse_program_length_months, strip_trailing_qualifier

logger = logging.getLogger(__name__)

_OUT_OF_STATE = re.compile(r"out[\s-]*of[\s-]*state|non[\s-]*resident", re.IGNORECASE)

PHASE_A_PROMPT = """You are a research assistant collecting graduate program tuition from official university sources.

Find the tuition for the "{program}" program at "{school}".

SEARCH STRATEGY:
1. Search: {search_query}
2. Use only the school's official website (usually a .edu domain)
3. Look for the program's "Tuition & Fees" or "Cost of Attendance" page
4. IGNORE third-party sites: clearadmit, poets&quants, shiksha, collegechoice, usnews, bloomberg, fortune

EXTRACTION RULES:
- tuition_amount: TOTAL tuition for the whole program, formatted "$XX,XXX". Do not add the word "total".
- tuition_amount is tuition only. Put fees in additional_fees.
- If only a per-year or per-semester figure is published, give it and set tuition_period accordingly.
- Use the resident (in-state) rate. Put any out-of-state or non-resident rate in out_of_state_tuition.
- academic_year: prefer 2025-2026, otherwise the most recent year published.
- program_length_months: a number of months.
- If the program is not offered by this school or its tuition is not on the official site, set status to "Not Found" and leave the amounts null.
{extra_instructions}
Return ONLY a JSON object:
{{
  "tuition_amount": "$XX,XXX or null",
  "tuition_period": "full program | per year | per semester",
  "academic_year": "2025-2026",
  "cost_per_credit": "$X,XXX or null",
  "total_credits": "number or null",
  "program_length": "e.g. 2 years",
  "program_length_months": 24,
  "actual_program_name": "name used on the school's site",
  "is_stem": false,
  "additional_fees": "fees with amounts, or null",
  "out_of_state_tuition": "$XX,XXX or null",
  "remarks": "anything a reviewer should know, or null",
  "status": "Success | Not Found"
}}"""

SOURCE_RETRY_INSTRUCTIONS = """
IMPORTANT: Your previous answer cited no sources. Search the official site again and base every figure on a page you can cite.
"""

PHASE_B_PROMPT = """You are a research assistant collecting graduate program details from official university sources.

For the "{program}" program at "{school}", find the curriculum details on the school's official website (usually a .edu domain).
Ignore rankings and news sites.

Find:
- total_credits: credits required to graduate
- program_length: how long the program takes (e.g. "21 months", "2 years")
- program_length_months: the same as a number of months
- actual_program_name: the program's name as the school writes it
- is_stem: true only if the school states the program is STEM-designated

If the program is not offered by this school, set status to "Not Found".

Return ONLY a JSON object:
{{
  "total_credits": "number or null",
  "program_length": "text or null",
  "program_length_months": 24,
  "actual_program_name": "text or null",
  "is_stem": false,
  "status": "Success | Not Found"
}}"""


class SearchClient(Protocol):
    """Anything that answers a prompt with a search-grounded response."""

    def search(
        self,
        query: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.1,
        max_output_tokens: Optional[int] = None,
    ) -> SearchGroundingResult: ...


@dataclass
class ExtractionOutcome:
    """Facts from one extraction plus the responses they came from.

    ``response`` is the Phase A response whose grounding backs the facts (the
    source-seeking re-call replaces it when that one found sources).
    ``calls_made`` counts upstream calls, retries included.
    """

    facts: ExtractedFacts
    response: Optional[SearchGroundingResult] = None
    curriculum_response: Optional[SearchGroundingResult] = None
    calls_made: int = 0
    search_query: str = ""
    source_retry_used: bool = False
    cost_usd: float = 0.0
    program_name: str = ""

    @property
    def status(self) -> ExtractionStatus:
        return self.facts.status

    @property
    def is_not_found(self) -> bool:
        return self.facts.status == ExtractionStatus.NOT_FOUND


def build_search_query(school: str, program: str) -> str:
    """Search query suggested to the grounded model."""
    return f'"{school}" "{program}" tuition fees site:.edu'


class FactExtractor:
    """
    Extracts structured tuition facts for one school/program name.

    Args:
        search_client: Search-grounded model client (GeminiSearchClient)
        executor: Backoff executor wrapping every upstream call
        config: Pipeline configuration
    """

    def __init__(
        self,
        search_client: SearchClient,
        executor: Optional[BackoffExecutor] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.search_client = search_client
        self.config = config or PipelineConfig()
        self.executor = executor or BackoffExecutor(self.config.backoff_policy())

    def extract(self, school: str, program: str) -> ExtractionOutcome:
        """
        Run Phase A, the optional source-seeking re-call, and Phase B.

        Returns:
            ExtractionOutcome whose facts have status Success, Not Found or Failed
        """
        safe_school = sanitize_for_prompt(school, SCHOOL_NAME_MAX_LENGTH)
        safe_program = sanitize_for_prompt(program)
        search_query = build_search_query(safe_school, safe_program)
        outcome = ExtractionOutcome(
            facts=ExtractedFacts.failed("extraction did not run"),
            search_query=search_query,
            program_name=program,
        )

        # Phase A: financial facts
        prompt = PHASE_A_PROMPT.format(
            school=safe_school, program=safe_program, search_query=search_query, extra_instructions=""
        )
        try:
            response = self._search(prompt, "phase_a_search", outcome)
        except FatalUpstreamError as e:
            outcome.facts = ExtractedFacts.failed(error=str(e))
            log_event(logger, logging.ERROR, "Phase A failed", school=school, program=program, attempts=e.attempts)
            return outcome
        outcome.response = response

        parsed = parse_model_reply(response.text, FinancialFactsPayload)
        if isinstance(parsed, ParseFailure):
            outcome.facts = ExtractedFacts.failed(
                error=f"Unparseable Phase A reply: {parsed.reason}",
                raw_response_text=parsed.raw_text,
            )
            log_event(logger, logging.WARNING, "Phase A reply unparseable", school=school, program=program, reason=parsed.reason)
            return outcome

        facts = self._financial_facts(parsed.payload, parsed.raw_text)
        if facts.status != ExtractionStatus.SUCCESS:
            outcome.facts = facts
            log_event(logger, logging.INFO, "Phase A result", school=school, program=program, status=facts.status.value)
            return outcome

        if not response.has_grounding:
            self._retry_for_sources(prompt, school, safe_school, safe_program, search_query, outcome)

        # Phase B: curriculum gaps only
        if facts.missing_curriculum_fields():
            facts = self._fill_curriculum(facts, school, program, safe_school, safe_program, outcome)

        outcome.facts = self._finalize(facts)
        log_event(
            logger,
            logging.INFO,
            "Extraction complete",
            school=school,
            program=program,
            status=outcome.facts.status.value,
            calls=outcome.calls_made,
            sources=outcome.response.source_count if outcome.response else 0,
        )
        return outcome

    def _search(self, prompt: str, label: str, outcome: ExtractionOutcome) -> SearchGroundingResult:
        def call() -> SearchGroundingResult:
            outcome.calls_made += 1
            return self.search_client.search(
                query=prompt,
                temperature=0.1,
                max_output_tokens=self.config.max_output_tokens,
            )

        response = self.executor.execute(call, label)
        outcome.cost_usd += response.cost_usd or 0.0
        return response

    def _retry_for_sources(
        self,
        prompt: str,
        school: str,
        safe_school: str,
        safe_program: str,
        search_query: str,
        outcome: ExtractionOutcome,
    ) -> None:
        """One extra Phase A call when the first answer came back without sources."""
        retry_prompt = PHASE_A_PROMPT.format(
            school=safe_school,
            program=safe_program,
            search_query=search_query,
            extra_instructions=SOURCE_RETRY_INSTRUCTIONS,
        )
        outcome.source_retry_used = True
        try:
            retry_response = self._search(retry_prompt, "phase_a_source_retry", outcome)
        except FatalUpstreamError as e:
            log_event(logger, logging.WARNING, "Source retry failed", school=school, attempts=e.attempts)
            return

        log_event(
            logger,
            logging.INFO,
            "Source retry",
            school=school,
            program=safe_program,
            sources=retry_response.source_count,
        )
        if retry_response.has_grounding:
            outcome.response = retry_response

    def _fill_curriculum(
        self,
        facts: ExtractedFacts,
        school: str,
        program: str,
        safe_school: str,
        safe_program: str,
        outcome: ExtractionOutcome,
    ) -> ExtractedFacts:
        prompt = PHASE_B_PROMPT.format(school=safe_school, program=safe_program)
        try:
            response = self._search(prompt, "phase_b_search", outcome)
        except FatalUpstreamError as e:
            log_event(logger, logging.WARNING, "Phase B failed, keeping Phase A facts", school=school, program=program, attempts=e.attempts)
            return facts
        outcome.curriculum_response = response

        parsed = parse_model_reply(response.text, CurriculumFactsPayload)
        if isinstance(parsed, ParseFailure):
            log_event(logger, logging.WARNING, "Phase B reply unparseable", school=school, program=program, reason=parsed.reason)
            return facts

        payload = parsed.payload
        if payload.status != "Success":
            return facts

        curriculum = ExtractedFacts(
            total_credits=payload.total_credits,
            program_length=payload.program_length,
            program_length_months=payload.program_length_months
            or parse_program_length_months(payload.program_length),
            actual_program_name=payload.actual_program_name,
            is_stem=payload.is_stem,
        )
        return facts.merged_with(curriculum)

    @staticmethod
    def _financial_facts(payload: FinancialFactsPayload, raw_text: str) -> ExtractedFacts:
        """Turn a Phase A payload into facts, moving non-resident rates to remarks."""
        if payload.status == "Not Found":
            return ExtractedFacts.not_found(remarks=payload.remarks)
        if payload.status == "Failed":
            return ExtractedFacts.failed(error="Model reported a failed lookup", raw_response_text=raw_text)

        remarks = [payload.remarks] if payload.remarks else []
        tuition = strip_trailing_qualifier(payload.tuition_amount)
        if tuition and _OUT_OF_STATE.search(tuition):
            remarks.append(f"Out-of-state tuition: {tuition}")
            tuition = None
        if payload.out_of_state_tuition:
            remarks.append(f"Out-of-state tuition: {format_currency(payload.out_of_state_tuition)}")

        return ExtractedFacts(
            tuition_amount=format_currency(tuition),
            tuition_period=payload.tuition_period,
            academic_year=payload.academic_year,
            cost_per_credit=format_currency(strip_trailing_qualifier(payload.cost_per_credit)),
            total_credits=payload.total_credits,
            program_length=payload.program_length,
            program_length_months=payload.program_length_months
            or parse_program_length_months(payload.program_length),
            actual_program_name=payload.actual_program_name,
            is_stem=payload.is_stem,
            additional_fees=payload.additional_fees,
            remarks=". ".join(remarks) if remarks else None,
            status=ExtractionStatus.SUCCESS,
        )

    @staticmethod
    def _finalize(facts: ExtractedFacts) -> ExtractedFacts:
        """Settle the tuition of record once both phases are in."""
        if facts.tuition_amount:
            return facts
        if facts.calculated_total_cost:
            note = "Tuition calculated from cost per credit x total credits"
            remarks = f"{facts.remarks}. {note}" if facts.remarks else note
            return facts.with_updates(
                tuition_amount=facts.calculated_total_cost,
                tuition_period=facts.tuition_period or "full program",
                remarks=remarks,
            )
        return ExtractedFacts.not_found(remarks=facts.remarks or "No tuition figure published on official sources")
