"""Tests for two-phase grounded fact extraction and reply parsing."""

import pytest
from conftest import (
    PROGRAM,
    SCHOOL,
    FakeSearchClient,
    TransientError,
    curriculum_reply,
    financial_reply,
    grounded,
    make_result,
    not_found_reply,
)
from tuition_research.agents.gemini_search import locate_json_object
from tuition_research.llm.schemas.extraction import (
    CritiqueReply,
    FinancialFactsPayload,
    ParsedFacts,
    ParseFailure,
    parse_model_reply,
)
from tuition_research.models.extraction import ExtractionStatus
from tuition_research.models.grounding import GroundingChunk
from tuition_research.services.fact_extractor import FactExtractor, build_search_query

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _extractor(responses, executor, config):
    client = FakeSearchClient(responses)
    return FactExtractor(client, executor, config), client


# ─── Reply parsing ───────────────────────────────────────────────────────────


class TestParseModelReply:
    """Locating and validating the JSON object in a model reply."""

    def test_markdown_fence(self):
        text = 'Here you go:\n```json\n{"tuition_amount": "$76,000", "status": "Success"}\n```'
        parsed = parse_model_reply(text, FinancialFactsPayload)
        assert isinstance(parsed, ParsedFacts)
        assert parsed.payload.tuition_amount == "$76,000"

    def test_prose_around_object(self):
        text = 'Based on the page, {"tuition_amount": "$76,000", "remarks": "uses {braces}"} is the answer.'
        parsed = parse_model_reply(text, FinancialFactsPayload)
        assert parsed.payload.remarks == "uses {braces}"

    def test_truncated_object_is_failure(self):
        text = '{"tuition_amount": "$76,000", "status": "Success", "remarks": "Fees are'
        parsed = parse_model_reply(text, FinancialFactsPayload)
        assert isinstance(parsed, ParseFailure)
        assert parsed.reason == "truncated reply"
        assert parsed.raw_text == text

    def test_locate_reports_repair(self):
        json_text, repaired = locate_json_object('{"a": 1, "b": {"c": 2}, "d": "cut')
        assert json_text == '{"a": 1, "b": {"c": 2}}'
        assert repaired
        assert locate_json_object('noise {"a": 1} noise') == ('{"a": 1}', False)

    def test_no_object(self):
        parsed = parse_model_reply("I could not find tuition for this program.", FinancialFactsPayload)
        assert isinstance(parsed, ParseFailure)
        assert parsed.raw_text == "I could not find tuition for this program."

    def test_empty(self):
        assert parse_model_reply("", FinancialFactsPayload).reason == "empty response"

    def test_coercions(self):
        text = '{"tuition_amount": 76000, "total_credits": 48.0, "program_length_months": "24 months", "is_stem": "yes", "status": "not_found"}'
        payload = parse_model_reply(text, FinancialFactsPayload).payload
        assert payload.tuition_amount == "76000"
        assert payload.total_credits == "48"
        assert payload.program_length_months == 24
        assert payload.is_stem is True
        assert payload.status == "Not Found"

    def test_critique_needs_boolean(self):
        parsed = parse_model_reply('{"source_supports_data": "maybe"}', CritiqueReply)
        assert isinstance(parsed, ParseFailure)
        assert "schema validation failed" in parsed.reason

    def test_locate_without_object(self):
        assert locate_json_object("[1, 2, 3]") == (None, False)


# ─── Phase A ──────────────────────────────────────────────────────────────────


class TestPhaseA:
    """Financial facts from the grounded reply."""

    def test_happy_path(self, executor, config):
        extractor, client = _extractor([grounded(financial_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        facts = outcome.facts
        assert facts.status == ExtractionStatus.SUCCESS
        assert facts.tuition_amount == "$76,000"
        assert facts.calculated_total_cost == "$76,800"
        assert facts.program_length_months == 36
        assert outcome.calls_made == 1
        assert outcome.response.has_grounding
        assert outcome.search_query == build_search_query(SCHOOL, PROGRAM)
        assert '"Example University" "Part-Time MBA"' in client.queries[0]

    def test_trailing_qualifier_stripped(self, executor, config):
        extractor, _ = _extractor([grounded(financial_reply(tuition_amount="$76,000 total"))], executor, config)
        assert extractor.extract(SCHOOL, PROGRAM).facts.tuition_amount == "$76,000"

    def test_bare_number_gets_dollar(self, executor, config):
        extractor, _ = _extractor([grounded(financial_reply(tuition_amount="76,000"))], executor, config)
        assert extractor.extract(SCHOOL, PROGRAM).facts.tuition_amount == "$76,000"

    def test_out_of_state_goes_to_remarks(self, executor, config):
        reply = financial_reply(out_of_state_tuition="98,000", remarks="Resident rate shown")
        extractor, _ = _extractor([grounded(reply)], executor, config)
        facts = extractor.extract(SCHOOL, PROGRAM).facts
        assert facts.tuition_amount == "$76,000"
        assert facts.remarks == "Resident rate shown. Out-of-state tuition: $98,000"

    def test_model_calculated_total_ignored(self, executor, config):
        reply = financial_reply(calculated_total_cost="$1")
        extractor, _ = _extractor([grounded(reply)], executor, config)
        assert extractor.extract(SCHOOL, PROGRAM).facts.calculated_total_cost == "$76,800"

    def test_not_found(self, executor, config):
        extractor, _ = _extractor([grounded(not_found_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.is_not_found
        assert outcome.facts.tuition_amount is None
        assert outcome.calls_made == 1

    def test_unparseable_reply_is_failed(self, executor, config):
        extractor, _ = _extractor([grounded("I could not find it.")], executor, config)
        facts = extractor.extract(SCHOOL, PROGRAM).facts
        assert facts.status == ExtractionStatus.FAILED
        assert facts.raw_response_text == "I could not find it."
        assert "Unparseable" in facts.error

    def test_truncated_reply_is_failed(self, executor, config):
        text = (
            '{"tuition_amount": "$76,000", "tuition_period": "per year", '
            '"academic_year": "2025-2026", "cost_per_credit": "$1,6'
        )
        extractor, _ = _extractor([grounded(text)], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        facts = outcome.facts
        assert facts.status == ExtractionStatus.FAILED
        assert facts.tuition_amount is None
        assert facts.raw_response_text == text
        assert "truncated reply" in facts.error
        assert outcome.calls_made == 1

    def test_fatal_error_is_failed_not_not_found(self, executor, config):
        extractor, _ = _extractor([ValueError("API key not valid")], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.facts.status == ExtractionStatus.FAILED
        assert "phase_a_search" in outcome.facts.error
        assert outcome.calls_made == 1

    def test_transient_error_retried(self, executor, config):
        extractor, _ = _extractor([TransientError(), grounded(financial_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.facts.status == ExtractionStatus.SUCCESS
        assert outcome.calls_made == 2

    def test_cost_accumulates(self, executor, config):
        reply = financial_reply(total_credits=None)
        extractor, _ = _extractor(
            [grounded(reply, cost_usd=0.002), grounded(curriculum_reply(), cost_usd=0.001)], executor, config
        )
        assert extractor.extract(SCHOOL, PROGRAM).cost_usd == pytest.approx(0.003)


# ─── Source retry ────────────────────────────────────────────────────────────


class TestSourceRetry:
    """One extra call when a successful answer cites nothing."""

    def test_grounded_retry_replaces_response(self, executor, config):
        extractor, client = _extractor(
            [make_result(financial_reply()), grounded(financial_reply(tuition_amount="$80,000"))], executor, config
        )
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.source_retry_used
        assert outcome.response.has_grounding
        assert outcome.calls_made == 2
        # Facts come from the first answer, sources from the second
        assert outcome.facts.tuition_amount == "$76,000"
        assert "cited no sources" in client.queries[1]

    def test_placeholder_chunks_are_not_sources(self, executor, config):
        placeholders = make_result(financial_reply(), chunks=[GroundingChunk(), GroundingChunk()])
        extractor, _ = _extractor([placeholders, grounded(financial_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert not placeholders.has_grounding
        assert outcome.source_retry_used
        assert outcome.calls_made == 2
        assert outcome.response.has_grounding

    def test_ungrounded_retry_keeps_first_response(self, executor, config):
        first = make_result(financial_reply())
        extractor, _ = _extractor([first, make_result(financial_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.response is first
        assert outcome.facts.status == ExtractionStatus.SUCCESS

    def test_no_retry_for_not_found(self, executor, config):
        extractor, _ = _extractor([make_result(not_found_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert not outcome.source_retry_used
        assert outcome.calls_made == 1


# ─── Phase B ──────────────────────────────────────────────────────────────────


class TestPhaseB:
    """Curriculum pass fills gaps only."""

    def test_fills_missing_credits(self, executor, config):
        phase_a = grounded(financial_reply(total_credits=None))
        phase_b = grounded(curriculum_reply(total_credits="48", program_length="2 years"))
        extractor, client = _extractor([phase_a, phase_b], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        facts = outcome.facts
        assert facts.total_credits == "48"
        assert facts.calculated_total_cost == "$76,800"
        # Phase A values are never overwritten
        assert facts.program_length == "3 years"
        assert outcome.calls_made == 2
        assert outcome.curriculum_response is phase_b
        assert "curriculum" in client.queries[1]

    def test_skipped_when_complete(self, executor, config):
        extractor, _ = _extractor([grounded(financial_reply())], executor, config)
        assert extractor.extract(SCHOOL, PROGRAM).curriculum_response is None

    def test_failure_keeps_phase_a(self, executor, config):
        extractor, _ = _extractor(
            [grounded(financial_reply(total_credits=None)), ValueError("invalid argument")], executor, config
        )
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.facts.status == ExtractionStatus.SUCCESS
        assert outcome.facts.tuition_amount == "$76,000"
        assert outcome.facts.total_credits is None

    def test_truncated_reply_keeps_phase_a(self, executor, config):
        phase_b = grounded('{"total_credits": "48", "program_length": "2 ye')
        extractor, _ = _extractor([grounded(financial_reply(total_credits=None)), phase_b], executor, config)
        facts = extractor.extract(SCHOOL, PROGRAM).facts
        assert facts.status == ExtractionStatus.SUCCESS
        assert facts.total_credits is None
        assert facts.program_length == "3 years"

    def test_calculated_total_becomes_tuition(self, executor, config):
        phase_a = grounded(financial_reply(tuition_amount=None, total_credits=None))
        extractor, _ = _extractor([phase_a, grounded(curriculum_reply())], executor, config)
        facts = extractor.extract(SCHOOL, PROGRAM).facts
        assert facts.status == ExtractionStatus.SUCCESS
        assert facts.tuition_amount == "$76,800"
        assert "calculated from cost per credit" in facts.remarks

    def test_no_tuition_anywhere_is_not_found(self, executor, config):
        phase_a = grounded(financial_reply(tuition_amount=None, cost_per_credit=None))
        extractor, _ = _extractor([phase_a, grounded(curriculum_reply())], executor, config)
        outcome = extractor.extract(SCHOOL, PROGRAM)
        assert outcome.is_not_found
        assert outcome.facts.remarks == "No tuition figure published on official sources"
