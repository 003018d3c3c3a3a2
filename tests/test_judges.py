"""Tests for the verification judges and the Verifier's aggregation rules."""

import pytest
from conftest import OFFICIAL_EXCERPT, OFFICIAL_URL, PROGRAM, SCHOOL, FakeLLMClient, TransientError, denies, supports
from tuition_research.judges.arithmetic_judge import ArithmeticJudge
from tuition_research.judges.base_judge import VerificationContext
from tuition_research.judges.completeness_judge import CompletenessJudge, completeness_score
from tuition_research.judges.critique_judge import CritiqueJudge, critique_from_verdict
from tuition_research.judges.plausibility_judge import PlausibilityJudge
from tuition_research.judges.schemas.config import JudgeConfig
from tuition_research.judges.schemas.verdict import (
    CheckOutcome,
    ConfidenceTier,
    CritiqueResult,
    VerificationStatus,
    VerificationVerdict,
)
from tuition_research.judges.source_judge import SourceJudge
from tuition_research.judges.verifier import Verifier
from tuition_research.models.extraction import Citation, ExtractedFacts

# ─── Helpers ──────────────────────────────────────────────────────────────────


@pytest.fixture
def judge_config():
    return JudgeConfig(current_year=2025)


def _facts(**overrides) -> ExtractedFacts:
    """Complete, consistent facts for the canonical program."""
    data = dict(
        tuition_amount="$76,000",
        tuition_period="full program",
        academic_year="2025-2026",
        cost_per_credit="$1,600",
        total_credits="48",
        program_length="3 years",
        is_stem=False,
        additional_fees="$500 per term",
    )
    data.update(overrides)
    return ExtractedFacts(**data)


def _citation(url=OFFICIAL_URL, title="Tuition & Fees") -> Citation:
    return Citation(title=title, url=url, excerpt=OFFICIAL_EXCERPT)


def _context(*citations) -> VerificationContext:
    return VerificationContext(
        school=SCHOOL,
        program=PROGRAM,
        citations=list(citations) if citations else [_citation()],
        raw_content=OFFICIAL_EXCERPT,
    )


# ─── ArithmeticJudge ─────────────────────────────────────────────────────────


class TestArithmeticJudge:
    """Tuition vs cost per credit x credits."""

    def test_within_tolerance(self, judge_config):
        verdict = ArithmeticJudge(judge_config).validate(_facts(), _context())
        assert verdict.outcome == CheckOutcome.PASS
        assert verdict.metadata["expected_total"] == 76_800

    def test_moderate_gap_warns(self, judge_config):
        verdict = ArithmeticJudge(judge_config).validate(_facts(tuition_amount="$70,000"), _context())
        assert verdict.outcome == CheckOutcome.WARN

    def test_large_gap_fails(self, judge_config):
        verdict = ArithmeticJudge(judge_config).validate(_facts(tuition_amount="$50,000"), _context())
        assert verdict.outcome == CheckOutcome.FAIL
        assert "does not match" in verdict.explanation()

    def test_skipped_without_operands(self, judge_config):
        verdict = ArithmeticJudge(judge_config).validate(_facts(total_credits=None), _context())
        assert verdict.outcome == CheckOutcome.SKIP
        assert verdict.to_check().explanation == "Cannot verify calculation: missing total credits"

    def test_tolerance_configurable(self):
        strict = JudgeConfig(arithmetic_tolerance=0.001, arithmetic_warn_tolerance=0.005)
        verdict = ArithmeticJudge(strict).validate(_facts(), _context())
        assert verdict.outcome == CheckOutcome.FAIL


# ─── SourceJudge ─────────────────────────────────────────────────────────────


class TestSourceJudge:
    """Citation domains."""

    def test_official_domain(self, judge_config):
        assert SourceJudge(judge_config).validate(_facts(), _context()).outcome == CheckOutcome.PASS

    def test_official_beats_aggregator(self, judge_config):
        context = _context(_citation("https://poetsandquants.com/mba"), _citation())
        assert SourceJudge(judge_config).validate(_facts(), context).outcome == CheckOutcome.PASS

    def test_aggregator_only_fails(self, judge_config):
        verdict = SourceJudge(judge_config).validate(_facts(), _context(_citation("https://poetsandquants.com/mba")))
        assert verdict.outcome == CheckOutcome.FAIL
        assert verdict.explanation() == "Only third-party sources cited: poetsandquants.com"

    def test_other_edu_warns(self, judge_config):
        verdict = SourceJudge(judge_config).validate(_facts(), _context(_citation("https://www.otherstate.edu/mba")))
        assert verdict.outcome == CheckOutcome.WARN

    def test_unresolved_redirect_with_matching_title_warns(self, judge_config):
        citation = _citation("https://vertexaisearch.cloud.google.com/grounding-api-redirect/x", title="example.edu")
        assert SourceJudge(judge_config).validate(_facts(), _context(citation)).outcome == CheckOutcome.WARN

    def test_news_site_named_after_school_warns(self, judge_config):
        context = VerificationContext(
            school="Washington University in St. Louis",
            program=PROGRAM,
            citations=[_citation("https://www.washingtonpost.com/education/2025/mba-costs")],
        )
        verdict = SourceJudge(judge_config).validate(_facts(), context)
        assert verdict.outcome == CheckOutcome.WARN
        assert verdict.metadata["official"] == []
        assert verdict.metadata["plausible"] == ["washingtonpost.com"]

    def test_matching_academic_domain_is_official(self, judge_config):
        context = VerificationContext(
            school="Washington University in St. Louis",
            program=PROGRAM,
            citations=[
                _citation("https://www.washingtonpost.com/education/2025/mba-costs"),
                _citation("https://olin.wustl.edu/mba/tuition"),
                _citation("https://business.washington.edu/mba/tuition"),
            ],
        )
        verdict = SourceJudge(judge_config).validate(_facts(), context)
        assert verdict.outcome == CheckOutcome.PASS
        assert verdict.metadata["official"] == ["business.washington.edu"]

    def test_no_citations_fails(self, judge_config):
        context = VerificationContext(school=SCHOOL, program=PROGRAM, citations=[])
        verdict = SourceJudge(judge_config).validate(_facts(), context)
        assert verdict.outcome == CheckOutcome.FAIL
        assert verdict.explanation() == "No sources cited"


# ─── CompletenessJudge ───────────────────────────────────────────────────────


class TestCompletenessJudge:
    """Weighted coverage."""

    def test_score(self):
        # 50 required + 35 important + 15 x 2/3 optional (remarks missing)
        assert completeness_score(_facts()) == 95

    def test_complete_passes(self, judge_config):
        verdict = CompletenessJudge(judge_config).validate(_facts(), _context())
        assert verdict.outcome == CheckOutcome.PASS
        assert verdict.metadata["score"] == 95

    def test_missing_required_fails(self, judge_config):
        verdict = CompletenessJudge(judge_config).validate(_facts(academic_year=None), _context())
        assert verdict.outcome == CheckOutcome.FAIL
        assert verdict.metadata["score"] == 78

    def test_missing_important_warns(self, judge_config):
        verdict = CompletenessJudge(judge_config).validate(_facts(program_length=None), _context())
        assert verdict.outcome == CheckOutcome.WARN


# ─── PlausibilityJudge ───────────────────────────────────────────────────────


class TestPlausibilityJudge:
    """Numeric bounds and academic year freshness."""

    def test_in_range(self, judge_config):
        assert PlausibilityJudge(judge_config).validate(_facts(), _context()).outcome == CheckOutcome.PASS

    def test_tuition_too_low(self, judge_config):
        verdict = PlausibilityJudge(judge_config).validate(_facts(tuition_amount="$500"), _context())
        assert verdict.outcome == CheckOutcome.FAIL
        assert verdict.errors[0].field == "tuition_amount"

    def test_each_bound_is_its_own_issue(self, judge_config):
        verdict = PlausibilityJudge(judge_config).validate(
            _facts(cost_per_credit="$20", total_credits="400"), _context()
        )
        assert {i.field for i in verdict.errors} == {"cost_per_credit", "total_credits"}

    def test_old_academic_year_warns(self, judge_config):
        verdict = PlausibilityJudge(judge_config).validate(_facts(academic_year="2019-2020"), _context())
        assert verdict.outcome == CheckOutcome.WARN

    def test_nothing_to_check(self, judge_config):
        facts = ExtractedFacts(tuition_period="full program")
        assert PlausibilityJudge(judge_config).validate(facts, _context()).outcome == CheckOutcome.SKIP


# ─── CritiqueJudge ───────────────────────────────────────────────────────────


class TestCritiqueJudge:
    """LLM critique under the backoff executor."""

    def test_affirms(self, judge_config, executor):
        llm = FakeLLMClient([supports()])
        verdict = CritiqueJudge(judge_config, llm_client=llm, executor=executor).validate(_facts(), _context())
        critique = critique_from_verdict(verdict)
        assert critique.supports_facts and critique.available
        assert verdict.passed
        assert verdict.cost_usd == pytest.approx(0.0005)
        prompt = llm.prompts[0]
        assert SCHOOL in prompt and "$76,000" in prompt and OFFICIAL_URL in prompt

    def test_prompt_includes_prior_checks(self, judge_config, executor):
        llm = FakeLLMClient([supports()])
        context = _context()
        context.prior_checks = [ArithmeticJudge(judge_config).validate(_facts(), context).to_check()]
        CritiqueJudge(judge_config, llm_client=llm, executor=executor).validate(_facts(), context)
        assert "- arithmetic: pass" in llm.prompts[0]

    def test_denies(self, judge_config, executor):
        llm = FakeLLMClient([denies(query='"Example University" MBA tuition 2025')])
        verdict = CritiqueJudge(judge_config, llm_client=llm, executor=executor).validate(_facts(), _context())
        critique = critique_from_verdict(verdict)
        assert not critique.supports_facts
        assert critique.available
        assert critique.suggested_search_query == '"Example University" MBA tuition 2025'
        assert verdict.outcome == CheckOutcome.FAIL

    def test_upstream_failure_is_unavailable(self, judge_config, executor):
        llm = FakeLLMClient([ValueError("invalid api key")])
        verdict = CritiqueJudge(judge_config, llm_client=llm, executor=executor).validate(_facts(), _context())
        critique = critique_from_verdict(verdict)
        assert not critique.available
        assert not critique.supports_facts

    def test_unparseable_is_unavailable(self, judge_config, executor):
        llm = FakeLLMClient(["Looks right to me."])
        verdict = CritiqueJudge(judge_config, llm_client=llm, executor=executor).validate(_facts(), _context())
        assert not critique_from_verdict(verdict).available

    def test_transient_retried(self, judge_config, executor):
        llm = FakeLLMClient([TransientError(), supports()])
        verdict = CritiqueJudge(judge_config, llm_client=llm, executor=executor).validate(_facts(), _context())
        assert critique_from_verdict(verdict).supports_facts
        assert len(llm.prompts) == 2


# ─── Verifier ────────────────────────────────────────────────────────────────


class TestVerifier:
    """Aggregation into status and confidence."""

    def _verify(self, facts, llm_replies, executor, citations=None, **config):
        judge_config = JudgeConfig(current_year=2025, **config)
        llm = FakeLLMClient(llm_replies)
        verifier = Verifier(judge_config, llm_client=llm, executor=executor)
        verdict = verifier.verify(facts, citations if citations is not None else [_citation()], SCHOOL, PROGRAM, OFFICIAL_EXCERPT)
        return verdict, llm

    def test_all_pass_and_affirmed_is_high(self, executor):
        verdict, _ = self._verify(_facts(), [supports()], executor)
        assert verdict.status == VerificationStatus.PASS
        assert verdict.confidence == ConfidenceTier.HIGH
        assert [c.name for c in verdict.checks] == ["arithmetic", "source", "completeness", "plausibility"]
        assert verdict.completeness_score == 95
        assert verdict.reasoning.startswith("All checks passed")

    def test_warning_does_not_block_high(self, executor):
        verdict, _ = self._verify(_facts(academic_year="2019-2020"), [supports()], executor)
        assert verdict.confidence == ConfidenceTier.HIGH
        assert verdict.check("plausibility").outcome == CheckOutcome.WARN

    def test_failed_check_with_affirmation_is_medium(self, executor):
        verdict, _ = self._verify(_facts(), [supports()], executor, citations=[_citation("https://poetsandquants.com/mba")])
        assert verdict.status == VerificationStatus.NEEDS_REVIEW
        assert verdict.confidence == ConfidenceTier.MEDIUM
        assert [c.name for c in verdict.failed_checks] == ["source"]

    def test_denial_alone_is_medium(self, executor):
        verdict, _ = self._verify(_facts(), [denies()], executor)
        assert verdict.status == VerificationStatus.NEEDS_REVIEW
        assert verdict.confidence == ConfidenceTier.MEDIUM
        assert verdict.issue_count == 1

    def test_denial_with_two_failures_recommends_retry(self, executor):
        # Arithmetic and plausibility both fail on a $500 tuition
        verdict, _ = self._verify(_facts(tuition_amount="$500"), [denies()], executor)
        assert verdict.status == VerificationStatus.RETRY_RECOMMENDED
        assert verdict.confidence == ConfidenceTier.LOW
        assert verdict.issue_count == 3

    def test_unavailable_critique_never_high(self, executor):
        verdict, _ = self._verify(_facts(), [ValueError("invalid api key")], executor)
        assert verdict.confidence == ConfidenceTier.MEDIUM
        assert verdict.status == VerificationStatus.NEEDS_REVIEW
        assert "unavailable" in verdict.reasoning

    def test_disabled_critique(self, executor):
        verdict, llm = self._verify(_facts(), [], executor, enable_critique_judge=False)
        assert verdict.critique is None
        assert verdict.confidence == ConfidenceTier.MEDIUM
        assert llm.prompts == []

    def test_not_found_needs_review(self, executor):
        verdict, llm = self._verify(ExtractedFacts.not_found(), [], executor)
        assert verdict.status == VerificationStatus.NEEDS_REVIEW
        assert verdict.confidence == ConfidenceTier.LOW
        assert verdict.checks == []
        assert llm.prompts == []

    def test_failed_recommends_retry(self, executor):
        verdict, _ = self._verify(ExtractedFacts.failed("phase_a_search failed"), [], executor)
        assert verdict.status == VerificationStatus.RETRY_RECOMMENDED
        assert verdict.confidence == ConfidenceTier.LOW

    def test_critique_cost_recorded(self, executor):
        verdict, _ = self._verify(_facts(), [supports()], executor)
        assert verdict.cost_usd == pytest.approx(0.0005)


class TestVerdictInvariants:
    """Combinations the verdict refuses to represent."""

    def test_retry_requires_low(self):
        with pytest.raises(ValueError):
            VerificationVerdict(status=VerificationStatus.RETRY_RECOMMENDED, confidence=ConfidenceTier.MEDIUM)

    def test_high_requires_affirmation(self):
        with pytest.raises(ValueError):
            VerificationVerdict(
                status=VerificationStatus.PASS,
                confidence=ConfidenceTier.HIGH,
                critique=CritiqueResult(supports_facts=False, available=False),
            )

    def test_rank_orders_by_confidence_then_issues(self):
        low = VerificationVerdict(status=VerificationStatus.NEEDS_REVIEW, confidence=ConfidenceTier.LOW)
        medium = VerificationVerdict(status=VerificationStatus.NEEDS_REVIEW, confidence=ConfidenceTier.MEDIUM)
        assert medium.rank() > low.rank()
