"""Tests for the upstream adapters: LiteLLM critique client and grounding metadata parsing."""

from types import SimpleNamespace

import pytest
from conftest import TransientError
from tuition_research.agents.gemini_search import GeminiSearchClient, parse_grounding_metadata
from tuition_research.llm import llm_client
from tuition_research.llm.llm_client import LLMClient, LLMTask
from tuition_research.llm.schemas.extraction import CritiqueReply

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _completion(text='{"source_supports_data": true}', prompt_tokens=1000, completion_tokens=100):
    return SimpleNamespace(
        id="resp-1",
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


class _ScriptedCompletion:
    """Replaces litellm.completion; records the kwargs of every call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def fake_completion(monkeypatch):
    def install(*outcomes):
        fake = _ScriptedCompletion(*outcomes)
        monkeypatch.setattr(llm_client, "completion", fake)
        monkeypatch.setattr(llm_client, "completion_cost", lambda completion_response: 0.0002)
        return fake

    return install


# ─── LLMClient ───────────────────────────────────────────────────────────────


class TestLLMClient:
    """Model selection, structured output and fallback."""

    def test_task_models(self):
        client = LLMClient(task=LLMTask.CRITIQUE)
        assert client.model_name == "gemini-2.5-flash"
        assert client.fallback_models == ["gemini-2.5-flash-lite"]

    def test_explicit_model_not_repeated_as_fallback(self):
        client = LLMClient(model="gemini-2.5-flash-lite")
        assert client.fallback_models == []

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            LLMClient(model="not-a-model")

    def test_json_schema_sets_response_format(self, fake_completion):
        fake = fake_completion(_completion())
        response = LLMClient().generate("prompt", json_schema=CritiqueReply.model_json_schema())
        response_format = fake.calls[0]["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["name"] == "CritiqueReply"
        assert response.text == '{"source_supports_data": true}'
        assert response.cost_usd == 0.0002
        assert response.task == "critique"

    def test_plain_text_has_no_response_format(self, fake_completion):
        fake = fake_completion(_completion("hello"))
        LLMClient().generate("prompt")
        assert "response_format" not in fake.calls[0]

    def test_transient_error_falls_back(self, fake_completion):
        fake = fake_completion(TransientError(), _completion())
        response = LLMClient().generate("prompt")
        assert response.model == "gemini-2.5-flash-lite"
        assert [c["model"] for c in fake.calls] == ["gemini/gemini-2.5-flash", "gemini/gemini-2.5-flash-lite"]

    def test_permanent_error_raised_without_fallback(self, fake_completion):
        fake = fake_completion(ValueError("invalid api key"))
        with pytest.raises(ValueError):
            LLMClient().generate("prompt")
        assert len(fake.calls) == 1

    def test_last_model_error_raised(self, fake_completion):
        fake_completion(TransientError(), TransientError("still unavailable"))
        with pytest.raises(TransientError, match="still unavailable"):
            LLMClient().generate("prompt")

    def test_cost_from_registry_when_litellm_cannot_price(self, monkeypatch, fake_completion):
        fake_completion(_completion())

        def no_price(completion_response):
            raise ValueError("model not mapped")

        monkeypatch.setattr(llm_client, "completion_cost", no_price)
        response = LLMClient().generate("prompt")
        assert response.cost_usd == pytest.approx((1000 * 0.30 + 100 * 2.50) / 1_000_000)


# ─── Grounding metadata ──────────────────────────────────────────────────────


class TestParseGroundingMetadata:
    """SDK response -> GroundingMetadata."""

    def test_chunks_and_supports(self):
        web = SimpleNamespace(uri="https://example.edu/tuition", title="Tuition", domain="example.edu", text=None)
        raw = SimpleNamespace(
            web_search_queries=["Example University MBA tuition"],
            grounding_chunks=[
                SimpleNamespace(web=None),
                SimpleNamespace(web=web, retrieved_context=SimpleNamespace(text="Tuition is $76,000.")),
            ],
            grounding_supports=[
                SimpleNamespace(
                    segment=SimpleNamespace(text="$76,000", start_index=10, end_index=17),
                    confidence_scores=[0.9],
                    grounding_chunk_indices=[1],
                )
            ],
        )
        response = SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=raw)])

        metadata = parse_grounding_metadata(response)
        assert metadata.web_search_queries == ["Example University MBA tuition"]
        assert metadata.grounding_chunks[0].uri is None
        assert metadata.grounding_chunks[1].text == "Tuition is $76,000."
        assert metadata.source_urls == ["https://example.edu/tuition"]
        support = metadata.grounding_supports[0]
        assert (support.segment_text, support.start_index, support.grounding_chunk_indices) == ("$76,000", 10, [1])

    def test_no_candidates(self):
        assert parse_grounding_metadata(SimpleNamespace(candidates=None)).grounding_chunks == []

    def test_no_metadata(self):
        response = SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=None)])
        assert parse_grounding_metadata(response).grounding_supports == []


class TestGeminiSearchClient:
    """Construction checks that need no network."""

    def test_rejects_non_gemini_model(self):
        with pytest.raises(ValueError, match="Gemini model"):
            GeminiSearchClient(model="gpt-4o-mini", api_key="test-key")

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "your_key_here")
        with pytest.raises(ValueError, match="API key not found"):
            GeminiSearchClient()
