"""Shared fixtures for tuition research tests.

No test talks to a real model: the search-grounded client and the critique
LLM are replaced by scripted fakes, and every backoff delay is zero.
"""

import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add the project root to the path so tests can import tuition_research
sys.path.insert(0, str(Path(__file__).parent.parent))

from tuition_research.agents.gemini_search import SearchGroundingResult  # noqa: E402
from tuition_research.config import PipelineConfig  # noqa: E402
from tuition_research.models.grounding import (  # noqa: E402
    GroundingChunk,
    GroundingMetadata,
    GroundingSupport,
)
from tuition_research.utils.backoff import BackoffExecutor, BackoffPolicy  # noqa: E402
from tuition_research.utils.rate_limiter import GlobalRateLimiter  # noqa: E402

SCHOOL = "Example University"
PROGRAM = "Part-Time MBA"
OFFICIAL_URL = "https://business.example.edu/part-time-mba/tuition"
OFFICIAL_EXCERPT = (
    "Total tuition for the Part-Time MBA is $76,000 for the 2025-2026 academic year. "
    "Students complete 48 credits at $1,600 per credit hour."
)


# ─── Builders ─────────────────────────────────────────────────────────────────


def make_result(reply, chunks=None, supports=None, cost_usd=0.001) -> SearchGroundingResult:
    """Build a SearchGroundingResult from a reply (dict or raw text) and chunk specs.

    ``chunks`` items are GroundingChunk objects or (uri, title, text) tuples.
    ``supports`` items are GroundingSupport objects or (segment_text, [chunk indices]) tuples.
    """
    text = json.dumps(reply) if isinstance(reply, dict) else reply
    grounding_chunks = []
    for chunk in chunks or []:
        if isinstance(chunk, GroundingChunk):
            grounding_chunks.append(chunk)
        else:
            uri, title, chunk_text = chunk
            grounding_chunks.append(GroundingChunk(uri=uri, title=title, text=chunk_text))
    grounding_supports = []
    for support in supports or []:
        if isinstance(support, GroundingSupport):
            grounding_supports.append(support)
        else:
            segment, indices = support
            grounding_supports.append(GroundingSupport(segment_text=segment, grounding_chunk_indices=indices))
    return SearchGroundingResult(
        text=text,
        grounding_metadata=GroundingMetadata(
            grounding_chunks=grounding_chunks,
            grounding_supports=grounding_supports,
        ),
        model="gemini-2.5-flash",
        cost_usd=cost_usd,
    )


def financial_reply(**overrides) -> dict:
    """Phase A reply for the canonical Part-Time MBA, override any field."""
    reply = {
        "tuition_amount": "$76,000",
        "tuition_period": "full program",
        "academic_year": "2025-2026",
        "cost_per_credit": "$1,600",
        "total_credits": "48",
        "program_length": "3 years",
        "program_length_months": 36,
        "actual_program_name": "Part-Time MBA",
        "is_stem": False,
        "additional_fees": "$500 per term",
        "out_of_state_tuition": None,
        "remarks": None,
        "status": "Success",
    }
    reply.update(overrides)
    return reply


def curriculum_reply(**overrides) -> dict:
    """Phase B reply, override any field."""
    reply = {
        "total_credits": "48",
        "program_length": "3 years",
        "program_length_months": 36,
        "actual_program_name": "Part-Time MBA",
        "is_stem": False,
        "status": "Success",
    }
    reply.update(overrides)
    return reply


def official_chunks():
    return [(OFFICIAL_URL, "Tuition & Fees | Part-Time MBA", OFFICIAL_EXCERPT)]


def grounded(reply, **kwargs) -> SearchGroundingResult:
    """A reply backed by the official tuition page."""
    return make_result(reply, chunks=official_chunks(), **kwargs)


def not_found_reply() -> dict:
    return {"tuition_amount": None, "status": "Not Found", "remarks": "Program not offered"}


# ─── Fakes ────────────────────────────────────────────────────────────────────


class FakeSearchClient:
    """Scripted stand-in for GeminiSearchClient.

    Either pops ``responses`` in order (an Exception item is raised instead of
    returned) or delegates to ``handler(query)``.
    """

    def __init__(self, responses=None, handler=None):
        self.responses = list(responses or [])
        self.handler = handler
        self.queries: list[str] = []

    def search(self, query, system_prompt=None, temperature=0.1, max_output_tokens=None):
        self.queries.append(query)
        if self.handler is not None:
            return self.handler(query)
        if not self.responses:
            raise AssertionError(f"Unexpected search call #{len(self.queries)}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeLLMClient:
    """Scripted stand-in for LLMClient.generate()."""

    def __init__(self, replies=None, cost_usd=0.0005):
        self.replies = list(replies or [])
        self.cost_usd = cost_usd
        self.prompts: list[str] = []

    def generate(self, prompt, system_prompt=None, json_schema=None, prompt_version=None, **kwargs):
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError("Unexpected critique call")
        item = self.replies.pop(0)
        if isinstance(item, BaseException):
            raise item
        text = json.dumps(item) if isinstance(item, dict) else item
        return SimpleNamespace(text=text, cost_usd=self.cost_usd)


class TransientError(Exception):
    """Looks like a provider 503."""

    def __init__(self, message="Service unavailable"):
        super().__init__(message)
        self.code = 503


def supports(notes="The tuition page states $76,000 for 48 credits."):
    return {"source_supports_data": True, "notes": notes, "alternative_search_query": None}


def denies(notes="The page does not mention this figure.", query=None):
    return {"source_supports_data": False, "notes": notes, "alternative_search_query": query}


# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def executor():
    """Backoff executor with zero delays."""
    return BackoffExecutor(BackoffPolicy.immediate(max_retries=2))


@pytest.fixture
def config():
    """Pipeline config with zero delays and no batch spacing."""
    return PipelineConfig(
        max_retries=2,
        base_delay_ms=0,
        max_delay_ms=0,
        jitter=False,
        inter_item_delay_seconds=0,
    )


@pytest.fixture
def rate_limiter():
    return GlobalRateLimiter(sleep=lambda seconds: None)
