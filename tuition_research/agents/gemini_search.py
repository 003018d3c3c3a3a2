"""
Gemini client with Google Search grounding.

Grounded extraction needs the sources behind an answer, which only the
Google GenAI SDK exposes (LiteLLM drops the grounding metadata), so this
client talks to the SDK directly. SDK errors propagate unchanged for the
caller's BackoffExecutor to classify.

Also home to locate_json_object, the tolerant JSON locator used on
every model reply.
"""

import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from google import genai
from google.genai import types

from ..llm.llm_client import MODEL_GEMINI_25_FLASH, MODEL_REGISTRY
from ..models.grounding import GroundingChunk, GroundingMetadata, GroundingSupport
from ..utils.logger import log_event

logger = logging.getLogger(__name__)

# Plenty for the JSON replies the extraction prompts ask for
DEFAULT_MAX_OUTPUT_TOKENS = 2048

_FENCE = re.compile(r"```(?:json)?\s*(.*?)(?:```|$)", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def _scan_object(text: str) -> tuple[Optional[int], int, list[str]]:
    """
    Walk a JSON object starting at ``text[0] == "{"``.

    Returns:
        (end, safe_end, still_open): ``end`` is the index just past the
        matching close brace, or None when the object never closes.
        ``safe_end`` is the last position that follows a complete value and
        ``still_open`` the structures open at that point.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    safe_end, still_open = 0, []

    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(char)
        elif char in "}]":
            if stack:
                stack.pop()
            if not stack:
                return i + 1, i + 1, []
            safe_end, still_open = i + 1, list(stack)
        elif char == ",":
            safe_end, still_open = i, list(stack)

    return None, safe_end, still_open


def locate_json_object(text: str) -> tuple[Optional[str], bool]:
    """
    Locate the JSON object in a model reply.

    Tolerates markdown fences and prose around the object, and braces inside
    string values. A reply cut off mid-object is repaired by dropping the
    incomplete trailing field and closing whatever is still open.

    Returns:
        (json_text, repaired): json_text is None when the reply holds no
        object; repaired is True when the object had to be closed by hand
    """
    text = (text or "").strip()

    fenced = _FENCE.search(text)
    if fenced and "{" in fenced.group(1):
        text = fenced.group(1).strip()

    start = text.find("{")
    if start == -1:
        return None, False

    candidate = text[start:]
    end, safe_end, still_open = _scan_object(candidate)
    if end is not None:
        return candidate[:end], False

    if safe_end == 0:
        return None, False
    repaired = candidate[:safe_end].rstrip().rstrip(",")
    repaired += "".join(_CLOSERS[c] for c in reversed(still_open))
    try:
        json.loads(repaired)
    except json.JSONDecodeError:
        logger.warning(f"Truncated JSON could not be repaired: {repaired[:100]}...")
        return None, False
    logger.warning(f"Repaired truncated JSON reply ({len(candidate)} chars)")
    return repaired, True


@dataclass
class SearchGroundingResult:
    """One grounded reply: the answer text plus the sources behind it."""

    text: str
    grounding_metadata: GroundingMetadata
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def has_grounding(self) -> bool:
        return self.source_count > 0

    @property
    def source_count(self) -> int:
        """Chunks with a URL; index placeholders are not sources."""
        return len(self.grounding_metadata.source_urls)


def _resolve_api_key(api_key: Optional[str]) -> str:
    """Explicit key, else GOOGLE_API_KEY, else GEMINI_API_KEY ("your_..." placeholders skipped)."""
    if api_key:
        return api_key
    for env_var in ("GOOGLE_API_KEY", "GEMINI_API_KEY"):
        key = os.environ.get(env_var)
        if key and not key.startswith("your_"):
            return key
    raise ValueError("API key not found. Set GOOGLE_API_KEY or GEMINI_API_KEY, or pass api_key.")


def _chunk_from_sdk(chunk: Any) -> GroundingChunk:
    web = getattr(chunk, "web", None)
    if not web:
        # Placeholder keeps later chunk indices aligned with the supports
        return GroundingChunk()
    retrieved = getattr(chunk, "retrieved_context", None)
    return GroundingChunk(
        uri=getattr(web, "uri", None),
        title=getattr(web, "title", None),
        domain=getattr(web, "domain", None),
        text=getattr(web, "text", None) or getattr(retrieved, "text", None),
    )


def _support_from_sdk(support: Any) -> GroundingSupport:
    segment = getattr(support, "segment", None)
    return GroundingSupport(
        segment_text=getattr(segment, "text", None),
        start_index=getattr(segment, "start_index", None),
        end_index=getattr(segment, "end_index", None),
        confidence_scores=list(getattr(support, "confidence_scores", None) or []),
        grounding_chunk_indices=list(getattr(support, "grounding_chunk_indices", None) or []),
    )


def parse_grounding_metadata(response: Any) -> GroundingMetadata:
    """Convert the SDK's grounding metadata of the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    raw = getattr(candidates[0], "grounding_metadata", None) if candidates else None
    if not raw:
        return GroundingMetadata()

    return GroundingMetadata(
        web_search_queries=list(getattr(raw, "web_search_queries", None) or []),
        grounding_chunks=[_chunk_from_sdk(c) for c in getattr(raw, "grounding_chunks", None) or []],
        grounding_supports=[_support_from_sdk(s) for s in getattr(raw, "grounding_supports", None) or []],
    )


class GeminiSearchClient:
    """
    Search-grounded Gemini calls.

    Usage:
        client = GeminiSearchClient()
        result = client.search('Find the tuition for "Part-Time MBA" at "Example University"')
        print(result.grounding_metadata.source_urls)
    """

    def __init__(
        self,
        model: str = MODEL_GEMINI_25_FLASH,
        api_key: Optional[str] = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ):
        """
        Args:
            model: Gemini model name
            api_key: Google API key (defaults to GOOGLE_API_KEY or GEMINI_API_KEY)
            max_output_tokens: Default cap on reply length
        """
        if model not in MODEL_REGISTRY or MODEL_REGISTRY[model]["provider"] != "google":
            raise ValueError(f"Search grounding needs a Gemini model, got: {model}")
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.client = genai.Client(api_key=_resolve_api_key(api_key))
        logger.info(f"GeminiSearchClient initialized with model: {model}")

    def search(
        self,
        query: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.1,
        max_output_tokens: Optional[int] = None,
    ) -> SearchGroundingResult:
        """
        Run one grounded query.

        Args:
            query: Prompt text (the extraction prompt, not a bare search string)
            system_prompt: Optional system instructions
            temperature: Sampling temperature
            max_output_tokens: Per-call override of the reply cap
        """
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=temperature,
            top_k=40,
            max_output_tokens=max_output_tokens or self.max_output_tokens,
            tools=[types.Tool(google_search=types.GoogleSearch())],
        )

        started = time.monotonic()
        response = self.client.models.generate_content(model=self.model, contents=query, config=config)
        duration_ms = int((time.monotonic() - started) * 1000)

        usage = getattr(response, "usage_metadata", None)
        input_tokens = (getattr(usage, "prompt_token_count", 0) or 0) if usage else 0
        output_tokens = (getattr(usage, "candidates_token_count", 0) or 0) if usage else 0
        prices = MODEL_REGISTRY[self.model]
        cost = (input_tokens * prices["cost_per_1m_input"] + output_tokens * prices["cost_per_1m_output"]) / 1_000_000

        result = SearchGroundingResult(
            text=response.text or "",
            grounding_metadata=parse_grounding_metadata(response),
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            duration_ms=duration_ms,
        )
        log_event(
            logger,
            logging.INFO,
            "Grounded search completed",
            sources=result.source_count,
            tokens=f"{input_tokens}->{output_tokens}",
            cost_usd=f"{cost:.6f}",
            duration_ms=duration_ms,
        )
        return result
