"""
Citation extraction from grounding metadata.

Turns the raw grounding chunks a search-grounded answer came with into a
short, clean citation list:

1. Unwrap redirector URLs (the original URL is kept for audit)
2. Pick an excerpt per source: supporting answer segments first, then the
   chunk's own text, then a summary synthesized from the extracted facts
3. Sanitize excerpts and drop duplicate / near-duplicate sources
4. Keep at most ``max_citations`` in the service's original order

It also builds the aggregate ``raw_content`` stored with every record and
the inline citations that tie answer spans to the kept sources.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..agents.gemini_search import SearchGroundingResult
from ..config import PipelineConfig
from ..constants import (
    DEDUP_PREFIX_CHARS,
    INLINE_CITATION_MAX_CHARS,
    MIN_EXCERPT_CHARS,
    UNAVAILABLE_EXCERPT_SENTINELS,
)
from ..models.extraction import Citation, ExtractedFacts, InlineCitation
from ..utils.logger import log_event
from ..utils.text_sanitizer import sanitize_for_storage, strip_control_characters
from ..utils.url_helpers import build_search_url, get_domain, is_grounding_redirect, resolve_redirect

logger = logging.getLogger(__name__)

# Aggregate content ignores excerpts this short
MIN_AGGREGATE_PIECE_CHARS = 50
# Excerpts shorter than this are never compared for near-duplicates
MIN_DEDUP_EXCERPT_CHARS = 20

AGGREGATE_SEPARATOR = "\n\n---\n\n"


@dataclass
class CitationBundle:
    """Citations plus the derived content stored alongside them."""

    citations: list[Citation] = field(default_factory=list)
    raw_content: str = ""
    inline_citations: list[InlineCitation] = field(default_factory=list)
    source_url: str = ""

    @property
    def primary(self) -> Optional[Citation]:
        return self.citations[0] if self.citations else None


def _is_unavailable(text: str) -> bool:
    """True for the placeholder text the service returns for empty pages."""
    normalized = text.strip().lower().rstrip(".")
    if normalized in UNAVAILABLE_EXCERPT_SENTINELS:
        return True
    return "no extractable text" in normalized


def _dedup_key(excerpt: str) -> str:
    return re.sub(r"\s+", " ", excerpt.lower()).strip()[:DEDUP_PREFIX_CHARS]


class CitationExtractor:
    """
    Builds citations from a search-grounded response.

    Args:
        config: Pipeline configuration (citation cap, truncation budget,
            grounding redirect resolution)
        http_client: Optional httpx client used to follow grounding redirect
            URLs; created lazily when resolution is enabled
    """

    def __init__(self, config: Optional[PipelineConfig] = None, http_client: Optional[httpx.Client] = None):
        self.config = config or PipelineConfig()
        self._http_client = http_client

    def extract(
        self,
        result: Optional[SearchGroundingResult],
        facts: ExtractedFacts,
        school: str,
        program: str,
    ) -> CitationBundle:
        """
        Extract citations for one record.

        Args:
            result: The grounded response whose sources back ``facts`` (may be None
                when extraction failed before any response arrived)
            facts: Extracted facts, used for the synthesized fallback excerpt
            school: School name, for the search-URL fallback
            program: Program name as requested

        Returns:
            CitationBundle; ``raw_content`` is never empty
        """
        fallback_summary = facts.summary_line(program)
        candidates = self._build_candidates(result, fallback_summary) if result else []
        citations, chunk_to_citation = self._deduplicate(candidates)
        citations = citations[: self.config.max_citations]
        chunk_to_citation = {k: v for k, v in chunk_to_citation.items() if v < len(citations)}

        raw_content = self._aggregate_content(citations) or fallback_summary
        inline = self._build_inline_citations(result, chunk_to_citation) if result else []
        source_url = citations[0].url if citations else build_search_url(school, program)

        log_event(
            logger,
            logging.DEBUG,
            "Citations extracted",
            school=school,
            program=program,
            chunks=len(result.grounding_metadata.grounding_chunks) if result else 0,
            kept=len(citations),
            fallback_excerpts=sum(1 for c in citations if c.is_fallback_excerpt),
        )

        return CitationBundle(
            citations=citations,
            raw_content=raw_content,
            inline_citations=inline,
            source_url=source_url,
        )

    def _build_candidates(self, result: SearchGroundingResult, fallback_summary: str) -> list[Citation]:
        metadata = result.grounding_metadata
        candidates = []
        for index, chunk in enumerate(metadata.grounding_chunks):
            if not chunk.uri:
                continue

            url = resolve_redirect(chunk.uri)
            if self.config.resolve_grounding_redirects and is_grounding_redirect(url):
                url = self._follow_redirect(url)

            excerpt = self._select_excerpt(
                [s.segment_text for s in metadata.supports_for_chunk(index) if s.segment_text],
                chunk.text,
            )
            is_fallback = not excerpt
            title = strip_control_characters(chunk.title or "") or chunk.domain or get_domain(url) or "Official Source"

            candidates.append(
                Citation(
                    title=title,
                    url=url,
                    original_url=chunk.uri,
                    excerpt=fallback_summary if is_fallback else excerpt,
                    is_fallback_excerpt=is_fallback,
                    chunk_index=index,
                )
            )
        return candidates

    @staticmethod
    def _select_excerpt(segments: list[str], chunk_text: Optional[str]) -> str:
        """Supporting segments first, then the chunk's own text; '' when neither is usable."""
        usable = []
        for segment in segments:
            cleaned = strip_control_characters(segment) or ""
            if len(cleaned) > MIN_EXCERPT_CHARS and cleaned not in usable:
                usable.append(cleaned)
        if usable:
            return "\n\n".join(usable)

        if chunk_text:
            cleaned = strip_control_characters(chunk_text) or ""
            if len(cleaned) > MIN_EXCERPT_CHARS and not _is_unavailable(cleaned):
                return cleaned
        return ""

    @staticmethod
    def _deduplicate(candidates: list[Citation]) -> tuple[list[Citation], dict[int, int]]:
        """
        Drop repeated URLs and near-identical excerpts, keeping original order.

        Returns the kept citations and a map from grounding chunk index to
        position in the kept list.
        """
        kept: list[Citation] = []
        by_url: dict[str, int] = {}
        seen_excerpts: dict[str, int] = {}
        chunk_to_citation: dict[int, int] = {}

        for candidate in candidates:
            if candidate.url in by_url:
                position = by_url[candidate.url]
                existing = kept[position]
                better = (existing.is_fallback_excerpt and not candidate.is_fallback_excerpt) or (
                    existing.is_fallback_excerpt == candidate.is_fallback_excerpt
                    and len(candidate.excerpt) > len(existing.excerpt)
                )
                if better:
                    kept[position] = candidate.model_copy(update={"chunk_index": existing.chunk_index})
                chunk_to_citation[candidate.chunk_index] = position
                continue

            if not candidate.is_fallback_excerpt and len(candidate.excerpt) > MIN_DEDUP_EXCERPT_CHARS:
                key = _dedup_key(candidate.excerpt)
                if key in seen_excerpts:
                    chunk_to_citation[candidate.chunk_index] = seen_excerpts[key]
                    continue
                seen_excerpts[key] = len(kept)

            by_url[candidate.url] = len(kept)
            chunk_to_citation[candidate.chunk_index] = len(kept)
            kept.append(candidate)

        return kept, chunk_to_citation

    def _aggregate_content(self, citations: list[Citation]) -> str:
        pieces = [
            c.excerpt
            for c in citations
            if not c.is_fallback_excerpt
            and len(c.excerpt) > MIN_AGGREGATE_PIECE_CHARS
            and not _is_unavailable(c.excerpt)
        ]
        if not pieces:
            return ""
        return sanitize_for_storage(
            AGGREGATE_SEPARATOR.join(pieces),
            limit=self.config.content_truncation_chars,
            source_count=len(pieces),
        ) or ""

    @staticmethod
    def _build_inline_citations(
        result: SearchGroundingResult, chunk_to_citation: dict[int, int]
    ) -> list[InlineCitation]:
        inline = []
        for support in result.grounding_metadata.grounding_supports:
            if not support.segment_text:
                continue
            indices = []
            for chunk_index in support.grounding_chunk_indices:
                position = chunk_to_citation.get(chunk_index)
                if position is not None and position not in indices:
                    indices.append(position)
            if not indices:
                continue
            inline.append(
                InlineCitation(
                    text=support.segment_text[:INLINE_CITATION_MAX_CHARS],
                    source_indices=indices,
                    start_index=support.start_index,
                    end_index=support.end_index,
                )
            )
        return inline

    def _follow_redirect(self, url: str) -> str:
        """Resolve a grounding redirect URL to its destination with a HEAD request."""
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=10.0, follow_redirects=True)
        try:
            response = self._http_client.head(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning(f"Could not resolve grounding redirect {url[:80]}: {type(e).__name__}: {e}")
            return url
        resolved = str(response.url)
        return resolved if resolved and not is_grounding_redirect(resolved) else url
