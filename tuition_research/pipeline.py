"""
Tuition research pipeline.

One run takes a (school, program) pair through:

    FactExtractor (Phase A, optional source re-call, optional Phase B)
      -> NameVariantController (only on "Not Found")
      -> CitationExtractor
      -> Verifier
      -> one re-extraction when verification recommends it
      -> immutable ExtractionRecord, handed to the record store

Within a run there is at most one upstream call in flight. Batches run
several pipelines at once through a bounded worker pool, spaced out by the
shared rate limiter.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from .config import PipelineConfig
from .exceptions import FatalUpstreamError
from .judges.schemas.verdict import CheckOutcome, VerificationStatus, VerificationVerdict
from .judges.verifier import Verifier
from .llm.llm_client import LLMClient
from .models.extraction import ExtractedFacts, ExtractionRecord, ExtractionRequest, ExtractionStatus
from .services.citation_service import CitationExtractor
from .services.fact_extractor import ExtractionOutcome, FactExtractor, SearchClient
from .services.name_variants import NameVariantController, VariantOutcome
from .storage import RecordStore
from .utils.backoff import BackoffExecutor
from .utils.logger import log_event
from .utils.rate_limiter import GlobalRateLimiter, global_rate_limiter
from .utils.worker_pool import WorkerPool

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY = "gemini"


@dataclass
class BatchItem:
    """One (school, program) pair in a batch."""

    school: str
    program: str
    project_id: Optional[str] = None


@dataclass
class BatchItemResult:
    """What happened to one batch item."""

    item: BatchItem
    record: Optional[ExtractionRecord] = None
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def status(self) -> str:
        if self.cancelled:
            return "Cancelled"
        if self.record is None:
            return "Error"
        return self.record.status.value


@dataclass
class BatchResult:
    """Results of a batch, in input order."""

    results: list[BatchItemResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    cancelled: bool = False

    @property
    def records(self) -> list[ExtractionRecord]:
        return [r.record for r in self.results if r.record is not None]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.records if r.status == ExtractionStatus.SUCCESS)

    @property
    def not_found(self) -> int:
        return sum(1 for r in self.records if r.status == ExtractionStatus.NOT_FOUND)

    @property
    def failed(self) -> int:
        """Failed records plus items that raised."""
        failed_records = sum(1 for r in self.records if r.status == ExtractionStatus.FAILED)
        errors = sum(1 for r in self.results if r.record is None and not r.cancelled)
        return failed_records + errors

    @property
    def cancelled_count(self) -> int:
        return sum(1 for r in self.results if r.cancelled)

    @property
    def total_cost_usd(self) -> float:
        return sum(r.total_cost_usd for r in self.records)


def _issue_total(verdict: VerificationVerdict) -> int:
    """Failed and warning checks plus a critique that denied support."""
    flagged = sum(1 for c in verdict.checks if c.outcome in (CheckOutcome.FAIL, CheckOutcome.WARN))
    denied = 1 if verdict.critique and verdict.critique.available and not verdict.critique.supports_facts else 0
    return flagged + denied


class TuitionResearchPipeline:
    """
    Grounded extraction and self-verification for tuition facts.

    Args:
        search_client: Search-grounded model client (GeminiSearchClient)
        llm_client: Client for the critique judge (built lazily when None)
        config: Pipeline configuration
        store: Optional record store; every finished record is appended to it
        rate_limiter: Spacing for batch item starts (process-wide by default)
        executor: Backoff executor shared by every upstream call
    """

    def __init__(
        self,
        search_client: SearchClient,
        llm_client: Optional[LLMClient] = None,
        config: Optional[PipelineConfig] = None,
        store: Optional[RecordStore] = None,
        rate_limiter: Optional[GlobalRateLimiter] = None,
        executor: Optional[BackoffExecutor] = None,
    ):
        self.config = config or PipelineConfig()
        self.store = store
        self.rate_limiter = rate_limiter or global_rate_limiter
        self.executor = executor or BackoffExecutor(self.config.backoff_policy())

        self.fact_extractor = FactExtractor(search_client, self.executor, self.config)
        self.variant_controller = NameVariantController(self.config.max_variation_retries)
        self.citation_extractor = CitationExtractor(self.config)
        self.verifier = Verifier(self.config.judge_config(), llm_client=llm_client, executor=self.executor)

    def run(self, school: str, program: str, project_id: Optional[str] = None) -> ExtractionRecord:
        """
        Research one school/program pair.

        Raises:
            InvalidRequestError: school or program failed validation (no
                upstream call is made)

        Returns:
            The final ExtractionRecord (also saved to the store, if any)
        """
        started = time.monotonic()
        request = ExtractionRequest(school=school, program=program, project_id=project_id)
        log_event(logger, logging.INFO, "Research started", school=request.school, program=request.program)

        record = self._attempt(request, started)

        if (
            self.config.retry_on_recommendation
            and record.verdict.retry_recommended
            and record.status == ExtractionStatus.SUCCESS
        ):
            record = self._retry_after_verification(request, record, started)

        if self.store is not None:
            version = self.store.save(record)
            log_event(logger, logging.DEBUG, "Record stored", school=request.school, program=request.program, version=version)

        log_event(
            logger,
            logging.INFO,
            "Research complete",
            school=request.school,
            program=request.program,
            status=record.status.value,
            confidence=record.confidence.value,
            verification=record.verification_status.value,
            attempts=record.attempts,
            duration_s=f"{record.duration_seconds:.1f}",
        )
        return record

    def _retry_after_verification(
        self, request: ExtractionRequest, first: ExtractionRecord, started: float
    ) -> ExtractionRecord:
        """Re-extract once under the name that worked; keep whichever record verifies better."""
        name = first.variant_used or request.program
        log_event(logger, logging.INFO, "Verification recommended retry", school=request.school, program=name)
        second = self._attempt(request, started, program_name=name)

        better = second if second.verdict.rank() > first.verdict.rank() else first
        note = "Re-extracted once after verification recommended a retry; kept the " + (
            "second" if better is second else "first"
        ) + " result"
        return better.model_copy(
            update={
                "attempts": first.attempts + second.attempts,
                "verification_retried": True,
                "audit_notes": [*better.audit_notes, note],
                "total_cost_usd": first.total_cost_usd + second.total_cost_usd,
                "duration_seconds": time.monotonic() - started,
            }
        )

    def _attempt(
        self,
        request: ExtractionRequest,
        started: float,
        program_name: Optional[str] = None,
    ) -> ExtractionRecord:
        """Extraction, citations and verification for one pass."""
        try:
            if program_name is None:
                variant_outcome = self.variant_controller.with_variants(request, self.fact_extractor.extract)
            else:
                outcome = self.fact_extractor.extract(request.school, program_name)
                variant_outcome = VariantOutcome(
                    outcome=outcome,
                    variant_used=program_name if program_name != request.program else None,
                    names_tried=[program_name],
                    attempts=1,
                    cost_usd=outcome.cost_usd,
                )
        except FatalUpstreamError as e:
            logger.error(f"Extraction failed for {request.school} / {request.program}: {e}")
            outcome = ExtractionOutcome(facts=ExtractedFacts.failed(error=str(e)), program_name=request.program)
            variant_outcome = VariantOutcome(
                outcome=outcome,
                names_tried=request.names_tried or [request.program],
                attempts=max(1, len(request.names_tried)),
            )

        outcome = variant_outcome.outcome
        facts = outcome.facts
        found_as = outcome.program_name or request.program

        bundle = self.citation_extractor.extract(outcome.response, facts, request.school, found_as)
        verdict = self.verifier.verify(facts, bundle.citations, request.school, found_as, raw_content=bundle.raw_content)

        issues = _issue_total(verdict)
        if facts.is_success and verdict.status != VerificationStatus.PASS and issues:
            annotation = f"[Verification: {issues} issue(s) found]"
            facts = facts.with_updates(remarks=f"{facts.remarks} {annotation}" if facts.remarks else annotation)

        audit_notes = []
        if variant_outcome.audit_note:
            audit_notes.append(variant_outcome.audit_note)
        if outcome.source_retry_used:
            sources = outcome.response.source_count if outcome.response else 0
            audit_notes.append(f"Re-searched for sources after an uncited answer ({sources} found)")
        if facts.status == ExtractionStatus.FAILED and facts.error:
            audit_notes.append(f"Extraction failed: {facts.error}")
        if verdict.critique and verdict.critique.suggested_search_query:
            audit_notes.append(f"Critique suggested search: {verdict.critique.suggested_search_query}")

        return ExtractionRecord(
            school=request.school,
            program=request.program,
            project_id=request.project_id,
            facts=facts,
            citations=bundle.citations,
            verdict=verdict,
            attempts=max(1, variant_outcome.attempts),
            variant_used=variant_outcome.variant_used,
            names_tried=list(variant_outcome.names_tried),
            audit_notes=audit_notes,
            duration_seconds=time.monotonic() - started,
            source_url=bundle.source_url,
            raw_content=bundle.raw_content,
            search_query=outcome.search_query or None,
            inline_citations=bundle.inline_citations,
            total_cost_usd=variant_outcome.cost_usd + verdict.cost_usd,
        )

    def run_batch(
        self,
        items: Iterable[Union[BatchItem, tuple]],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """
        Research many pairs with at most ``max_batch_concurrency`` in flight.

        An item that raises is recorded as an error and never stops its
        siblings. Setting ``cancel_event`` stops dispatching new items; items
        already running finish and keep their records.

        Args:
            items: BatchItem objects or (school, program[, project_id]) tuples
            cancel_event: Optional event that cancels the rest of the batch

        Returns:
            BatchResult with one entry per input item, in input order
        """
        batch = [item if isinstance(item, BatchItem) else BatchItem(*item) for item in items]
        started = time.monotonic()
        pool = WorkerPool(max_workers=self.config.max_batch_concurrency, logger=logger)

        def before_dispatch():
            self.rate_limiter.wait(RATE_LIMIT_KEY, self.config.inter_item_delay_seconds)

        raw_results = pool.map(
            lambda item: self.run(item.school, item.program, item.project_id),
            batch,
            desc="Research batch",
            cancel_event=cancel_event,
            before_dispatch=before_dispatch,
        )

        results = []
        for item, raw in zip(batch, raw_results):
            if raw is None:
                results.append(BatchItemResult(item=item, cancelled=True))
                continue
            success, _, value = raw
            if success:
                results.append(BatchItemResult(item=item, record=value))
            else:
                results.append(BatchItemResult(item=item, error=f"{type(value).__name__}: {value}"))

        return BatchResult(
            results=results,
            duration_seconds=time.monotonic() - started,
            cancelled=cancel_event is not None and cancel_event.is_set(),
        )
