"""
Alternate program names for "Not Found" results.

Schools publish the same program under different names ("Part-Time MBA" vs
"Evening MBA" vs "Flex MBA"). When extraction reports a program as not found,
the controller re-runs extraction with up to ``max_variation_retries``
alternate names, stopping at the first one that succeeds.

This is independent of the backoff executor: a variant is a new question, not
a retry of a failed call.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..constants import DEFAULT_MAX_VARIATION_RETRIES
from ..exceptions import FatalUpstreamError
from ..models.extraction import ExtractionRequest, ExtractionStatus
from ..utils.logger import log_event
from .fact_extractor import ExtractionOutcome

logger = logging.getLogger(__name__)

# Lowercase program name -> alternate names, in the order they are tried
PROGRAM_VARIATIONS: dict[str, list[str]] = {
    "part-time mba": [
        "Professional MBA",
        "Weekend MBA",
        "Evening MBA",
        "Flex MBA",
        "Working Professional MBA",
        "Part-Time MBA",
    ],
    "professional mba": ["Part-Time MBA", "Weekend MBA", "Evening MBA", "Flex MBA", "Working Professional MBA"],
    "weekend mba": ["Part-Time MBA", "Professional MBA", "Evening MBA", "Flex MBA"],
    "evening mba": ["Part-Time MBA", "Professional MBA", "Weekend MBA", "Flex MBA"],
    "flex mba": ["Part-Time MBA", "Professional MBA", "Flexible MBA", "Evening MBA"],
    "executive mba": ["EMBA", "Exec MBA", "Executive MBA Program"],
    "emba": ["Executive MBA", "Exec MBA", "Executive MBA Program"],
    "full-time mba": ["Two-Year MBA", "Residential MBA", "Traditional MBA", "Full-Time MBA Program", "MBA"],
    "two-year mba": ["Full-Time MBA", "Residential MBA", "Traditional MBA", "MBA"],
    "mba": ["Full-Time MBA", "Two-Year MBA", "MBA Program"],
    "online mba": ["Distance MBA", "Remote MBA", "Virtual MBA", "Online MBA Program"],
    "ms finance": ["Master of Science in Finance", "MSF", "MS in Finance", "Master in Finance"],
    "msf": ["MS Finance", "Master of Science in Finance", "MS in Finance"],
    "ms accounting": ["Master of Science in Accounting", "MSA", "MAcc", "Master of Accountancy"],
    "ms marketing": ["Master of Science in Marketing", "MSM", "MS in Marketing"],
    "ms business analytics": [
        "MSBA",
        "Master of Business Analytics",
        "MS Analytics",
        "Master of Science in Business Analytics",
    ],
    "msba": ["MS Business Analytics", "Master of Business Analytics", "MS Analytics"],
    "ms information systems": [
        "MSIS",
        "MS in Information Systems",
        "Master of Information Systems",
        "MS IT",
    ],
    "msis": ["MS Information Systems", "Master of Information Systems", "MS in IS"],
}


def get_program_variations(program: str, variations: Optional[dict[str, list[str]]] = None) -> list[str]:
    """
    Alternate names for a program.

    Exact (case-insensitive) table keys win; otherwise the first key that
    contains the program name, or is contained in it, is used. The original
    name is never returned as its own variant.

    Examples:
        >>> get_program_variations("Executive MBA")
        ['EMBA', 'Exec MBA', 'Executive MBA Program']
        >>> get_program_variations("Underwater Basket Weaving")
        []
    """
    table = PROGRAM_VARIATIONS if variations is None else variations
    normalized = program.strip().lower()
    if not normalized:
        return []

    candidates = table.get(normalized)
    if candidates is None:
        for key, values in table.items():
            if key in normalized or normalized in key:
                candidates = values
                break
    if not candidates:
        return []

    result = []
    for name in candidates:
        if name.lower() != normalized and name not in result:
            result.append(name)
    return result


@dataclass
class VariantOutcome:
    """Final extraction outcome after any alternate names were tried."""

    outcome: ExtractionOutcome
    variant_used: Optional[str] = None
    names_tried: list[str] = field(default_factory=list)
    attempts: int = 1
    audit_note: Optional[str] = None
    cost_usd: float = 0.0


class NameVariantController:
    """
    Retries "Not Found" extractions under alternate program names.

    Args:
        max_variation_retries: Most alternate names tried per request
        variations: Name table (defaults to PROGRAM_VARIATIONS)
    """

    def __init__(
        self,
        max_variation_retries: int = DEFAULT_MAX_VARIATION_RETRIES,
        variations: Optional[dict[str, list[str]]] = None,
    ):
        if max_variation_retries < 0:
            raise ValueError("max_variation_retries must be >= 0")
        self.max_variation_retries = max_variation_retries
        self.variations = PROGRAM_VARIATIONS if variations is None else variations

    def with_variants(
        self,
        request: ExtractionRequest,
        extract_fn: Callable[[str, str], ExtractionOutcome],
        initial: Optional[ExtractionOutcome] = None,
    ) -> VariantOutcome:
        """
        Try alternate names when ``initial`` is "Not Found".

        Args:
            request: The run's request; every name tried is recorded on it
            extract_fn: ``(school, program_name) -> ExtractionOutcome``
            initial: Outcome of the extraction with the requested name; run
                through ``extract_fn`` when not given

        Returns:
            VariantOutcome wrapping the first successful variant, or
            ``initial`` with an audit note when none succeeded
        """
        if initial is None:
            initial = extract_fn(request.school, request.program)
        if request.program not in request.attempted_variants:
            request.record_attempt(request.program)
        cost = initial.cost_usd

        if initial.status != ExtractionStatus.NOT_FOUND:
            return VariantOutcome(outcome=initial, names_tried=request.names_tried, attempts=1, cost_usd=cost)

        variants = get_program_variations(request.program, self.variations)[: self.max_variation_retries]
        attempts = 1
        for variant in variants:
            attempts += 1
            request.record_attempt(variant)
            try:
                outcome = extract_fn(request.school, variant)
            except FatalUpstreamError as e:
                log_event(
                    logger,
                    logging.WARNING,
                    "Variant attempt failed",
                    school=request.school,
                    program=request.program,
                    variant=variant,
                    attempt=attempts,
                    error=type(e.cause).__name__,
                )
                continue

            cost += outcome.cost_usd
            log_event(
                logger,
                logging.INFO,
                "Variant attempt",
                school=request.school,
                program=request.program,
                variant=variant,
                attempt=attempts,
                status=outcome.status.value,
            )
            if outcome.status == ExtractionStatus.SUCCESS:
                note = f'Program found as "{variant}" instead of "{request.program}"'
                existing = outcome.facts.remarks
                remarks = f'{existing}. Found as "{variant}"' if existing else note
                outcome.facts = outcome.facts.with_updates(remarks=remarks)
                return VariantOutcome(
                    outcome=outcome,
                    variant_used=variant,
                    names_tried=request.names_tried,
                    attempts=attempts,
                    audit_note=note,
                    cost_usd=cost,
                )

        audit_note = None
        if variants:
            audit_note = f"Program not found at this school. Tried variations: {', '.join(request.names_tried)}"
            initial.facts = initial.facts.with_updates(remarks=audit_note)
        return VariantOutcome(
            outcome=initial,
            names_tried=request.names_tried,
            attempts=attempts,
            audit_note=audit_note,
            cost_usd=cost,
        )
