"""
Data model for tuition extraction runs.

ExtractionRequest is the per-run input, ExtractedFacts the structured facts
parsed out of a grounded model reply, Citation the cleaned-up sources, and
ExtractionRecord the immutable output handed to storage.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import PROGRAM_NAME_MAX_LENGTH, SCHOOL_NAME_MAX_LENGTH
from ..exceptions import InvalidRequestError
from ..judges.schemas.verdict import ConfidenceTier, VerificationStatus, VerificationVerdict
from ..utils.text_sanitizer import parse_currency

# Fields that must be empty when a program was not found
FINANCIAL_FIELDS = ("tuition_amount", "cost_per_credit", "calculated_total_cost", "additional_fees")

# Fields the curriculum pass may fill in
CURRICULUM_FIELDS = (
    "total_credits",
    "program_length",
    "program_length_months",
    "actual_program_name",
    "is_stem",
)


class ExtractionStatus(str, Enum):
    """Outcome of one extraction."""

    SUCCESS = "Success"
    NOT_FOUND = "Not Found"
    FAILED = "Failed"


def compute_calculated_total(cost_per_credit: Any, total_credits: Any) -> Optional[int]:
    """
    Derived tuition total, ``round(cost_per_credit * total_credits)``.

    Returns None unless both operands parse to positive numbers.
    """
    cost = parse_currency(cost_per_credit)
    credits = parse_currency(total_credits)
    if not cost or not credits or cost <= 0 or credits <= 0:
        return None
    return int(round(cost * credits))


def format_dollars(amount: Optional[float]) -> Optional[str]:
    """Format a number as ``$160,083``."""
    if amount is None:
        return None
    return f"${int(round(amount)):,}"


@dataclass
class ExtractionRequest:
    """Input for one pipeline run.

    Only ``attempted_variants`` changes after construction, and only by
    appending through ``record_attempt``.
    """

    school: str
    program: str
    project_id: Optional[str] = None
    attempted_variants: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.school = (self.school or "").strip()
        self.program = (self.program or "").strip()
        if not self.school:
            raise InvalidRequestError("school is required")
        if not self.program:
            raise InvalidRequestError("program is required")
        if len(self.school) > SCHOOL_NAME_MAX_LENGTH:
            raise InvalidRequestError(f"school must be at most {SCHOOL_NAME_MAX_LENGTH} characters")
        if len(self.program) > PROGRAM_NAME_MAX_LENGTH:
            raise InvalidRequestError(f"program must be at most {PROGRAM_NAME_MAX_LENGTH} characters")

    def record_attempt(self, name: str) -> None:
        """Append a program name that extraction was attempted with."""
        self.attempted_variants.append(name)

    @property
    def names_tried(self) -> list[str]:
        return list(self.attempted_variants)


class ExtractedFacts(BaseModel):
    """Structured tuition facts for one school/program.

    Invariants enforced on construction:
    - status Not Found means every financial field is empty
    - with both cost_per_credit and total_credits present,
      calculated_total_cost is their rounded product (never taken from the model)
    """

    model_config = ConfigDict(frozen=True)

    tuition_amount: Optional[str] = Field(None, description="Tuition of record, e.g. '$76,000'")
    tuition_period: Optional[str] = Field(None, description="'full program', 'per year', ...")
    academic_year: Optional[str] = Field(None, description="e.g. '2025-2026'")
    cost_per_credit: Optional[str] = None
    total_credits: Optional[str] = None
    program_length: Optional[str] = None
    program_length_months: Optional[int] = None
    actual_program_name: Optional[str] = None
    is_stem: Optional[bool] = None
    additional_fees: Optional[str] = None
    remarks: Optional[str] = None
    calculated_total_cost: Optional[str] = None
    status: ExtractionStatus = ExtractionStatus.SUCCESS

    # Audit fields for Failed outcomes
    raw_response_text: Optional[str] = Field(None, description="Verbatim model output when parsing failed")
    error: Optional[str] = Field(None, description="Why extraction failed")

    @field_validator(
        "tuition_amount",
        "tuition_period",
        "academic_year",
        "cost_per_credit",
        "total_credits",
        "program_length",
        "actual_program_name",
        "additional_fees",
        "remarks",
        "calculated_total_cost",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        """Models return numbers and "null"/"N/A" strings for text fields."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        if not text or text.lower() in ("null", "none"):
            return None
        return text

    @model_validator(mode="before")
    @classmethod
    def _enforce_invariants(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("status") == ExtractionStatus.NOT_FOUND:
            for name in FINANCIAL_FIELDS:
                data[name] = None
            return data

        total = compute_calculated_total(data.get("cost_per_credit"), data.get("total_credits"))
        data["calculated_total_cost"] = format_dollars(total)
        return data

    @property
    def tuition_value(self) -> Optional[float]:
        return parse_currency(self.tuition_amount)

    @property
    def cost_per_credit_value(self) -> Optional[float]:
        return parse_currency(self.cost_per_credit)

    @property
    def total_credits_value(self) -> Optional[float]:
        return parse_currency(self.total_credits)

    @property
    def calculated_total_value(self) -> Optional[float]:
        return parse_currency(self.calculated_total_cost)

    @property
    def is_success(self) -> bool:
        return self.status == ExtractionStatus.SUCCESS

    def missing_curriculum_fields(self) -> bool:
        """True when per-credit cost or credit count is still unknown."""
        return not self.cost_per_credit or not self.total_credits

    def merged_with(self, curriculum: "ExtractedFacts") -> "ExtractedFacts":
        """
        Fill gaps from a curriculum-focused extraction.

        Financial fields always stay as they are; curriculum fields are only
        taken where this record has none.
        """
        updates: dict[str, Any] = {}
        for name in CURRICULUM_FIELDS:
            if getattr(self, name) is None and getattr(curriculum, name) is not None:
                updates[name] = getattr(curriculum, name)
        if not updates:
            return self
        data = self.model_dump()
        data.update(updates)
        # calculated_total_cost is recomputed by the validator
        return ExtractedFacts(**data)

    def with_updates(self, **updates: Any) -> "ExtractedFacts":
        """Copy with fields replaced, re-running invariant checks."""
        data = self.model_dump()
        data.update(updates)
        return ExtractedFacts(**data)

    @classmethod
    def not_found(cls, remarks: Optional[str] = None) -> "ExtractedFacts":
        return cls(status=ExtractionStatus.NOT_FOUND, remarks=remarks)

    @classmethod
    def failed(cls, error: str, raw_response_text: Optional[str] = None) -> "ExtractedFacts":
        return cls(status=ExtractionStatus.FAILED, error=error, raw_response_text=raw_response_text)

    def summary_line(self, program: str) -> str:
        """One-line summary used when a source has no usable excerpt."""
        return (
            f"Program: {self.actual_program_name or program}, "
            f"Tuition: {self.tuition_amount or 'Not found'}, "
            f"Credits: {self.total_credits or 'Not specified'}, "
            f"Cost per credit: {self.cost_per_credit or 'Not specified'}, "
            f"Length: {self.program_length or 'Not specified'}, "
            f"STEM: {'Yes' if self.is_stem else 'No'}"
        )


class Citation(BaseModel):
    """A cleaned-up grounding source."""

    model_config = ConfigDict(frozen=True)

    title: str = Field("Official Source", description="Page title")
    url: str = Field(..., description="Display URL (redirects resolved where possible)")
    original_url: Optional[str] = Field(None, description="URL as returned by the search service")
    excerpt: str = Field("", description="Sanitized excerpt or synthesized summary")
    is_fallback_excerpt: bool = Field(False, description="Excerpt was synthesized from the facts")
    chunk_index: int = Field(0, description="Position in the service's grounding chunk list")


class InlineCitation(BaseModel):
    """Links a span of the answer to the citations that support it."""

    text: str
    source_indices: list[int] = Field(default_factory=list)
    start_index: Optional[int] = None
    end_index: Optional[int] = None


class ExtractionRecord(BaseModel):
    """Final output of one pipeline run, immutable down to the nested facts and verdict."""

    model_config = ConfigDict(frozen=True)

    school: str
    program: str
    project_id: Optional[str] = None
    facts: ExtractedFacts
    citations: list[Citation] = Field(default_factory=list)
    verdict: VerificationVerdict
    attempts: int = Field(..., ge=1, description="Fact extraction attempts, name variants included")
    variant_used: Optional[str] = None
    names_tried: list[str] = Field(default_factory=list)
    audit_notes: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
    source_url: str = ""
    raw_content: str = Field(..., min_length=1, description="Aggregate source text or fallback summary")
    search_query: Optional[str] = None
    inline_citations: list[InlineCitation] = Field(default_factory=list)
    verification_retried: bool = False
    total_cost_usd: float = 0.0
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def status(self) -> ExtractionStatus:
        return self.facts.status

    @property
    def confidence(self) -> ConfidenceTier:
        return self.verdict.confidence

    @property
    def verification_status(self) -> VerificationStatus:
        return self.verdict.status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")
