"""Pydantic schemas for the structured replies the pipeline asks models for.

This module contains:
- FinancialFactsPayload: Phase A (tuition and fees) reply
- CurriculumFactsPayload: Phase B (credits, length, name, STEM) reply
- CritiqueReply: Verifier critique reply
- ParsedFacts / ParseFailure: tagged result of parsing a reply
"""

import json
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...agents.gemini_search import locate_json_object
from ...utils.text_sanitizer import parse_program_length_months

_TEXT_FIELDS = (
    "tuition_amount",
    "tuition_period",
    "academic_year",
    "cost_per_credit",
    "total_credits",
    "program_length",
    "actual_program_name",
    "additional_fees",
    "remarks",
    "out_of_state_tuition",
)


def _to_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a", "not found", "unknown"):
        return None
    return text


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "y", "1", "stem", "stem-designated"):
        return True
    if text in ("false", "no", "n", "0"):
        return False
    return None


def _to_months(value: Any) -> Optional[int]:
    # "24", 24.0 and "24 months" all mean the same thing
    return parse_program_length_months(value)


def _normalize_status(value: Any) -> str:
    text = str(value or "").strip().lower().replace("_", " ").replace("-", " ")
    if text in ("not found", "notfound", "not available", "no data"):
        return "Not Found"
    if text in ("failed", "error"):
        return "Failed"
    return "Success"


class FinancialFactsPayload(BaseModel):
    """Phase A reply: tuition of record and fee details."""

    model_config = ConfigDict(extra="ignore")

    tuition_amount: Optional[str] = Field(None, description="Total program tuition, '$XX,XXX'")
    tuition_period: Optional[str] = Field(None, description="'full program', 'per year', 'per semester'")
    academic_year: Optional[str] = Field(None, description="e.g. '2025-2026'")
    cost_per_credit: Optional[str] = None
    total_credits: Optional[str] = None
    program_length: Optional[str] = None
    program_length_months: Optional[int] = None
    actual_program_name: Optional[str] = None
    is_stem: Optional[bool] = None
    additional_fees: Optional[str] = None
    out_of_state_tuition: Optional[str] = Field(None, description="Non-resident rate, never the tuition of record")
    remarks: Optional[str] = None
    status: str = "Success"

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _to_text(value)

    @field_validator("is_stem", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> Optional[bool]:
        return _to_bool(value)

    @field_validator("program_length_months", mode="before")
    @classmethod
    def _coerce_months(cls, value: Any) -> Optional[int]:
        return _to_months(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return _normalize_status(value)


class CurriculumFactsPayload(BaseModel):
    """Phase B reply: curriculum facts only."""

    model_config = ConfigDict(extra="ignore")

    total_credits: Optional[str] = None
    program_length: Optional[str] = None
    program_length_months: Optional[int] = None
    actual_program_name: Optional[str] = None
    is_stem: Optional[bool] = None
    status: str = "Success"

    @field_validator("total_credits", "program_length", "actual_program_name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _to_text(value)

    @field_validator("is_stem", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> Optional[bool]:
        return _to_bool(value)

    @field_validator("program_length_months", mode="before")
    @classmethod
    def _coerce_months(cls, value: Any) -> Optional[int]:
        return _to_months(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return _normalize_status(value)


class CritiqueReply(BaseModel):
    """Critique verdict on whether the cited text supports the facts."""

    model_config = ConfigDict(extra="ignore")

    source_supports_data: bool = Field(description="True only if the source text states the extracted figures")
    notes: str = Field("", description="One or two sentences explaining the judgement")
    alternative_search_query: Optional[str] = Field(None, description="Better query if a retry is warranted")

    @field_validator("source_supports_data", mode="before")
    @classmethod
    def _strict_bool(cls, value: Any) -> bool:
        parsed = _to_bool(value)
        if parsed is None:
            raise ValueError(f"source_supports_data must be a boolean, got {value!r}")
        return parsed

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("alternative_search_query", mode="before")
    @classmethod
    def _query_text(cls, value: Any) -> Optional[str]:
        return _to_text(value)


P = TypeVar("P", bound=BaseModel)


@dataclass
class ParsedFacts(Generic[P]):
    """A reply that parsed and validated cleanly."""

    payload: P
    raw_text: str


@dataclass
class ParseFailure:
    """A reply that could not be turned into the expected schema.

    The raw text is kept verbatim for audit.
    """

    reason: str
    raw_text: str


ParseResult = Union[ParsedFacts, ParseFailure]


def parse_model_reply(text: Optional[str], schema: type[P]) -> ParseResult:
    """
    Parse a model reply into ``schema``.

    The JSON object is located by its outermost balanced braces, so prose or
    markdown fences around it are tolerated. A reply cut off mid-object is a
    failure: its missing fields would otherwise read as defaults.
    """
    raw_text = text or ""
    if not raw_text.strip():
        return ParseFailure(reason="empty response", raw_text=raw_text)

    json_text, repaired = locate_json_object(raw_text)
    if repaired:
        return ParseFailure(reason="truncated reply", raw_text=raw_text)
    if json_text is None:
        return ParseFailure(reason="no JSON object found in response", raw_text=raw_text)

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        return ParseFailure(reason=f"invalid JSON: {e.msg}", raw_text=raw_text)

    if not isinstance(data, dict):
        return ParseFailure(reason=f"expected a JSON object, got {type(data).__name__}", raw_text=raw_text)

    try:
        payload = schema.model_validate(data)
    except ValidationError as e:
        return ParseFailure(reason=f"schema validation failed: {e.error_count()} error(s)", raw_text=raw_text)

    return ParsedFacts(payload=payload, raw_text=raw_text)
