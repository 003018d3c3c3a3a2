"""Pydantic schemas for structured model replies.

This module contains:
- FinancialFactsPayload / CurriculumFactsPayload: grounded extraction replies
- CritiqueReply: verifier critique reply
- ParsedFacts / ParseFailure: tagged parse result
"""

from .extraction import (
    CritiqueReply,
    CurriculumFactsPayload,
    FinancialFactsPayload,
    ParsedFacts,
    ParseFailure,
    ParseResult,
    parse_model_reply,
)

__all__ = [
    "CritiqueReply",
    "CurriculumFactsPayload",
    "FinancialFactsPayload",
    "ParsedFacts",
    "ParseFailure",
    "ParseResult",
    "parse_model_reply",
]
