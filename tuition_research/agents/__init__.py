"""
Grounded extraction using Gemini Search Grounding.

This package contains the GeminiSearchClient which uses Google's
search grounding feature to find tuition facts on official school pages.
"""

from .gemini_search import GeminiSearchClient, SearchGroundingResult, locate_json_object

__all__ = [
    "GeminiSearchClient",
    "SearchGroundingResult",
    "locate_json_object",
]
