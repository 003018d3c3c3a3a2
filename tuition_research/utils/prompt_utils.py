"""Prompt utilities for LLM interactions.

Shared utilities for sanitizing and preparing text for LLM prompts.
"""

import re
from typing import Any

from ..constants import PROGRAM_NAME_MAX_LENGTH

# Phrases that try to override the surrounding instructions
INJECTION_PATTERNS = [
    r"ignore\s+(all\s+)?(previous|prior|above)\s+instructions?",
    r"disregard\s+(all\s+)?(previous|prior|above)",
    r"new\s+instructions?\s*:",
    r"system\s+prompt",
    r"you\s+are\s+now",
    r"\bact\s+as\b",
    r"\bpretend\b",
    r"role\s*play\s+as",
    r"from\s+now\s+on",
    r"forget\s+everything",
]


def sanitize_for_prompt(text: Any, max_length: int = PROGRAM_NAME_MAX_LENGTH) -> str:
    """Sanitize text to prevent prompt injection.

    Removes dangerous patterns that could break prompt boundaries or inject
    instructions. Also truncates excessively long content.

    Args:
        text: The text to sanitize (will be converted to string if not already)
        max_length: Maximum allowed length before truncation

    Returns:
        Sanitized string safe for prompt insertion
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)

    # Remove potential prompt delimiters and instruction markers
    dangerous_patterns = [
        r"\n-{3,}\n",  # Markdown horizontal rules (----)
        r"\n#{1,6}\s",  # Markdown headers that could inject sections
        r"<\|.*?\|>",  # Special tokens like <|im_start|>
        r"\[INST\]|\[/INST\]",  # Llama instruction markers
        r"<<SYS>>|<</SYS>>",  # Llama system markers
        r"Human:|Assistant:",  # Anthropic-style markers
        r"```",  # Code fences
    ]
    result = text
    for pattern in dangerous_patterns + INJECTION_PATTERNS:
        result = re.sub(pattern, " ", result, flags=re.IGNORECASE)

    # Names end up inside quoted search terms
    result = result.replace('"', "'")
    result = re.sub(r"\s+", " ", result)

    if len(result) > max_length:
        result = result[:max_length]

    return result.strip()
