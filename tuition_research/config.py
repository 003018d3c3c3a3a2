"""
Central configuration for the tuition research pipeline.

Retry, variation and batch limits are passed into the pipeline explicitly
through PipelineConfig rather than read from module globals, so each
environment (and each test) can tune them.

Environment variables (all optional):
  - TUITION_DATA_DIR (default: ~/.tuition-research-data)
  - TUITION_MAX_RETRIES, TUITION_BASE_DELAY_MS, TUITION_MAX_DELAY_MS
  - TUITION_MAX_VARIATION_RETRIES, TUITION_MAX_BATCH_CONCURRENCY
  - TUITION_CONTENT_TRUNCATION_CHARS, TUITION_INTER_ITEM_DELAY
  - TUITION_SEARCH_MODEL, TUITION_CRITIQUE_MODEL
  - TUITION_ENABLE_AI_CRITIQUE, TUITION_RESOLVE_GROUNDING_REDIRECTS
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .constants import (
    ARITHMETIC_TOLERANCE,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_CONTENT_TRUNCATION_CHARS,
    DEFAULT_INTER_ITEM_DELAY_SECONDS,
    DEFAULT_MAX_BATCH_CONCURRENCY,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_VARIATION_RETRIES,
    MAX_CITATIONS,
)
from .judges.schemas.config import JudgeConfig
from .utils.backoff import BackoffPolicy


def get_data_dir() -> Path:
    """
    Get the local data directory used for stored extraction records.

    Uses TUITION_DATA_DIR environment variable if set, otherwise defaults
    to ~/.tuition-research-data/

    Returns:
        Path to data directory
    """
    env_path = os.environ.get("TUITION_DATA_DIR")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".tuition-research-data"


def get_records_dir() -> Path:
    """Get the extraction record storage directory."""
    return get_data_dir() / "records"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# Environment variable -> PipelineConfig field
_ENV_FIELDS = {
    "TUITION_MAX_RETRIES": "max_retries",
    "TUITION_BASE_DELAY_MS": "base_delay_ms",
    "TUITION_MAX_DELAY_MS": "max_delay_ms",
    "TUITION_MAX_VARIATION_RETRIES": "max_variation_retries",
    "TUITION_MAX_BATCH_CONCURRENCY": "max_batch_concurrency",
    "TUITION_CONTENT_TRUNCATION_CHARS": "content_truncation_chars",
    "TUITION_INTER_ITEM_DELAY": "inter_item_delay_seconds",
    "TUITION_SEARCH_MODEL": "search_model",
    "TUITION_CRITIQUE_MODEL": "critique_model",
    "TUITION_ENABLE_AI_CRITIQUE": "enable_ai_critique",
    "TUITION_RESOLVE_GROUNDING_REDIRECTS": "resolve_grounding_redirects",
}


@dataclass
class PipelineConfig:
    """Configuration for one pipeline instance.

    Attributes:
        max_retries: Extra attempts the backoff executor makes for transient errors
        base_delay_ms: Base delay for exponential backoff
        max_delay_ms: Cap on the exponential part of the backoff delay
        jitter: Add random jitter in [0, base_delay) to each delay
        max_variation_retries: Alternate program names tried after "Not Found"
        max_batch_concurrency: Pipeline runs in flight at once during a batch
        inter_item_delay_seconds: Minimum spacing between batch item starts
        content_truncation_chars: Budget for the aggregate citation excerpt text
        max_citations: Citations kept per record
        arithmetic_tolerance: Allowed relative gap between tuition and cost x credits
        enable_ai_critique: Run the LLM critique judge during verification
        resolve_grounding_redirects: Follow grounding redirect URLs with a HEAD request
        search_model: Gemini model used for grounded extraction
        critique_model: Model used for the critique judge
        max_output_tokens: Output cap for grounded extraction calls
        retry_on_recommendation: Re-extract once when verification recommends it
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    jitter: bool = True
    max_variation_retries: int = DEFAULT_MAX_VARIATION_RETRIES
    max_batch_concurrency: int = DEFAULT_MAX_BATCH_CONCURRENCY
    inter_item_delay_seconds: float = DEFAULT_INTER_ITEM_DELAY_SECONDS
    content_truncation_chars: int = DEFAULT_CONTENT_TRUNCATION_CHARS
    max_citations: int = MAX_CITATIONS
    arithmetic_tolerance: float = ARITHMETIC_TOLERANCE
    enable_ai_critique: bool = True
    resolve_grounding_redirects: bool = False
    search_model: str = "gemini-2.5-flash"
    critique_model: str = "gemini-2.5-flash"
    max_output_tokens: int = 2048
    retry_on_recommendation: bool = True

    def __post_init__(self):
        """Reject settings that would break the retry or batch bounds."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.max_variation_retries < 0:
            raise ValueError("max_variation_retries must be >= 0")
        if self.max_batch_concurrency < 1:
            raise ValueError("max_batch_concurrency must be >= 1")
        if self.content_truncation_chars < 1:
            raise ValueError("content_truncation_chars must be >= 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("backoff delays must be >= 0")

    def backoff_policy(self) -> BackoffPolicy:
        """Build the retry policy injected into the backoff executor."""
        return BackoffPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            jitter=self.jitter,
        )

    def judge_config(self) -> JudgeConfig:
        """Build the verifier configuration."""
        return JudgeConfig(
            arithmetic_tolerance=self.arithmetic_tolerance,
            enable_critique_judge=self.enable_ai_critique,
            critique_model=self.critique_model,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        """
        Build a config from TUITION_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        types = {f.name: f.type for f in fields(cls)}
        values: dict[str, Any] = {}
        for env_var, field_name in _ENV_FIELDS.items():
            raw = os.environ.get(env_var)
            if raw is None or raw == "":
                continue
            field_type = types[field_name]
            if field_type in (bool, "bool"):
                values[field_name] = _env_bool(raw)
            elif field_type in (int, "int"):
                values[field_name] = int(raw)
            elif field_type in (float, "float"):
                values[field_name] = float(raw)
            else:
                values[field_name] = raw
        values.update(overrides)
        return cls(**values)
