"""
LiteLLM client for the ungrounded calls of the pipeline.

Only the verification critique goes through here; grounded extraction talks
to Gemini directly (agents/gemini_search.py) because LiteLLM does not expose
the grounding metadata.

Retrying on the same model is the job of the BackoffExecutor that wraps
every call. This client only moves to a fallback model, and only when the
error is transient.

Usage:
    from tuition_research.llm.llm_client import LLMClient, LLMTask

    client = LLMClient(task=LLMTask.CRITIQUE)
    response = client.generate(prompt, json_schema=CritiqueReply.model_json_schema())
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import litellm
from litellm import completion, completion_cost

from ..utils.backoff import classify_transient
from ..utils.logger import log_event

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)


# =============================================================================
# MODELS
# =============================================================================

MODEL_GEMINI_25_PRO = "gemini-2.5-pro"
MODEL_GEMINI_25_FLASH = "gemini-2.5-flash"
MODEL_GEMINI_25_FLASH_LITE = "gemini-2.5-flash-lite"
MODEL_GPT4O_MINI = "gpt-4o-mini"

# Per-1M-token prices used when LiteLLM cannot price a response itself
MODEL_REGISTRY: Dict[str, Dict[str, Any]] = {
    MODEL_GEMINI_25_PRO: {
        "litellm_name": "gemini/gemini-2.5-pro",
        "provider": "google",
        "cost_per_1m_input": 1.25,
        "cost_per_1m_output": 10.00,
    },
    MODEL_GEMINI_25_FLASH: {
        "litellm_name": "gemini/gemini-2.5-flash",
        "provider": "google",
        "cost_per_1m_input": 0.30,
        "cost_per_1m_output": 2.50,
    },
    MODEL_GEMINI_25_FLASH_LITE: {
        "litellm_name": "gemini/gemini-2.5-flash-lite",
        "provider": "google",
        "cost_per_1m_input": 0.10,
        "cost_per_1m_output": 0.40,
    },
    MODEL_GPT4O_MINI: {
        "litellm_name": "gpt-4o-mini",
        "provider": "openai",
        "cost_per_1m_input": 0.15,
        "cost_per_1m_output": 0.60,
    },
}


class LLMTask(Enum):
    """Ungrounded tasks and their model choice."""

    # Does the cited source text state the extracted tuition facts?
    CRITIQUE = "critique"


# Task -> (primary_model, fallback_models)
TASK_MODELS: Dict[LLMTask, Tuple[str, List[str]]] = {
    LLMTask.CRITIQUE: (MODEL_GEMINI_25_FLASH, [MODEL_GEMINI_25_FLASH_LITE]),
}

# Increment when a prompt template under judges/prompts changes
PROMPT_VERSIONS: Dict[str, str] = {
    "critique": "v1.1.0",
}


def get_prompt_version(task_name: str) -> str:
    """Get the current prompt version for a task."""
    return PROMPT_VERSIONS.get(task_name, "v0.0.0")


@dataclass
class LLMResponse:
    """Text and accounting for one completion."""

    text: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    finish_reason: Optional[str] = None

    prompt_version: str = ""
    prompt_hash: str = ""  # SHA256 prefix of the prompt actually sent
    timestamp: str = ""
    task: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _response_format(json_schema: Optional[Dict], json_mode: bool) -> Optional[Dict[str, Any]]:
    if json_schema:
        return {
            "type": "json_schema",
            "json_schema": {"name": json_schema.get("title", "reply"), "schema": json_schema},
        }
    if json_mode:
        return {"type": "json_object"}
    return None


class LLMClient:
    """
    Critique model client with fallback on transient errors.

    Args:
        task: Task whose primary/fallback models are used
        model: Specific model (overrides task; fallbacks still come from the task)
        api_keys: provider -> API key, exported for LiteLLM when not already set
    """

    def __init__(
        self,
        task: LLMTask = LLMTask.CRITIQUE,
        model: Optional[str] = None,
        api_keys: Optional[Dict[str, str]] = None,
    ):
        self.task = task
        self._export_api_keys(api_keys or {})

        primary, fallbacks = TASK_MODELS[task]
        if model is not None and model not in MODEL_REGISTRY:
            raise ValueError(f"Unknown model: {model}. Available: {sorted(MODEL_REGISTRY)}")
        self.model_name = model or primary
        self.fallback_models = [m for m in fallbacks if m != self.model_name]

        logger.info(f"LLM client initialized: {self.model_name} (fallbacks: {self.fallback_models})")

    @staticmethod
    def _export_api_keys(api_keys: Dict[str, str]):
        """LiteLLM reads keys from the environment; placeholders are skipped."""
        key_map = {
            "GEMINI_API_KEY": api_keys.get("google") or os.environ.get("GOOGLE_API_KEY"),
            "OPENAI_API_KEY": api_keys.get("openai"),
        }
        for env_var, value in key_map.items():
            if value and not value.startswith("your_") and not os.environ.get(env_var):
                os.environ[env_var] = value

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        json_schema: Optional[Dict] = None,
        prompt_version: Optional[str] = None,
    ) -> LLMResponse:
        """
        Run one completion, moving to the next fallback model on a transient error.

        A ``json_schema`` implies JSON output. Non-transient errors (bad key,
        invalid request) are raised immediately; so is the last model's error.
        """
        models = [self.model_name] + self.fallback_models
        prompt_hash = hashlib.sha256(f"{system_prompt or ''}|||{prompt}".encode()).hexdigest()[:16]

        for position, model_name in enumerate(models):
            try:
                return self._complete(
                    model_name,
                    prompt,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    response_format=_response_format(json_schema, json_mode),
                    prompt_version=prompt_version or get_prompt_version(self.task.value),
                    prompt_hash=prompt_hash,
                )
            except Exception as e:
                kind = classify_transient(e)
                if kind is None or position == len(models) - 1:
                    raise
                log_event(
                    logger,
                    logging.WARNING,
                    "Falling back to next model",
                    model=model_name,
                    fallback=models[position + 1],
                    transient_kind=kind.value,
                    error=type(e).__name__,
                )

        raise RuntimeError("No models configured")

    def _complete(
        self,
        model_name: str,
        prompt: str,
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
        response_format: Optional[Dict[str, Any]],
        prompt_version: str,
        prompt_hash: str,
    ) -> LLMResponse:
        model_config = MODEL_REGISTRY[model_name]

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": model_config["litellm_name"],
            "messages": messages,
            "temperature": temperature,
            "timeout": 60,
            "drop_params": True,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if response_format:
            kwargs["response_format"] = response_format

        response = completion(**kwargs)
        if not response.choices:
            raise RuntimeError(f"LLM API returned no choices (model: {model_name})")

        usage = getattr(response, "usage", None)
        input_tokens = (getattr(usage, "prompt_tokens", 0) or 0) if usage else 0
        output_tokens = (getattr(usage, "completion_tokens", 0) or 0) if usage else 0

        try:
            cost = completion_cost(completion_response=response)
        except Exception:
            cost = (
                input_tokens * model_config["cost_per_1m_input"] + output_tokens * model_config["cost_per_1m_output"]
            ) / 1_000_000

        result = LLMResponse(
            text=response.choices[0].message.content or "",
            model=model_name,
            provider=model_config["provider"],
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost or 0.0,
            finish_reason=response.choices[0].finish_reason,
            prompt_version=prompt_version,
            prompt_hash=prompt_hash,
            timestamp=datetime.now(timezone.utc).isoformat(),
            task=self.task.value,
            metadata={"raw_response_id": getattr(response, "id", None)},
        )
        log_event(
            logger,
            logging.DEBUG,
            "LLM call",
            model=model_name,
            tokens=f"{input_tokens}->{output_tokens}",
            cost_usd=f"{result.cost_usd:.6f}",
        )
        return result
