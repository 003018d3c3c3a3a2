"""Abstract base classes for verification judges.

Two judge types:
- **Deterministic judges**: Pure Python, rule-based validation (arithmetic,
  source domain, completeness, plausibility bounds). No LLM calls. Fully
  reproducible.
- **LLM judges**: Use an LLM for the semantic question of whether the cited
  source text actually states the extracted figures. Non-deterministic by
  nature.

Both types are first-class and run in every verification pass.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from ..llm.llm_client import LLMClient, LLMTask
from .schemas.config import JudgeConfig
from .schemas.verdict import CheckResult, JudgeVerdict, Severity, ValidationIssue

if TYPE_CHECKING:
    from ..models.extraction import Citation, ExtractedFacts


class JudgeType(Enum):
    """Classification of judge validation approach.

    DETERMINISTIC: Pure Python rules - no LLM calls, fully reproducible.
    LLM: Uses LLM for semantic understanding - non-deterministic, has cost.
    """

    DETERMINISTIC = "deterministic"
    LLM = "llm"


logger = logging.getLogger(__name__)

# Prompts directory relative to this file
PROMPTS_DIR = Path(__file__).parent / "prompts"


@dataclass
class VerificationContext:
    """What the facts are checked against: who they describe and where they came from."""

    school: str
    program: str
    citations: list[Citation] = field(default_factory=list)
    raw_content: str = ""
    # Deterministic results, shown to the critique judge
    prior_checks: list[CheckResult] = field(default_factory=list)


class BaseJudge(ABC):
    """Abstract base class for verification judges.

    Each judge focuses on one verification concern and produces a
    JudgeVerdict that the Verifier turns into a check row.

    Subclasses must implement:
        - validate(): Core validation logic
        - name: Property returning the judge's name
        - judge_type: Property returning JudgeType.DETERMINISTIC or JudgeType.LLM
    """

    def __init__(self, config: JudgeConfig, llm_client: Optional[LLMClient] = None):
        """Initialize the judge with configuration.

        Args:
            config: Judge configuration with model, thresholds, etc.
            llm_client: Pre-built client (tests inject a fake here)
        """
        self.config = config
        self._llm_client = llm_client
        self._prompt_template: Optional[str] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the judge's name (e.g., 'arithmetic', 'critique')."""
        pass

    @property
    @abstractmethod
    def judge_type(self) -> JudgeType:
        """Return the judge's type: DETERMINISTIC or LLM."""
        pass

    @property
    def prompt_file(self) -> Path:
        """Path to the prompt template file for this judge."""
        return PROMPTS_DIR / f"{self.name}_judge.txt"

    def get_llm_client(self) -> LLMClient:
        """Get or create the LLM client for this judge."""
        if self._llm_client is None:
            self._llm_client = LLMClient(
                task=LLMTask.CRITIQUE,
                model=self.config.critique_model,
            )
        return self._llm_client

    def load_prompt_template(self) -> str:
        """Load the prompt template from file."""
        if self._prompt_template is None:
            if self.prompt_file.exists():
                self._prompt_template = self.prompt_file.read_text()
            else:
                logger.warning(f"Prompt file not found: {self.prompt_file}")
                self._prompt_template = ""
        return self._prompt_template

    def format_prompt(self, substitutions: dict[str, Any]) -> str:
        """Fill ``{name}`` placeholders in the prompt template.

        Plain string replacement, so JSON braces in the template need no escaping.
        """
        result = self.load_prompt_template()
        for key, value in substitutions.items():
            result = result.replace(f"{{{key}}}", str(value))
        return result

    @abstractmethod
    def validate(self, facts: ExtractedFacts, context: VerificationContext) -> JudgeVerdict:
        """Validate extracted facts.

        Args:
            facts: Facts produced by the fact extractor
            context: School, program and the citations backing the facts

        Returns:
            JudgeVerdict with pass/fail status and any issues found
        """
        pass

    def create_verdict(
        self,
        passed: bool,
        issues: Optional[list[ValidationIssue]] = None,
        validations: Optional[list[str]] = None,
        skipped: bool = False,
        skip_reason: Optional[str] = None,
        cost_usd: float = 0.0,
        metadata: Optional[dict[str, Any]] = None,
    ) -> JudgeVerdict:
        """Create a verdict with this judge's name.

        Helper method to construct JudgeVerdict with common fields.
        """
        return JudgeVerdict(
            passed=passed,
            judge_name=self.name,
            issues=issues or [],
            validations=validations or [],
            skipped=skipped,
            skip_reason=skip_reason,
            cost_usd=cost_usd,
            metadata=metadata or {},
        )

    def skip(self, reason: str) -> JudgeVerdict:
        """Verdict for a judge that does not apply to these facts."""
        return self.create_verdict(passed=True, skipped=True, skip_reason=reason)

    def add_issue(
        self,
        issues: list[ValidationIssue],
        severity: Severity,
        field: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        evidence: Optional[str] = None,
    ) -> None:
        """Add a validation issue to the list.

        Helper method for building issue lists during validation.
        """
        issues.append(
            ValidationIssue(
                severity=severity,
                field=field,
                message=message,
                details=details,
                evidence=evidence,
            )
        )

    def compute_prompt_hash(self, prompt: str) -> str:
        """Compute a hash of the prompt for tracking/caching."""
        return hashlib.sha256(prompt.encode()).hexdigest()[:12]
