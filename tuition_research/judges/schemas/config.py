"""Configuration for the verification judges.

Two judge categories:
- **Deterministic judges**: Pure Python, rule-based (no LLM cost, fully reproducible)
- **LLM judges**: The critique judge, which asks a model whether the cited
  text supports the extracted facts

Defines thresholds, bounds and model selection.
"""

from dataclasses import dataclass, field
from typing import Optional

from ...constants import (
    ARITHMETIC_TOLERANCE,
    ARITHMETIC_WARN_TOLERANCE,
    CALCULATED_TOTAL_TOLERANCE,
    PLAUSIBILITY_BOUNDS,
)


@dataclass
class JudgeConfig:
    """Configuration for the verifier and its judges.

    Attributes:
        arithmetic_tolerance: Relative gap between tuition and cost x credits that passes
        arithmetic_warn_tolerance: Gap up to which the arithmetic check only warns
        calculated_total_tolerance: Allowed gap for a model-reported calculated total
        plausibility_bounds: (min, max) per numeric field
        enable_critique_judge: Run the LLM critique
        critique_model: Model for the critique judge
        critique_excerpt_chars: Source text sent to the critique, per request
        current_year: Override for the academic-year staleness check (tests)
    """

    arithmetic_tolerance: float = ARITHMETIC_TOLERANCE
    arithmetic_warn_tolerance: float = ARITHMETIC_WARN_TOLERANCE
    calculated_total_tolerance: float = CALCULATED_TOTAL_TOLERANCE
    plausibility_bounds: dict[str, tuple[float, float]] = field(default_factory=lambda: dict(PLAUSIBILITY_BOUNDS))

    enable_critique_judge: bool = True
    critique_model: str = "gemini-2.5-flash"
    critique_excerpt_chars: int = 1500

    current_year: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.arithmetic_tolerance <= self.arithmetic_warn_tolerance:
            raise ValueError("arithmetic_tolerance must be between 0 and arithmetic_warn_tolerance")
