"""Verdict schemas for verification results.

Defines the per-judge result types (issues, pass/warn/fail outcome) and the
aggregated VerificationVerdict attached to every extraction record.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """Severity level for validation issues."""

    ERROR = "error"  # Check fails
    WARNING = "warning"  # Logged, shown to reviewers, does not fail the check
    INFO = "info"  # Informational, for debugging


class CheckOutcome(str, Enum):
    """Outcome of one deterministic check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    SKIP = "skip"  # Not applicable (operands missing)


class VerificationStatus(str, Enum):
    """What should happen to a record next."""

    PASS = "pass"
    NEEDS_REVIEW = "needs_review"
    RETRY_RECOMMENDED = "retry_recommended"


class ConfidenceTier(str, Enum):
    """Calibrated trust in a record."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass(frozen=True)
class ValidationIssue:
    """A specific validation issue found by a judge.

    Attributes:
        severity: How serious the issue is (error, warning, info)
        field: The field or component where the issue was found
        message: Human-readable description of the issue
        details: Optional structured data about the issue
        evidence: Supporting evidence for why this is an issue
    """

    severity: Severity
    field: str
    message: str
    details: Optional[dict[str, Any]] = None
    evidence: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "field": self.field,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.evidence:
            result["evidence"] = self.evidence
        return result


@dataclass
class JudgeVerdict:
    """Result from a single judge's validation.

    Attributes:
        passed: Whether the validation passed (no errors)
        judge_name: Name of the judge that produced this verdict
        issues: List of validation issues found
        validations: Human-readable notes on what checked out
        skipped: Whether this judge was skipped (e.g., not applicable)
        skip_reason: Why the judge was skipped
        cost_usd: Estimated cost of LLM calls for this validation
        metadata: Additional judge-specific metadata
    """

    passed: bool
    judge_name: str
    issues: list[ValidationIssue] = field(default_factory=list)
    validations: list[str] = field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None
    cost_usd: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def errors(self) -> list[ValidationIssue]:
        """Get only error-severity issues."""
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        """Get only warning-severity issues."""
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def outcome(self) -> CheckOutcome:
        if self.skipped:
            return CheckOutcome.SKIP
        if not self.passed or self.errors:
            return CheckOutcome.FAIL
        if self.warnings:
            return CheckOutcome.WARN
        return CheckOutcome.PASS

    def explanation(self) -> str:
        """Issues first, then validations, as one sentence list."""
        if self.skipped:
            return self.skip_reason or "Not applicable"
        notes = [i.message for i in self.errors] + [i.message for i in self.warnings]
        if not notes:
            notes = self.validations
        return "; ".join(notes) if notes else "OK"

    def to_check(self) -> "CheckResult":
        return CheckResult(
            name=self.judge_name,
            outcome=self.outcome,
            explanation=self.explanation(),
            details={**self.metadata, "issues": [i.to_dict() for i in self.issues]} if self.issues else dict(self.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "passed": self.passed,
            "judge_name": self.judge_name,
            "issues": [i.to_dict() for i in self.issues],
            "validations": self.validations,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "cost_usd": self.cost_usd,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class CheckResult:
    """One row of the verification table: check name, outcome, explanation."""

    name: str
    outcome: CheckOutcome
    explanation: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.outcome == CheckOutcome.FAIL

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "explanation": self.explanation,
            "details": self.details,
        }


@dataclass(frozen=True)
class CritiqueResult:
    """Structured reply of the AI critique.

    ``supports_facts`` is False whenever the critique could not be obtained,
    so an unavailable critique never counts as support.
    """

    supports_facts: bool
    notes: str = ""
    suggested_search_query: Optional[str] = None
    available: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "supports_facts": self.supports_facts,
            "notes": self.notes,
            "suggested_search_query": self.suggested_search_query,
            "available": self.available,
        }


@dataclass(frozen=True)
class VerificationVerdict:
    """Aggregated verification result for one extraction.

    Invariants: RETRY_RECOMMENDED implies LOW confidence; HIGH confidence
    implies every deterministic check passed and the critique affirmed
    support. Frozen, like the check and critique results it holds.
    """

    status: VerificationStatus
    confidence: ConfidenceTier
    checks: list[CheckResult] = field(default_factory=list)
    critique: Optional[CritiqueResult] = None
    completeness_score: int = 0
    reasoning: str = ""
    cost_usd: float = 0.0

    def __post_init__(self):
        if self.status == VerificationStatus.RETRY_RECOMMENDED and self.confidence != ConfidenceTier.LOW:
            raise ValueError("RETRY_RECOMMENDED verdicts must have LOW confidence")
        if self.confidence == ConfidenceTier.HIGH:
            if any(c.outcome == CheckOutcome.FAIL for c in self.checks):
                raise ValueError("HIGH confidence requires every deterministic check to pass")
            if self.critique is None or not self.critique.supports_facts:
                raise ValueError("HIGH confidence requires the critique to affirm support")

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [c for c in self.checks if c.outcome == CheckOutcome.FAIL]

    @property
    def issue_count(self) -> int:
        """Failed checks plus a critique that denied support."""
        denied = 1 if self.critique is not None and self.critique.available and not self.critique.supports_facts else 0
        return len(self.failed_checks) + denied

    @property
    def retry_recommended(self) -> bool:
        return self.status == VerificationStatus.RETRY_RECOMMENDED

    def check(self, name: str) -> Optional[CheckResult]:
        """Look up a check by name."""
        for result in self.checks:
            if result.name == name:
                return result
        return None

    def rank(self) -> tuple[int, int]:
        """Sort key: higher is better (confidence first, then fewer issues)."""
        order = {ConfidenceTier.LOW: 0, ConfidenceTier.MEDIUM: 1, ConfidenceTier.HIGH: 2}
        return order[self.confidence], -self.issue_count

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "confidence": self.confidence.value,
            "checks": [c.to_dict() for c in self.checks],
            "critique": self.critique.to_dict() if self.critique else None,
            "completeness_score": self.completeness_score,
            "reasoning": self.reasoning,
            "cost_usd": self.cost_usd,
        }
