"""Source Judge - do the citations come from the school itself?

Deterministic. Passes when at least one citation comes from an academic
domain (.edu, .ac.xx) that matches the school. Warns when the best source is
only plausibly official (another academic site, a non-academic domain that
names the school, or an unresolved grounding redirect whose title does).
Fails when there is no citation or every citation is unrelated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..utils.url_helpers import (
    domain_matches_school,
    get_domain,
    is_academic_domain,
    is_aggregator_domain,
    is_grounding_redirect,
)
from .base_judge import BaseJudge, JudgeType, VerificationContext
from .schemas.verdict import JudgeVerdict, Severity, ValidationIssue

if TYPE_CHECKING:
    from ..models.extraction import ExtractedFacts


class SourceJudge(BaseJudge):
    """Checks that facts are backed by the school's own pages."""

    @property
    def name(self) -> str:
        return "source"

    @property
    def judge_type(self) -> JudgeType:
        return JudgeType.DETERMINISTIC

    def validate(self, facts: ExtractedFacts, context: VerificationContext) -> JudgeVerdict:
        issues: list[ValidationIssue] = []
        citations = context.citations

        if not citations:
            self.add_issue(issues, Severity.ERROR, "citations", "No sources cited")
            return self.create_verdict(passed=False, issues=issues)

        official: list[str] = []
        plausible: list[str] = []
        aggregators: list[str] = []
        for citation in citations:
            domain = get_domain(citation.url)
            if not domain:
                continue
            if is_aggregator_domain(domain):
                aggregators.append(domain)
            elif domain_matches_school(domain, context.school):
                if is_academic_domain(domain):
                    official.append(domain)
                else:
                    # News sites and blogs can carry the school name too
                    plausible.append(domain)
            elif is_academic_domain(domain):
                plausible.append(domain)
            elif is_grounding_redirect(citation.url) and domain_matches_school(
                get_domain(citation.title) or citation.title.replace(" ", ""), context.school
            ):
                plausible.append(citation.title)

        metadata = {"official": official, "plausible": plausible, "aggregators": aggregators}

        if official:
            return self.create_verdict(
                passed=True,
                validations=[f"Official source: {official[0]}"],
                metadata=metadata,
            )

        if plausible:
            self.add_issue(
                issues,
                Severity.WARNING,
                "citations",
                f"Source {plausible[0]} may not belong to {context.school}",
            )
            return self.create_verdict(passed=True, issues=issues, metadata=metadata)

        if aggregators:
            message = f"Only third-party sources cited: {', '.join(aggregators)}"
        else:
            message = f"No cited source matches {context.school}"
        self.add_issue(issues, Severity.ERROR, "citations", message)
        return self.create_verdict(passed=False, issues=issues, metadata=metadata)
