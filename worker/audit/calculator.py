"""Score calculator with "Show the Math" functionality.

One pure ``recompute`` serves both the post-generation path and the
post-edit path, so the two can never drift. Category scores come from
structural pass counting, not from the generator's self-reported numbers.
"""

import copy
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import structlog

from worker.audit.models import (
    CRITICAL_SEVERITIES,
    AssertionStatus,
    AuditDocument,
    Category,
    CriticalIssue,
    PxlFactors,
    ScoreMode,
)
from worker.audit.rubric import (
    CATEGORY_ORDER,
    CATEGORY_WEIGHTS,
    PXL_FACTOR_WEIGHTS,
    RUBRIC_VERSION,
    CategoryKey,
)

logger = structlog.get_logger(__name__)

MAX_CRITICAL_ISSUES = 5
ISSUE_TITLE_LENGTH = 100


def is_number(value: object) -> bool:
    """Check for a finite int or float that is not a bool."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def clamp_score(value: float) -> int:
    """Round and clamp a score into [0, 100]."""
    return max(0, min(100, round_half_up(value)))


def calculate_pxl_score(factors: PxlFactors) -> int:
    """Weighted sum of the PXL factors that are set (max 100)."""
    return sum(weight for key, weight in PXL_FACTOR_WEIGHTS.items() if factors.get(key))


def calculate_category_score(category: Category) -> int:
    """Percentage of passing assertions; 0 for an empty category."""
    total = len(category.assertions)
    if total == 0:
        return 0
    passed = category.count(AssertionStatus.PASS)
    return round_half_up(100 * passed / total)


def calculate_overall_score(category_scores: Iterable[int]) -> int:
    """Unweighted mean of the category scores."""
    scores = list(category_scores)
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def calculate_weighted_score(category_scores: Mapping[CategoryKey, int]) -> int:
    """Overall score using the generation-time category weights.

    Informational only: never written into a document.
    """
    total = sum(category_scores[key] * CATEGORY_WEIGHTS[key] for key in CATEGORY_ORDER)
    return round_half_up(total)


def extract_critical_issues(
    categories: Mapping[CategoryKey, Category],
) -> list[CriticalIssue]:
    """Collect failed critical/high assertions in category order, first five."""
    issues: list[CriticalIssue] = []
    for key in CATEGORY_ORDER:
        category = categories[key]
        for assertion in category.assertions:
            if assertion.status != AssertionStatus.FAIL:
                continue
            if assertion.severity not in CRITICAL_SEVERITIES:
                continue
            issues.append(
                CriticalIssue(
                    id=assertion.id,
                    category=category.name,
                    title=assertion.evidence[:ISSUE_TITLE_LENGTH] or assertion.name,
                    impact=assertion.severity.value,
                )
            )
    return issues[:MAX_CRITICAL_ISSUES]


def recompute(document: AuditDocument) -> AuditDocument:
    """Recompute every derived field and return a new document.

    Tests are not re-sorted here; only repair establishes rank order.
    """
    result = copy.deepcopy(document)

    for _, category in result.categories():
        category.score = calculate_category_score(category)

    result.overall_score = calculate_overall_score(
        category.score for _, category in result.categories()
    )
    result.critical_issues = extract_critical_issues(result.lift_categories)

    for test in result.tests:
        if test.pxl_score_mode == ScoreMode.DERIVED:
            test.pxl_score = calculate_pxl_score(test.pxl_factors)

    logger.debug(
        "scores_recomputed",
        url=result.url,
        overall_score=result.overall_score,
        critical_issues=len(result.critical_issues),
    )
    return result


@dataclass
class CategoryBreakdown:
    """Score breakdown for one category."""

    key: CategoryKey
    name: str
    is_inhibitor: bool
    weight: float
    total: int
    passed: int
    failed: int
    warnings: int
    score: int

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "key": self.key.value,
            "name": self.name,
            "is_inhibitor": self.is_inhibitor,
            "weight": self.weight,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "score": self.score,
        }


@dataclass
class ScoreBreakdown:
    """Complete score breakdown with full transparency."""

    overall_score: int  # Unweighted mean, the authoritative value
    weighted_score: int  # Generation-time weighting, for comparison
    categories: list[CategoryBreakdown]
    critical_issue_count: int
    rubric_version: str = RUBRIC_VERSION
    calculation_summary: list[str] = field(default_factory=list)

    @property
    def weighting_gap(self) -> int:
        """Difference between the weighted and the unweighted overall score."""
        return self.weighted_score - self.overall_score

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "overall_score": self.overall_score,
            "weighted_score": self.weighted_score,
            "weighting_gap": self.weighting_gap,
            "categories": [c.to_dict() for c in self.categories],
            "critical_issue_count": self.critical_issue_count,
            "rubric_version": self.rubric_version,
            "calculation_summary": self.calculation_summary,
        }

    def show_the_math(self) -> str:
        """Generate human-readable calculation breakdown."""
        lines = [
            "=" * 60,
            "LIFT SCORE CALCULATION BREAKDOWN",
            "=" * 60,
            "",
            f"Overall Score: {self.overall_score}/100",
            "",
            "CATEGORIES:",
            "-" * 40,
        ]
        for cat in self.categories:
            label = f"{cat.name} (inhibitor)" if cat.is_inhibitor else cat.name
            lines.append(
                f"  {label}: {cat.passed}/{cat.total} passed -> {cat.score}/100"
            )
        lines.extend(["", "CALCULATION:", "-" * 40])
        lines.extend(f"  {step}" for step in self.calculation_summary)
        lines.extend(
            [
                "",
                f"Weighted comparison score: {self.weighted_score}/100 "
                f"({self.weighting_gap:+d} vs. unweighted)",
                f"Rubric version: {self.rubric_version}",
                "=" * 60,
            ]
        )
        return "\n".join(lines)


def score_breakdown(document: AuditDocument) -> ScoreBreakdown:
    """Explain how the derived scores of a document are obtained."""
    categories: list[CategoryBreakdown] = []
    scores: dict[CategoryKey, int] = {}
    steps: list[str] = []

    for key, category in document.categories():
        score = calculate_category_score(category)
        scores[key] = score
        categories.append(
            CategoryBreakdown(
                key=key,
                name=category.name,
                is_inhibitor=category.is_inhibitor,
                weight=CATEGORY_WEIGHTS[key],
                total=len(category.assertions),
                passed=category.count(AssertionStatus.PASS),
                failed=category.count(AssertionStatus.FAIL),
                warnings=category.count(AssertionStatus.WARNING),
                score=score,
            )
        )
        if category.assertions:
            steps.append(
                f"{category.name}: round(100 * {category.count(AssertionStatus.PASS)}"
                f" / {len(category.assertions)}) = {score}"
            )
        else:
            steps.append(f"{category.name}: no assertions = 0")

    overall = calculate_overall_score(scores.values())
    steps.append(f"Overall: round(({' + '.join(str(s) for s in scores.values())}) / 6) = {overall}")

    return ScoreBreakdown(
        overall_score=overall,
        weighted_score=calculate_weighted_score(scores),
        categories=categories,
        critical_issue_count=len(extract_critical_issues(document.lift_categories)),
        calculation_summary=steps,
    )
