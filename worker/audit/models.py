"""Canonical audit document model.

The document is the single root; every substructure is owned by its
parent. Attributes are snake_case, and ``to_dict()`` produces the
camelCase wire shape that is stored and served.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import ClassVar

from worker.audit.rubric import CATEGORY_ORDER, CategoryKey


class AssertionStatus(StrEnum):
    """Outcome of a single assertion."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"  # Partial implementation or insufficient data


class Severity(StrEnum):
    """Severity of an assertion."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Priority(StrEnum):
    """Priority of a proposed experiment."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Effort(StrEnum):
    """Implementation effort."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Impact(StrEnum):
    """Expected impact of a change."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScoreMode(StrEnum):
    """Whether a scored field is derived from the data or frozen by a human."""

    DERIVED = "derived"
    OVERRIDDEN = "overridden"


CUSTOM_ORIGIN = "custom"
EVIDENCE_PLACEHOLDER = "No evidence provided"
CONTROL_VARIANT = "Control"

# Severities that turn a failed assertion into a critical issue
CRITICAL_SEVERITIES = frozenset({Severity.CRITICAL, Severity.HIGH})


@dataclass
class Assertion:
    """One judgment within a category."""

    id: str
    name: str
    question: str
    status: AssertionStatus
    severity: Severity
    evidence: str
    recommendation: str | None = None  # Always None when status is pass
    edited: bool = False
    origin: str | None = None

    @property
    def is_custom(self) -> bool:
        """Whether a human authored this assertion."""
        return self.origin == CUSTOM_ORIGIN

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = {
            "id": self.id,
            "name": self.name,
            "question": self.question,
            "status": self.status.value,
            "severity": self.severity.value,
            "evidence": self.evidence,
            "recommendation": self.recommendation,
        }
        if self.edited:
            data["_edited"] = True
        if self.origin:
            data["_origin"] = self.origin
        return data


@dataclass
class Category:
    """A LIFT category with its assertions."""

    name: str
    short_name: str
    description: str
    score: int
    is_inhibitor: bool
    assertions: list[Assertion] = field(default_factory=list)

    def find_assertion(self, assertion_id: str) -> Assertion | None:
        """Get the first assertion with a matching id."""
        for assertion in self.assertions:
            if assertion.id == assertion_id:
                return assertion
        return None

    def count(self, status: AssertionStatus) -> int:
        """Count assertions with the given status."""
        return sum(1 for a in self.assertions if a.status == status)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "shortName": self.short_name,
            "score": self.score,
            "description": self.description,
            "isInhibitor": self.is_inhibitor,
            "assertions": [a.to_dict() for a in self.assertions],
        }


@dataclass
class CriticalIssue:
    """Derived highlight of a failed, high-severity assertion."""

    id: str  # Assertion id
    category: str  # Category display name
    title: str
    impact: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "category": self.category,
            "title": self.title,
            "impact": self.impact,
        }


@dataclass
class QuickWin:
    """Low-effort, high-impact change. Authored, never derived."""

    title: str
    current: str
    suggested: str
    effort: Effort = Effort.EASY
    impact: Impact = Impact.MEDIUM
    edited: bool = False
    origin: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = {
            "title": self.title,
            "current": self.current,
            "suggested": self.suggested,
            "effort": self.effort.value,
            "impact": self.impact.value,
        }
        if self.edited:
            data["_edited"] = True
        if self.origin:
            data["_origin"] = self.origin
        return data


@dataclass
class Variant:
    """One arm of an A/B test."""

    name: str
    description: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"name": self.name, "description": self.description}


def variant_name(index: int) -> str:
    """Default name for the variant at ``index`` (Control, Variant A, B, ...)."""
    if index == 0:
        return CONTROL_VARIANT
    return f"Variant {chr(ord('A') + index - 1)}"


def default_variants() -> list[Variant]:
    """The canonical Control / Variant A pair."""
    return [
        Variant(name=CONTROL_VARIANT, description="Current state"),
        Variant(name=variant_name(1), description="Proposed change"),
    ]


@dataclass
class PxlFactors:
    """The six boolean PXL prioritization factors."""

    above_fold: bool = False
    noticeable_in_5_sec: bool = False
    run_on_high_traffic: bool = False
    affects_all_users: bool = False
    easy_to_implement: bool = False
    evidence_backed: bool = False

    # Wire key -> attribute name
    WIRE_KEYS: ClassVar[dict[str, str]] = {
        "aboveFold": "above_fold",
        "noticeableIn5Sec": "noticeable_in_5_sec",
        "runOnHighTraffic": "run_on_high_traffic",
        "affectsAllUsers": "affects_all_users",
        "easyToImplement": "easy_to_implement",
        "evidenceBacked": "evidence_backed",
    }

    def get(self, factor_key: str) -> bool:
        """Get a factor by its wire key."""
        value: bool = getattr(self, self.WIRE_KEYS[factor_key])
        return value

    def toggled(self, factor_key: str) -> "PxlFactors":
        """Return a copy with one factor flipped."""
        attr = self.WIRE_KEYS[factor_key]
        return replace(self, **{attr: not getattr(self, attr)})

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {wire: getattr(self, attr) for wire, attr in self.WIRE_KEYS.items()}


@dataclass
class AbTest:
    """A proposed experiment, ranked by PXL score."""

    id: int | str
    priority: Priority
    pxl_score: int
    title: str
    hypothesis: str
    assertion_id: str
    category: str
    variants: list[Variant]  # At least two, first is Control
    expected_impact: Impact
    implementation_effort: Effort
    pxl_factors: PxlFactors = field(default_factory=PxlFactors)
    pxl_score_mode: ScoreMode = ScoreMode.DERIVED
    edited: bool = False
    origin: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = {
            "id": self.id,
            "priority": self.priority.value,
            "pxlScore": self.pxl_score,
            "pxlScoreMode": self.pxl_score_mode.value,
            "title": self.title,
            "hypothesis": self.hypothesis,
            "assertionId": self.assertion_id,
            "category": self.category,
            "variants": [v.to_dict() for v in self.variants],
            "expectedImpact": self.expected_impact.value,
            "implementationEffort": self.implementation_effort.value,
            "pxlFactors": self.pxl_factors.to_dict(),
        }
        if self.edited:
            data["_edited"] = True
        if self.origin:
            data["_origin"] = self.origin
        return data


@dataclass
class AuditDocument:
    """A complete LIFT audit of one page."""

    url: str
    analyzed_at: str
    overall_score: int
    lift_categories: dict[CategoryKey, Category]
    critical_issues: list[CriticalIssue] = field(default_factory=list)
    quick_wins: list[QuickWin] = field(default_factory=list)
    tests: list[AbTest] = field(default_factory=list)

    # History and editing metadata
    record_id: str | None = None
    saved_at: str | None = None
    is_edited: bool = False
    edited_at: str | None = None
    score_mode: ScoreMode = ScoreMode.DERIVED

    def categories(self) -> Iterator[tuple[CategoryKey, Category]]:
        """Iterate categories in canonical order."""
        for key in CATEGORY_ORDER:
            yield key, self.lift_categories[key]

    def find_test(self, test_id: int | str) -> AbTest | None:
        """Get a test by id."""
        for test in self.tests:
            if test.id == test_id:
                return test
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data: dict = {}
        if self.record_id is not None:
            data["id"] = self.record_id
        data.update(
            {
                "url": self.url,
                "analyzedAt": self.analyzed_at,
                "overallScore": self.overall_score,
                "liftCategories": {k.value: cat.to_dict() for k, cat in self.categories()},
                "criticalIssues": [i.to_dict() for i in self.critical_issues],
                "quickWins": [w.to_dict() for w in self.quick_wins],
                "tests": [t.to_dict() for t in self.tests],
                "scoreMode": self.score_mode.value,
                "isEdited": self.is_edited,
            }
        )
        if self.saved_at is not None:
            data["savedAt"] = self.saved_at
        if self.edited_at is not None:
            data["editedAt"] = self.edited_at
        return data
