"""Repair untrusted generator output into a canonical audit document.

The generator omits fields, invents enum values and misreports numbers
on a regular basis. Structural defects are never fatal here: every field
is coerced or defaulted from the rubric. Only a value that is not
document-shaped at all raises ``AnalysisError``.

Repair is idempotent: every repaired field is already canonical, and
the one reordering step (tests by PXL score) is a stable sort.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TypeVar

import structlog

from api.exceptions import AnalysisError
from worker.audit.calculator import (
    calculate_pxl_score,
    clamp_score,
    extract_critical_issues,
    is_number,
)
from worker.audit.models import (
    CONTROL_VARIANT,
    EVIDENCE_PLACEHOLDER,
    AbTest,
    Assertion,
    AssertionStatus,
    AuditDocument,
    Category,
    CriticalIssue,
    Effort,
    Impact,
    Priority,
    PxlFactors,
    QuickWin,
    ScoreMode,
    Severity,
    Variant,
    default_variants,
    variant_name,
)
from worker.audit.rubric import CATEGORY_ORDER, CategoryKey, get_category

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=StrEnum)

DEFAULT_SCORE = 50
UNKNOWN_URL = "Unknown"


def _score(value: Any, default: int = DEFAULT_SCORE) -> int:
    return clamp_score(value) if is_number(value) else default


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value:
        return value
    if is_number(value):
        return str(value)
    return default


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _choice(enum_cls: type[E], value: Any, default: E) -> E:
    for member in enum_cls:
        if member.value == value:
            return member
    return default


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _sequence(value: Any) -> list:
    return list(value) if isinstance(value, list | tuple) else []


def repair_assertion(raw: Any) -> Assertion:
    """Repair a single assertion."""
    data = _mapping(raw)
    status = _choice(AssertionStatus, data.get("status"), AssertionStatus.WARNING)

    # Pass findings never carry a recommendation
    recommendation = None
    if status != AssertionStatus.PASS:
        recommendation = _optional_text(data.get("recommendation"))

    return Assertion(
        id=_text(data.get("id"), "UNKNOWN"),
        name=_text(data.get("name"), "Unknown"),
        question=_text(data.get("question"), ""),
        status=status,
        severity=_choice(Severity, data.get("severity"), Severity.MEDIUM),
        evidence=_text(data.get("evidence"), EVIDENCE_PLACEHOLDER),
        recommendation=recommendation,
        edited=bool(data.get("_edited")),
        origin=_optional_text(data.get("_origin")),
    )


def repair_category(key: CategoryKey, raw: Any) -> Category:
    """Repair one category, synthesizing it from the rubric if unusable."""
    template = get_category(key)

    if not isinstance(raw, Mapping):
        return Category(
            name=template.name,
            short_name=template.short_name,
            description=template.description,
            score=DEFAULT_SCORE,
            is_inhibitor=template.is_inhibitor,
            assertions=[],
        )

    return Category(
        name=_text(raw.get("name"), template.name),
        short_name=_text(raw.get("shortName"), template.short_name),
        description=_text(raw.get("description"), template.description),
        score=_score(raw.get("score")),
        # Inhibitor status belongs to the rubric, not to the generator
        is_inhibitor=template.is_inhibitor,
        assertions=[repair_assertion(a) for a in _sequence(raw.get("assertions"))],
    )


def repair_quick_win(raw: Any) -> QuickWin:
    """Repair a single quick win."""
    data = _mapping(raw)
    return QuickWin(
        title=_text(data.get("title"), "Quick win"),
        current=_text(data.get("current"), "Current state"),
        suggested=_text(data.get("suggested"), "Suggested change"),
        effort=_choice(Effort, data.get("effort"), Effort.EASY),
        impact=_choice(Impact, data.get("impact"), Impact.MEDIUM),
        edited=bool(data.get("_edited")),
        origin=_optional_text(data.get("_origin")),
    )


def repair_pxl_factors(raw: Any) -> PxlFactors:
    """Coerce the six recognized factors to booleans, missing ones to False."""
    data = _mapping(raw)
    return PxlFactors(**{attr: bool(data.get(wire)) for wire, attr in PxlFactors.WIRE_KEYS.items()})


def repair_variants(raw: Any) -> list[Variant]:
    """Repair test variants: at least two, the first always Control."""
    items = _sequence(raw)
    if len(items) < 2:
        return default_variants()

    variants = []
    for index, item in enumerate(items):
        data = _mapping(item)
        variants.append(
            Variant(
                name=_text(data.get("name"), variant_name(index)),
                description=_text(data.get("description"), ""),
            )
        )
    variants[0].name = CONTROL_VARIANT
    return variants


def _test_id(value: Any, position: int) -> int | str:
    if isinstance(value, bool):
        return position
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value:
        return value
    return position


def repair_test(raw: Any, position: int) -> AbTest:
    """Repair a single A/B test. ``position`` is its 1-based list index."""
    data = _mapping(raw)
    factors = repair_pxl_factors(data.get("pxlFactors"))

    # A supplied number survives as an override unless the test is marked derived
    supplied = data.get("pxlScore")
    if data.get("pxlScoreMode") != ScoreMode.DERIVED.value and is_number(supplied):
        pxl_score = clamp_score(supplied)
        pxl_score_mode = ScoreMode.OVERRIDDEN
    else:
        pxl_score = calculate_pxl_score(factors)
        pxl_score_mode = ScoreMode.DERIVED

    return AbTest(
        id=_test_id(data.get("id"), position),
        priority=_choice(Priority, data.get("priority"), Priority.MEDIUM),
        pxl_score=pxl_score,
        title=_text(data.get("title"), "A/B Test"),
        hypothesis=_text(data.get("hypothesis"), ""),
        assertion_id=_text(data.get("assertionId"), ""),
        category=_text(data.get("category"), ""),
        variants=repair_variants(data.get("variants")),
        expected_impact=_choice(Impact, data.get("expectedImpact"), Impact.MEDIUM),
        implementation_effort=_choice(Effort, data.get("implementationEffort"), Effort.MEDIUM),
        pxl_factors=factors,
        pxl_score_mode=pxl_score_mode,
        edited=bool(data.get("_edited")),
        origin=_optional_text(data.get("_origin")),
    )


def _passthrough_issue(raw: Mapping) -> CriticalIssue:
    return CriticalIssue(
        id=_text(raw.get("id"), ""),
        category=_text(raw.get("category"), ""),
        title=_text(raw.get("title"), ""),
        impact=_text(raw.get("impact"), ""),
    )


def _score_mode(raw: Mapping) -> ScoreMode:
    if "scoreMode" in raw:
        return _choice(ScoreMode, raw.get("scoreMode"), ScoreMode.DERIVED)
    # Records saved before score modes existed carried a boolean flag
    if raw.get("autoCalculate") is False:
        return ScoreMode.OVERRIDDEN
    return ScoreMode.DERIVED


def repair(raw: Any, requested_url: str | None = None, sort_tests: bool = True) -> AuditDocument:
    """Turn an arbitrary value into a canonical audit document.

    Args:
        raw: Parsed generator output, a stored record, or an AuditDocument
        requested_url: URL of the analyzed page, used when ``raw`` has none
        sort_tests: Rank tests by PXL score. Stored records keep the order
            they were saved in

    Returns:
        A document satisfying every schema invariant

    Raises:
        AnalysisError: If ``raw`` is not document-shaped at all
    """
    if isinstance(raw, AuditDocument):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        logger.warning("audit_unrepairable", raw_type=type(raw).__name__)
        raise AnalysisError(reason=f"expected a JSON object, got {type(raw).__name__}")

    raw_categories = _mapping(raw.get("liftCategories"))
    categories: dict[CategoryKey, Category] = {}
    synthesized: list[str] = []
    for key in CATEGORY_ORDER:
        raw_category = raw_categories.get(key.value)
        if not isinstance(raw_category, Mapping):
            synthesized.append(key.value)
        categories[key] = repair_category(key, raw_category)

    raw_issues = raw.get("criticalIssues")
    if isinstance(raw_issues, list):
        # Trusted as already shaped by a prior pass or a human edit
        critical_issues = [_passthrough_issue(i) for i in raw_issues if isinstance(i, Mapping)]
    else:
        critical_issues = extract_critical_issues(categories)

    quick_wins = [repair_quick_win(w) for w in _sequence(raw.get("quickWins"))]

    tests = [repair_test(t, i) for i, t in enumerate(_sequence(raw.get("tests")), start=1)]
    if sort_tests:
        tests.sort(key=lambda t: t.pxl_score, reverse=True)

    url = _optional_text(raw.get("url")) or _optional_text(requested_url) or UNKNOWN_URL
    analyzed_at = _text(raw.get("analyzedAt"), "") or datetime.now(UTC).isoformat()

    document = AuditDocument(
        url=url,
        analyzed_at=analyzed_at,
        overall_score=_score(raw.get("overallScore")),
        lift_categories=categories,
        critical_issues=critical_issues,
        quick_wins=quick_wins,
        tests=tests,
        record_id=_optional_text(raw.get("id")),
        saved_at=_optional_text(raw.get("savedAt")),
        is_edited=bool(raw.get("isEdited")),
        edited_at=_optional_text(raw.get("editedAt")),
        score_mode=_score_mode(raw),
    )

    logger.debug(
        "audit_repaired",
        url=url,
        categories_synthesized=synthesized,
        assertions=sum(len(c.assertions) for c in categories.values()),
        critical_issues_derived=not isinstance(raw_issues, list),
        tests=len(tests),
    )
    return document
