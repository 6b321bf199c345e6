"""Edit transactions for audit documents.

Every operation takes a document and returns a new one; the input is
never mutated. A rejected edit (unknown id, invalid value, a rule
violation) returns the input document itself, unchanged.

``EditSession`` adds the Viewing -> Editing -> Saved | Cancelled state
machine on top, and re-runs ``recompute`` after each accepted edit while
the working copy is in derived score mode.
"""

import copy
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from api.exceptions import ConflictError
from worker.audit.calculator import calculate_pxl_score, clamp_score, is_number, recompute
from worker.audit.models import (
    CONTROL_VARIANT,
    CUSTOM_ORIGIN,
    AbTest,
    AssertionStatus,
    AuditDocument,
    Category,
    Effort,
    Impact,
    Priority,
    PxlFactors,
    ScoreMode,
    Severity,
    Variant,
    variant_name,
)
from worker.audit.repair import repair_assertion, repair_quick_win, repair_test
from worker.audit.rubric import CategoryKey

if TYPE_CHECKING:
    from worker.audit.history import HistoryStore

logger = structlog.get_logger(__name__)

STATUS_CYCLE = (AssertionStatus.PASS, AssertionStatus.WARNING, AssertionStatus.FAIL)
SEVERITY_CYCLE = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)
PRIORITY_CYCLE = (Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL)

# Editable wire fields -> enum class, or str for free text
ASSERTION_FIELDS: dict[str, type] = {
    "name": str,
    "question": str,
    "status": AssertionStatus,
    "severity": Severity,
    "evidence": str,
    "recommendation": str,
}
QUICK_WIN_FIELDS: dict[str, type] = {
    "title": str,
    "current": str,
    "suggested": str,
    "effort": Effort,
    "impact": Impact,
}
TEST_FIELDS: dict[str, type] = {
    "title": str,
    "hypothesis": str,
    "priority": Priority,
    "category": str,
    "assertionId": str,
    "expectedImpact": Impact,
    "implementationEffort": Effort,
}

# Defaults for a human-authored test
NEW_TEST_FACTORS = {
    "aboveFold": True,
    "noticeableIn5Sec": True,
    "runOnHighTraffic": True,
    "affectsAllUsers": True,
    "easyToImplement": True,
    "evidenceBacked": False,
}
NEW_TEST_VARIANTS = [
    {"name": CONTROL_VARIANT, "description": "Current version"},
    {"name": variant_name(1), "description": ""},
]


def _valid_patch(patch: Any, allowed: Mapping[str, type]) -> bool:
    """Check that every key is editable and every value has the right type."""
    if not isinstance(patch, Mapping) or not patch:
        return False
    for key, value in patch.items():
        kind = allowed.get(key)
        if kind is None:
            return False
        if key == "recommendation" and value is None:
            continue
        if issubclass(kind, StrEnum):
            if value not in [member.value for member in kind]:
                return False
        elif not isinstance(value, kind):
            return False
    return True


def _edit(document: AuditDocument, mutate: Callable[[AuditDocument], bool]) -> AuditDocument:
    """Apply ``mutate`` to a deep copy; return the original if it declines."""
    working = copy.deepcopy(document)
    if not mutate(working):
        return document
    return working


def _category(document: AuditDocument, category_key: str) -> Category | None:
    try:
        return document.lift_categories[CategoryKey(category_key)]
    except ValueError:
        return None


def _index_of_assertion(category: Category, assertion_id: str) -> int | None:
    for index, assertion in enumerate(category.assertions):
        if assertion.id == assertion_id:
            return index
    return None


def _next_in_cycle(cycle: tuple, current: Any) -> Any:
    # Values outside the cycle restart it
    index = cycle.index(current) if current in cycle else -1
    return cycle[(index + 1) % len(cycle)]


# Assertions


def set_assertion_field(
    document: AuditDocument,
    category_key: str,
    assertion_id: str,
    patch: Mapping[str, Any],
) -> AuditDocument:
    """Replace fields of one assertion and mark it edited."""
    if not _valid_patch(patch, ASSERTION_FIELDS):
        return document

    def mutate(working: AuditDocument) -> bool:
        category = _category(working, category_key)
        if category is None:
            return False
        index = _index_of_assertion(category, assertion_id)
        if index is None:
            return False
        merged = {**category.assertions[index].to_dict(), **patch, "_edited": True}
        category.assertions[index] = repair_assertion(merged)
        return True

    return _edit(document, mutate)


def toggle_assertion_status(
    document: AuditDocument, category_key: str, assertion_id: str
) -> AuditDocument:
    """Cycle status pass -> warning -> fail -> pass."""
    category = _category(document, category_key)
    assertion = category.find_assertion(assertion_id) if category else None
    if assertion is None:
        return document
    status = _next_in_cycle(STATUS_CYCLE, assertion.status)
    return set_assertion_field(document, category_key, assertion_id, {"status": status.value})


def toggle_assertion_severity(
    document: AuditDocument, category_key: str, assertion_id: str
) -> AuditDocument:
    """Cycle severity low -> medium -> high -> critical -> low."""
    category = _category(document, category_key)
    assertion = category.find_assertion(assertion_id) if category else None
    if assertion is None:
        return document
    severity = _next_in_cycle(SEVERITY_CYCLE, assertion.severity)
    return set_assertion_field(document, category_key, assertion_id, {"severity": severity.value})


def delete_assertion(document: AuditDocument, category_key: str, assertion_id: str) -> AuditDocument:
    """Remove an assertion. Critical issues are reconciled only by recompute."""

    def mutate(working: AuditDocument) -> bool:
        category = _category(working, category_key)
        if category is None:
            return False
        index = _index_of_assertion(category, assertion_id)
        if index is None:
            return False
        del category.assertions[index]
        return True

    return _edit(document, mutate)


def add_assertion(
    document: AuditDocument, category_key: str, fields: Mapping[str, Any]
) -> AuditDocument:
    """Append a human-authored assertion with a fresh id."""
    if not _valid_patch(fields, ASSERTION_FIELDS) or not fields.get("name"):
        return document

    def mutate(working: AuditDocument) -> bool:
        category = _category(working, category_key)
        if category is None:
            return False
        assertion = repair_assertion(
            {
                "status": AssertionStatus.FAIL.value,
                **fields,
                "id": f"CUSTOM_{uuid4().hex[:12].upper()}",
                "_origin": CUSTOM_ORIGIN,
            }
        )
        category.assertions.append(assertion)
        return True

    return _edit(document, mutate)


# Direct score overrides, accepted only in overridden mode


def set_category_score(document: AuditDocument, category_key: str, score: Any) -> AuditDocument:
    """Override one category score."""
    if document.score_mode != ScoreMode.OVERRIDDEN or not is_number(score):
        return document

    def mutate(working: AuditDocument) -> bool:
        category = _category(working, category_key)
        if category is None:
            return False
        category.score = clamp_score(score)
        return True

    return _edit(document, mutate)


def set_overall_score(document: AuditDocument, score: Any) -> AuditDocument:
    """Override the overall score."""
    if document.score_mode != ScoreMode.OVERRIDDEN or not is_number(score):
        return document

    def mutate(working: AuditDocument) -> bool:
        working.overall_score = clamp_score(score)
        return True

    return _edit(document, mutate)


# Quick wins


def add_quick_win(document: AuditDocument, fields: Mapping[str, Any]) -> AuditDocument:
    """Append a human-authored quick win. A title is required."""
    if not _valid_patch(fields, QUICK_WIN_FIELDS) or not fields.get("title"):
        return document

    def mutate(working: AuditDocument) -> bool:
        working.quick_wins.append(repair_quick_win({**fields, "_origin": CUSTOM_ORIGIN}))
        return True

    return _edit(document, mutate)


def update_quick_win(document: AuditDocument, index: int, patch: Mapping[str, Any]) -> AuditDocument:
    """Edit the quick win at ``index``."""
    if not _valid_patch(patch, QUICK_WIN_FIELDS) or not 0 <= index < len(document.quick_wins):
        return document

    def mutate(working: AuditDocument) -> bool:
        merged = {**working.quick_wins[index].to_dict(), **patch, "_edited": True}
        working.quick_wins[index] = repair_quick_win(merged)
        return True

    return _edit(document, mutate)


def delete_quick_win(document: AuditDocument, index: int) -> AuditDocument:
    """Remove the quick win at ``index``."""
    if not 0 <= index < len(document.quick_wins):
        return document

    def mutate(working: AuditDocument) -> bool:
        del working.quick_wins[index]
        return True

    return _edit(document, mutate)


# Tests


def _test_index(document: AuditDocument, test_id: int | str) -> int | None:
    for index, test in enumerate(document.tests):
        if test.id == test_id:
            return index
    return None


def _edit_test(
    document: AuditDocument,
    test_id: int | str,
    mutate_test: Callable[[AbTest], bool],
) -> AuditDocument:
    """Apply ``mutate_test`` to one test of a copy and mark it edited."""

    def mutate(working: AuditDocument) -> bool:
        index = _test_index(working, test_id)
        if index is None:
            return False
        test = working.tests[index]
        if not mutate_test(test):
            return False
        test.edited = True
        return True

    return _edit(document, mutate)


def _next_test_id(document: AuditDocument) -> int:
    numeric = [t.id for t in document.tests if isinstance(t.id, int)]
    return max(numeric, default=0) + 1


def add_test(document: AuditDocument, fields: Mapping[str, Any]) -> AuditDocument:
    """Append a human-authored test. It is not re-ranked until the next repair."""
    allowed = {**TEST_FIELDS, "pxlFactors": Mapping, "variants": list}
    if not _valid_patch(fields, allowed) or not fields.get("title"):
        return document

    def mutate(working: AuditDocument) -> bool:
        test = repair_test(
            {
                "pxlFactors": NEW_TEST_FACTORS,
                "variants": NEW_TEST_VARIANTS,
                **fields,
                "id": _next_test_id(working),
                "pxlScoreMode": ScoreMode.DERIVED.value,
                "_origin": CUSTOM_ORIGIN,
            },
            len(working.tests) + 1,
        )
        working.tests.append(test)
        return True

    return _edit(document, mutate)


def update_test(document: AuditDocument, test_id: int | str, patch: Mapping[str, Any]) -> AuditDocument:
    """Edit free-text and enum fields of one test."""
    index = _test_index(document, test_id)
    if index is None or not _valid_patch(patch, TEST_FIELDS):
        return document

    def mutate(working: AuditDocument) -> bool:
        merged = {**working.tests[index].to_dict(), **patch, "_edited": True}
        working.tests[index] = repair_test(merged, index + 1)
        return True

    return _edit(document, mutate)


def cycle_test_priority(document: AuditDocument, test_id: int | str) -> AuditDocument:
    """Cycle priority medium -> high -> critical -> medium."""

    def mutate_test(test: AbTest) -> bool:
        test.priority = _next_in_cycle(PRIORITY_CYCLE, test.priority)
        return True

    return _edit_test(document, test_id, mutate_test)


def delete_test(document: AuditDocument, test_id: int | str) -> AuditDocument:
    """Remove a test."""
    index = _test_index(document, test_id)
    if index is None:
        return document

    def mutate(working: AuditDocument) -> bool:
        del working.tests[index]
        return True

    return _edit(document, mutate)


def toggle_test_factor(document: AuditDocument, test_id: int | str, factor_key: str) -> AuditDocument:
    """Flip one PXL factor and recompute that test's score immediately."""
    if factor_key not in PxlFactors.WIRE_KEYS:
        return document

    def mutate_test(test: AbTest) -> bool:
        test.pxl_factors = test.pxl_factors.toggled(factor_key)
        test.pxl_score = calculate_pxl_score(test.pxl_factors)
        test.pxl_score_mode = ScoreMode.DERIVED
        return True

    return _edit_test(document, test_id, mutate_test)


def set_test_pxl_score(document: AuditDocument, test_id: int | str, score: Any) -> AuditDocument:
    """Freeze a test's PXL score at a human-chosen value."""
    if not is_number(score):
        return document

    def mutate_test(test: AbTest) -> bool:
        test.pxl_score = clamp_score(score)
        test.pxl_score_mode = ScoreMode.OVERRIDDEN
        return True

    return _edit_test(document, test_id, mutate_test)


# Variants


def add_variant(
    document: AuditDocument,
    test_id: int | str,
    name: str | None = None,
    description: str = "",
) -> AuditDocument:
    """Append a variant, named after its position unless given a name."""

    def mutate_test(test: AbTest) -> bool:
        label = name or variant_name(len(test.variants))
        test.variants.append(Variant(name=label, description=description))
        return True

    return _edit_test(document, test_id, mutate_test)


def update_variant(
    document: AuditDocument,
    test_id: int | str,
    index: int,
    patch: Mapping[str, Any],
) -> AuditDocument:
    """Edit a variant's name or description. Control cannot be renamed."""
    if not _valid_patch(patch, {"name": str, "description": str}):
        return document
    if "name" in patch and not patch["name"]:
        return document

    def mutate_test(test: AbTest) -> bool:
        if not 0 <= index < len(test.variants):
            return False
        if index == 0 and patch.get("name", CONTROL_VARIANT) != CONTROL_VARIANT:
            return False
        variant = test.variants[index]
        variant.name = patch.get("name", variant.name)
        variant.description = patch.get("description", variant.description)
        return True

    return _edit_test(document, test_id, mutate_test)


def delete_variant(document: AuditDocument, test_id: int | str, index: int) -> AuditDocument:
    """Remove a variant, keeping Control and at least one other."""

    def mutate_test(test: AbTest) -> bool:
        if len(test.variants) <= 2 or not 1 <= index < len(test.variants):
            return False
        del test.variants[index]
        return True

    return _edit_test(document, test_id, mutate_test)


class SessionState(StrEnum):
    """Edit session states."""

    VIEWING = "viewing"
    EDITING = "editing"


class EditSession:
    """Interactive editing of one audit document.

    ``begin`` clones the baseline into a working copy; every operation
    applies to the copy only. ``save`` persists the copy and makes it the
    new baseline, ``cancel`` discards it.
    """

    def __init__(self, document: AuditDocument, store: "HistoryStore | None" = None):
        self.baseline = document
        self.store = store
        self.state = SessionState.VIEWING
        self._working: AuditDocument | None = None

    @property
    def document(self) -> AuditDocument:
        """The document currently on display."""
        return self._working if self._working is not None else self.baseline

    @property
    def score_mode(self) -> ScoreMode:
        """Score mode of the document on display."""
        return self.document.score_mode

    @property
    def auto_calculate(self) -> bool:
        """Whether derived scores follow every edit."""
        return self.score_mode == ScoreMode.DERIVED

    def _require_working(self) -> AuditDocument:
        if self.state != SessionState.EDITING or self._working is None:
            raise ConflictError("No edit in progress")
        return self._working

    def begin(self) -> AuditDocument:
        """Enter editing with a private copy of the baseline."""
        if self.state == SessionState.EDITING:
            raise ConflictError("An edit is already in progress")
        self._working = copy.deepcopy(self.baseline)
        self.state = SessionState.EDITING
        logger.debug("edit_started", url=self.baseline.url, record_id=self.baseline.record_id)
        return self._working

    def set_score_mode(self, mode: ScoreMode) -> None:
        """Switch between derived and overridden scores for the working copy."""
        working = self._require_working()
        if working.score_mode == mode:
            return
        updated = copy.deepcopy(working)
        updated.score_mode = mode
        # Returning to derived scores discards any overrides at once
        self._working = recompute(updated) if mode == ScoreMode.DERIVED else updated

    def apply(
        self,
        operation: Callable[..., AuditDocument],
        *args: Any,
        rescore: bool = True,
    ) -> bool:
        """Run one edit operation against the working copy.

        Returns False when the operation rejected the edit.
        """
        working = self._require_working()
        result = operation(working, *args)
        if result is working:
            logger.debug("edit_rejected", operation=operation.__name__, args=args)
            return False
        if rescore and result.score_mode == ScoreMode.DERIVED:
            result = recompute(result)
        self._working = result
        return True

    def set_assertion_field(self, category_key: str, assertion_id: str, patch: Mapping) -> bool:
        return self.apply(set_assertion_field, category_key, assertion_id, patch)

    def toggle_assertion_status(self, category_key: str, assertion_id: str) -> bool:
        return self.apply(toggle_assertion_status, category_key, assertion_id)

    def toggle_assertion_severity(self, category_key: str, assertion_id: str) -> bool:
        return self.apply(toggle_assertion_severity, category_key, assertion_id)

    def delete_assertion(self, category_key: str, assertion_id: str) -> bool:
        return self.apply(delete_assertion, category_key, assertion_id)

    def add_assertion(self, category_key: str, fields: Mapping) -> bool:
        return self.apply(add_assertion, category_key, fields)

    def set_category_score(self, category_key: str, score: Any) -> bool:
        return self.apply(set_category_score, category_key, score, rescore=False)

    def set_overall_score(self, score: Any) -> bool:
        return self.apply(set_overall_score, score, rescore=False)

    def add_quick_win(self, fields: Mapping) -> bool:
        return self.apply(add_quick_win, fields)

    def update_quick_win(self, index: int, patch: Mapping) -> bool:
        return self.apply(update_quick_win, index, patch)

    def delete_quick_win(self, index: int) -> bool:
        return self.apply(delete_quick_win, index)

    def add_test(self, fields: Mapping) -> bool:
        return self.apply(add_test, fields)

    def update_test(self, test_id: int | str, patch: Mapping) -> bool:
        return self.apply(update_test, test_id, patch)

    def cycle_test_priority(self, test_id: int | str) -> bool:
        return self.apply(cycle_test_priority, test_id)

    def delete_test(self, test_id: int | str) -> bool:
        return self.apply(delete_test, test_id)

    def toggle_test_factor(self, test_id: int | str, factor_key: str) -> bool:
        return self.apply(toggle_test_factor, test_id, factor_key)

    def set_test_pxl_score(self, test_id: int | str, score: Any) -> bool:
        return self.apply(set_test_pxl_score, test_id, score)

    def add_variant(self, test_id: int | str, name: str | None = None, description: str = "") -> bool:
        return self.apply(add_variant, test_id, name, description)

    def update_variant(self, test_id: int | str, index: int, patch: Mapping) -> bool:
        return self.apply(update_variant, test_id, index, patch)

    def delete_variant(self, test_id: int | str, index: int) -> bool:
        return self.apply(delete_variant, test_id, index)

    async def save(self) -> AuditDocument:
        """Persist the working copy and make it the new baseline.

        A document not yet in history is saved as a new record.

        Persistence errors propagate and leave the session in editing.
        """
        working = self._require_working()
        saved = copy.deepcopy(working)
        saved.is_edited = True
        saved.edited_at = datetime.now(UTC).isoformat()

        if self.store is not None:
            if saved.record_id is None:
                saved = await self.store.save(saved, edited=True)
            else:
                saved = await self.store.update(saved.record_id, saved)

        self.baseline = saved
        self._working = None
        self.state = SessionState.VIEWING
        logger.info(
            "edit_saved",
            record_id=saved.record_id,
            score_mode=saved.score_mode.value,
            overall_score=saved.overall_score,
        )
        return saved

    def cancel(self) -> AuditDocument:
        """Discard the working copy and return to the unchanged baseline."""
        self._require_working()
        self._working = None
        self.state = SessionState.VIEWING
        logger.debug("edit_cancelled", record_id=self.baseline.record_id)
        return self.baseline
