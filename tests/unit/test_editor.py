"""Tests for edit operations and edit sessions."""

from unittest.mock import AsyncMock

import pytest

from api.exceptions import ConflictError, NotFoundError
from worker.audit.calculator import recompute
from worker.audit.editor import (
    EditSession,
    SessionState,
    add_assertion,
    add_quick_win,
    add_test,
    add_variant,
    cycle_test_priority,
    delete_assertion,
    delete_quick_win,
    delete_test,
    delete_variant,
    set_assertion_field,
    set_category_score,
    set_overall_score,
    set_test_pxl_score,
    toggle_assertion_severity,
    toggle_assertion_status,
    toggle_test_factor,
    update_quick_win,
    update_test,
    update_variant,
)
from worker.audit.history import InMemoryHistoryStore
from worker.audit.models import (
    AssertionStatus,
    AuditDocument,
    Priority,
    ScoreMode,
    Severity,
)
from worker.audit.rubric import CategoryKey


@pytest.fixture
def scored(document: AuditDocument) -> AuditDocument:
    """The sample document with derived scores."""
    return recompute(document)


def _assertion(document: AuditDocument, key: str, assertion_id: str):
    return document.lift_categories[CategoryKey(key)].find_assertion(assertion_id)


class TestPurity:
    """Tests that operations never mutate their input."""

    def test_accepted_edit_returns_new_document(self, scored: AuditDocument):
        edited = toggle_assertion_status(scored, "clarity", "CL_CTA")
        assert edited is not scored
        assert _assertion(scored, "clarity", "CL_CTA").status == AssertionStatus.PASS

    def test_rejected_edit_returns_same_object(self, scored: AuditDocument):
        assert toggle_assertion_status(scored, "clarity", "CL_MISSING") is scored
        assert toggle_assertion_status(scored, "trust", "CL_CTA") is scored


class TestAssertionEdits:
    """Tests for assertion operations."""

    def test_status_cycle(self, scored: AuditDocument):
        doc = toggle_assertion_status(scored, "clarity", "CL_CTA")
        assert _assertion(doc, "clarity", "CL_CTA").status == AssertionStatus.WARNING
        doc = toggle_assertion_status(doc, "clarity", "CL_CTA")
        assert _assertion(doc, "clarity", "CL_CTA").status == AssertionStatus.FAIL
        doc = toggle_assertion_status(doc, "clarity", "CL_CTA")
        assert _assertion(doc, "clarity", "CL_CTA").status == AssertionStatus.PASS

    def test_severity_cycle_wraps(self, scored: AuditDocument):
        doc = toggle_assertion_severity(scored, "valueProposition", "VP_UNIQUE")
        assert _assertion(doc, "valueProposition", "VP_UNIQUE").severity == Severity.LOW

    def test_edit_marks_assertion(self, scored: AuditDocument):
        doc = set_assertion_field(scored, "anxiety", "AX_RISK", {"evidence": "Seen in FAQ"})
        assertion = _assertion(doc, "anxiety", "AX_RISK")
        assert assertion.evidence == "Seen in FAQ"
        assert assertion.edited is True

    def test_setting_pass_clears_recommendation(self, scored: AuditDocument):
        doc = set_assertion_field(scored, "anxiety", "AX_SOCIAL", {"status": "pass"})
        assert _assertion(doc, "anxiety", "AX_SOCIAL").recommendation is None

    @pytest.mark.parametrize(
        "patch",
        [{"status": "maybe"}, {"severity": 3}, {"score": 10}, {}, {"evidence": None}],
    )
    def test_invalid_patch_is_noop(self, scored: AuditDocument, patch):
        assert set_assertion_field(scored, "anxiety", "AX_SOCIAL", patch) is scored

    def test_delete(self, scored: AuditDocument):
        doc = delete_assertion(scored, "clarity", "CL_CTA")
        assert _assertion(doc, "clarity", "CL_CTA") is None
        assert len(doc.lift_categories[CategoryKey.CLARITY].assertions) == 1

    def test_add_custom_assertion(self, scored: AuditDocument):
        doc = add_assertion(scored, "urgency", {"name": "Countdown", "evidence": "None"})
        added = doc.lift_categories[CategoryKey.URGENCY].assertions[-1]
        assert added.id.startswith("CUSTOM_")
        assert added.is_custom
        assert added.status == AssertionStatus.FAIL

    def test_add_requires_name(self, scored: AuditDocument):
        assert add_assertion(scored, "urgency", {"evidence": "x"}) is scored


class TestScoreOverrides:
    """Tests for direct score overrides."""

    def test_rejected_in_derived_mode(self, scored: AuditDocument):
        assert set_category_score(scored, "clarity", 10) is scored
        assert set_overall_score(scored, 10) is scored

    def test_accepted_in_overridden_mode(self, scored: AuditDocument):
        scored.score_mode = ScoreMode.OVERRIDDEN
        doc = set_category_score(scored, "clarity", 72.6)
        assert doc.lift_categories[CategoryKey.CLARITY].score == 73
        assert set_overall_score(doc, 120).overall_score == 100

    def test_non_numeric_rejected(self, scored: AuditDocument):
        scored.score_mode = ScoreMode.OVERRIDDEN
        assert set_overall_score(scored, "90") is scored
        assert set_overall_score(scored, True) is scored


class TestQuickWinEdits:
    """Tests for quick win operations."""

    def test_add_requires_title(self, scored: AuditDocument):
        assert add_quick_win(scored, {"current": "x"}) is scored
        doc = add_quick_win(scored, {"title": "Sticky CTA"})
        assert doc.quick_wins[-1].title == "Sticky CTA"
        assert doc.quick_wins[-1].origin == "custom"

    def test_update(self, scored: AuditDocument):
        doc = update_quick_win(scored, 0, {"impact": "low"})
        assert doc.quick_wins[0].impact == "low"
        assert doc.quick_wins[0].edited is True

    def test_update_out_of_range(self, scored: AuditDocument):
        assert update_quick_win(scored, 5, {"impact": "low"}) is scored

    def test_delete(self, scored: AuditDocument):
        assert len(delete_quick_win(scored, 1).quick_wins) == 1
        assert delete_quick_win(scored, -1) is scored


class TestTestEdits:
    """Tests for A/B test operations."""

    def test_toggle_factor_keeps_position(self, scored: AuditDocument):
        doc = toggle_test_factor(scored, 2, "evidenceBacked")
        assert doc.tests[0].id == 2
        assert doc.tests[0].pxl_score == 80
        assert doc.tests[0].edited is True

    def test_toggle_factor_does_not_resort(self, scored: AuditDocument):
        doc = scored
        for factor in ("aboveFold", "noticeableIn5Sec", "runOnHighTraffic", "affectsAllUsers"):
            doc = toggle_test_factor(doc, 2, factor)
        assert doc.find_test(2).pxl_score == 40
        assert [t.id for t in doc.tests] == [2, 1, 3]

    def test_toggle_factor_clears_override(self, scored: AuditDocument):
        doc = toggle_test_factor(scored, 1, "aboveFold")
        test = doc.find_test(1)
        assert test.pxl_score == 15
        assert test.pxl_score_mode == ScoreMode.DERIVED

    def test_unknown_factor_rejected(self, scored: AuditDocument):
        assert toggle_test_factor(scored, 2, "isCheap") is scored

    def test_freeze_pxl_score(self, scored: AuditDocument):
        doc = set_test_pxl_score(scored, 3, 90)
        test = doc.find_test(3)
        assert (test.pxl_score, test.pxl_score_mode) == (90, ScoreMode.OVERRIDDEN)
        assert recompute(doc).find_test(3).pxl_score == 90

    def test_priority_cycle(self, scored: AuditDocument):
        doc = cycle_test_priority(scored, 2)
        assert doc.find_test(2).priority == Priority.MEDIUM
        doc = cycle_test_priority(doc, 2)
        assert doc.find_test(2).priority == Priority.HIGH

    def test_add_test_defaults(self, scored: AuditDocument):
        doc = add_test(scored, {"title": "Sticky mobile CTA"})
        test = doc.tests[-1]
        assert test.id == 4
        assert test.pxl_score == 80
        assert [v.name for v in test.variants] == ["Control", "Variant A"]
        assert test.variants[0].description == "Current version"
        assert test.origin == "custom"

    def test_add_test_requires_title(self, scored: AuditDocument):
        assert add_test(scored, {"hypothesis": "x"}) is scored

    def test_update_test(self, scored: AuditDocument):
        doc = update_test(scored, 1, {"title": "Reviews above the fold", "priority": "critical"})
        test = doc.find_test(1)
        assert test.title == "Reviews above the fold"
        assert test.priority == Priority.CRITICAL
        assert test.pxl_score == 60
        assert [t.id for t in doc.tests] == [2, 1, 3]

    def test_update_unknown_test(self, scored: AuditDocument):
        assert update_test(scored, 42, {"title": "x"}) is scored

    def test_delete_test(self, scored: AuditDocument):
        assert [t.id for t in delete_test(scored, 1).tests] == [2, 3]


class TestVariantEdits:
    """Tests for variant operations."""

    def test_add_variant_named_by_position(self, scored: AuditDocument):
        doc = add_variant(scored, 1)
        assert doc.find_test(1).variants[-1].name == "Variant B"

    def test_delete_keeps_minimum(self, scored: AuditDocument):
        assert delete_variant(scored, 1, 1) is scored

    def test_delete_control_rejected(self, scored: AuditDocument):
        assert delete_variant(scored, 2, 0) is scored

    def test_delete_third_variant(self, scored: AuditDocument):
        doc = delete_variant(scored, 2, 2)
        assert [v.name for v in doc.find_test(2).variants] == ["Control", "Variant A"]

    def test_control_cannot_be_renamed(self, scored: AuditDocument):
        assert update_variant(scored, 1, 0, {"name": "Baseline"}) is scored
        doc = update_variant(scored, 1, 0, {"description": "Today's page"})
        assert doc.find_test(1).variants[0].description == "Today's page"

    def test_rename_variant(self, scored: AuditDocument):
        doc = update_variant(scored, 1, 1, {"name": "Reviews"})
        assert doc.find_test(1).variants[1].name == "Reviews"


class TestEditSession:
    """Tests for the edit session state machine."""

    def test_operations_require_editing(self, scored: AuditDocument):
        session = EditSession(scored)
        with pytest.raises(ConflictError):
            session.toggle_assertion_status("clarity", "CL_CTA")

    def test_begin_twice_conflicts(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        with pytest.raises(ConflictError):
            session.begin()

    def test_derived_mode_recomputes(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        assert session.toggle_assertion_status("clarity", "CL_CTA") is True
        assert session.document.lift_categories[CategoryKey.CLARITY].score == 50
        assert session.document.overall_score == 36

    def test_delete_removes_critical_issue(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        session.delete_assertion("valueProposition", "VP_UNIQUE")
        assert "VP_UNIQUE" not in [i.id for i in session.document.critical_issues]

    def test_overrides_rejected_while_derived(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        assert session.set_overall_score(90) is False
        assert session.document.overall_score == 44

    def test_overridden_mode_keeps_scores(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        session.set_score_mode(ScoreMode.OVERRIDDEN)
        assert session.auto_calculate is False
        assert session.set_overall_score(90) is True
        session.toggle_assertion_status("clarity", "CL_CTA")
        assert session.document.overall_score == 90
        assert session.document.lift_categories[CategoryKey.CLARITY].score == 100

    def test_switching_back_to_derived_recomputes(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        session.set_score_mode(ScoreMode.OVERRIDDEN)
        session.set_overall_score(90)
        session.set_score_mode(ScoreMode.DERIVED)
        assert session.document.overall_score == 44

    def test_cancel_restores_baseline(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        session.delete_test(2)
        restored = session.cancel()
        assert restored is scored
        assert session.state == SessionState.VIEWING
        assert session.document.find_test(2) is not None

    @pytest.mark.asyncio
    async def test_save_without_store(self, scored: AuditDocument):
        session = EditSession(scored)
        session.begin()
        session.cycle_test_priority(1)
        saved = await session.save()
        assert saved.is_edited is True
        assert saved.edited_at is not None
        assert session.baseline is saved
        assert session.state == SessionState.VIEWING

    @pytest.mark.asyncio
    async def test_save_persists_to_store(self, scored: AuditDocument):
        store = InMemoryHistoryStore()
        stored = await store.save(scored)
        session = EditSession(stored, store)
        session.begin()
        session.toggle_test_factor(2, "evidenceBacked")
        await session.save()

        reloaded = await store.get(stored.record_id)
        assert reloaded.find_test(2).pxl_score == 80
        assert reloaded.is_edited is True
        assert reloaded.saved_at == stored.saved_at

    @pytest.mark.asyncio
    async def test_save_new_document_adds_record(self, scored: AuditDocument):
        store = InMemoryHistoryStore()
        session = EditSession(scored, store)
        session.begin()
        session.add_quick_win({"title": "Shorten the signup form"})
        saved = await session.save()

        records = await store.list()
        assert [d.record_id for d in records] == [saved.record_id]
        assert saved.record_id is not None
        assert records[0].is_edited is True
        assert records[0].quick_wins[-1].title == "Shorten the signup form"

    @pytest.mark.asyncio
    async def test_save_keeps_working_test_order(self, scored: AuditDocument):
        store = InMemoryHistoryStore()
        stored = await store.save(scored)
        session = EditSession(stored, store)
        session.begin()
        # Test 2 drops from 100 to 50, below test 1's 60
        for factor in ("evidenceBacked", "aboveFold", "noticeableIn5Sec"):
            session.toggle_test_factor(2, factor)
        working_order = [(t.id, t.pxl_score) for t in session.document.tests]
        saved = await session.save()

        assert working_order == [(2, 50), (1, 60), (3, 35)]
        assert [(t.id, t.pxl_score) for t in saved.tests] == working_order
        reloaded = await store.get(stored.record_id)
        assert [(t.id, t.pxl_score) for t in reloaded.tests] == working_order

    @pytest.mark.asyncio
    async def test_failed_save_stays_editing(self, scored: AuditDocument):
        store = AsyncMock()
        store.update.side_effect = NotFoundError("Audit", "audit_1_x")
        scored.record_id = "audit_1_x"
        session = EditSession(scored, store)
        session.begin()
        session.delete_quick_win(0)

        with pytest.raises(NotFoundError):
            await session.save()
        assert session.state == SessionState.EDITING
        assert len(session.document.quick_wins) == 1
        assert session.baseline is scored
