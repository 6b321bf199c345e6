"""Audit schemas."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from worker.audit.models import AuditDocument, ScoreMode


class EditOp(StrEnum):
    """Edit operations accepted by the edits endpoint."""

    SET_ASSERTION_FIELD = "set_assertion_field"
    TOGGLE_ASSERTION_STATUS = "toggle_assertion_status"
    TOGGLE_ASSERTION_SEVERITY = "toggle_assertion_severity"
    DELETE_ASSERTION = "delete_assertion"
    ADD_ASSERTION = "add_assertion"
    SET_CATEGORY_SCORE = "set_category_score"
    SET_OVERALL_SCORE = "set_overall_score"
    ADD_QUICK_WIN = "add_quick_win"
    UPDATE_QUICK_WIN = "update_quick_win"
    DELETE_QUICK_WIN = "delete_quick_win"
    ADD_TEST = "add_test"
    UPDATE_TEST = "update_test"
    CYCLE_TEST_PRIORITY = "cycle_test_priority"
    DELETE_TEST = "delete_test"
    TOGGLE_TEST_FACTOR = "toggle_test_factor"
    SET_TEST_PXL_SCORE = "set_test_pxl_score"
    ADD_VARIANT = "add_variant"
    UPDATE_VARIANT = "update_variant"
    DELETE_VARIANT = "delete_variant"


class EditOperation(BaseModel):
    """One edit, named after an edit session method."""

    op: EditOp = Field(..., description="Edit operation name")
    args: dict[str, Any] = Field(default_factory=dict, description="Keyword arguments")


class EditRequest(BaseModel):
    """A batch of edits applied and saved as one transaction."""

    score_mode: ScoreMode | None = Field(
        None, description="Switch derived/overridden scores before applying the edits"
    )
    operations: list[EditOperation] = Field(default_factory=list)


class EditResult(BaseModel):
    """Outcome of an edit batch."""

    data: dict[str, Any] = Field(..., description="The saved audit document")
    applied: int = Field(..., description="Number of operations that changed the document")
    rejected: list[int] = Field(
        default_factory=list, description="Positions of operations that were no-ops"
    )


class AuditSummary(BaseModel):
    """Summary information for the history list."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    analyzed_at: str = Field(..., alias="analyzedAt")
    overall_score: int = Field(..., alias="overallScore")
    critical_issue_count: int = Field(..., alias="criticalIssueCount")
    test_count: int = Field(..., alias="testCount")
    saved_at: str | None = Field(None, alias="savedAt")
    is_edited: bool = Field(False, alias="isEdited")

    @classmethod
    def from_document(cls, document: AuditDocument) -> "AuditSummary":
        """Summarize a saved document."""
        return cls(
            id=document.record_id or "",
            url=document.url,
            analyzed_at=document.analyzed_at,
            overall_score=document.overall_score,
            critical_issue_count=len(document.critical_issues),
            test_count=len(document.tests),
            saved_at=document.saved_at,
            is_edited=document.is_edited,
        )
