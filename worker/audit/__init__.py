"""LIFT audit document model: rubric, repair, scoring and editing."""

from worker.audit.calculator import ScoreBreakdown, recompute, score_breakdown
from worker.audit.editor import EditSession, SessionState
from worker.audit.models import AuditDocument, ScoreMode
from worker.audit.repair import repair
from worker.audit.rubric import CATEGORY_ORDER, LIFT_CATEGORIES, CategoryKey

__all__ = [
    "AuditDocument",
    "CATEGORY_ORDER",
    "CategoryKey",
    "EditSession",
    "LIFT_CATEGORIES",
    "ScoreBreakdown",
    "ScoreMode",
    "SessionState",
    "recompute",
    "repair",
    "score_breakdown",
]
