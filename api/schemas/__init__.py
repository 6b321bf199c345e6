"""Pydantic schemas package."""

from api.schemas.audit import AuditSummary, EditOperation, EditRequest, EditResult
from api.schemas.responses import (
    ErrorDetail,
    ErrorResponse,
    PaginatedResponse,
    SuccessResponse,
)

__all__ = [
    "AuditSummary",
    "EditOperation",
    "EditRequest",
    "EditResult",
    "ErrorDetail",
    "ErrorResponse",
    "PaginatedResponse",
    "SuccessResponse",
]
