"""Audit analysis and history endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Request, status

from api.deps import HistoryDep, PaginationDep, ProviderDep
from api.exceptions import BadRequestError, NotFoundError, ValidationError
from api.schemas.audit import AuditSummary, EditRequest, EditResult
from api.schemas.responses import ErrorResponse, PaginatedResponse, SuccessResponse
from worker.audit.calculator import recompute, score_breakdown
from worker.audit.editor import EditSession
from worker.audit.history import HistoryStore
from worker.audit.models import AuditDocument, ScoreMode
from worker.audit.repair import repair
from worker.audit.rubric import rubric_to_dict
from worker.tasks.audit import run_audit

router = APIRouter(
    tags=["audits"],
    responses={
        404: {"model": ErrorResponse, "description": "Audit not found"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
)
logger = structlog.get_logger(__name__)


async def _get_or_404(store: HistoryStore, audit_id: str) -> AuditDocument:
    document = await store.get(audit_id)
    if document is None:
        raise NotFoundError("Audit", audit_id)
    return document


@router.post("/analyze", summary="Analyze a page snapshot")
async def analyze(request: Request, provider: ProviderDep, store: HistoryDep) -> dict[str, Any]:
    """
    Run a LIFT audit for a page snapshot captured by the extension.

    The finished audit is saved to history and returned in full.
    """
    try:
        snapshot = await request.json()
    except ValueError:
        raise BadRequestError("Invalid snapshot data") from None
    if not isinstance(snapshot, dict):
        raise BadRequestError("Invalid snapshot data")

    document = await run_audit(snapshot, provider, store)
    return document.to_dict()


@router.get("/rubric", summary="Get the LIFT rubric")
async def get_rubric() -> dict[str, Any]:
    """Categories, assertions and weights used for every audit."""
    return rubric_to_dict()


@router.get(
    "/audits",
    response_model=PaginatedResponse[AuditSummary],
    response_model_by_alias=True,
    summary="List saved audits",
)
async def list_audits(store: HistoryDep, pagination: PaginationDep) -> PaginatedResponse[AuditSummary]:
    """List saved audits, most recent first."""
    documents = await store.list()
    page = documents[pagination.offset : pagination.offset + pagination.limit]
    return PaginatedResponse.create(
        data=[AuditSummary.from_document(d) for d in page],
        total=len(documents),
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.delete("/audits", status_code=status.HTTP_204_NO_CONTENT, summary="Clear history")
async def clear_audits(store: HistoryDep) -> None:
    """Delete every saved audit."""
    await store.clear()


@router.get("/audits/{audit_id}", summary="Get a saved audit")
async def get_audit(audit_id: str, store: HistoryDep) -> dict[str, Any]:
    """Get the full document of a saved audit."""
    document = await _get_or_404(store, audit_id)
    return document.to_dict()


@router.get("/audits/{audit_id}/breakdown", summary="Explain an audit's scores")
async def get_breakdown(audit_id: str, store: HistoryDep) -> SuccessResponse[dict[str, Any]]:
    """Show how every derived score of a saved audit is calculated."""
    document = await _get_or_404(store, audit_id)
    breakdown = score_breakdown(document)
    return SuccessResponse(data=breakdown.to_dict(), meta={"text": breakdown.show_the_math()})


@router.patch("/audits/{audit_id}", summary="Update a saved audit")
async def update_audit(
    audit_id: str,
    store: HistoryDep,
    patch: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """
    Merge a partial record over a saved audit.

    Scores are recomputed afterwards unless the audit's scores are overridden.
    """
    current = await _get_or_404(store, audit_id)
    merged = repair({**current.to_dict(), **patch, "id": audit_id}, sort_tests=False)
    if merged.score_mode == ScoreMode.DERIVED:
        merged = recompute(merged)
    updated = await store.update(audit_id, merged)
    return updated.to_dict()


@router.post("/audits/{audit_id}/edits", response_model=EditResult, summary="Edit a saved audit")
async def edit_audit(audit_id: str, edits: EditRequest, store: HistoryDep) -> EditResult:
    """
    Apply a batch of edit operations and save the result.

    Operations that would not change the document are skipped and reported
    by position in ``rejected``.
    """
    document = await _get_or_404(store, audit_id)
    session = EditSession(document, store)
    session.begin()

    if edits.score_mode is not None:
        session.set_score_mode(edits.score_mode)

    applied = 0
    rejected: list[int] = []
    for position, operation in enumerate(edits.operations):
        try:
            changed = getattr(session, operation.op.value)(**operation.args)
        except TypeError as e:
            session.cancel()
            raise ValidationError(
                f"Invalid arguments for {operation.op.value}", field=f"operations.{position}.args"
            ) from e
        if changed:
            applied += 1
        else:
            rejected.append(position)

    saved = await session.save()
    logger.info("audit_edited", record_id=audit_id, applied=applied, rejected=len(rejected))
    return EditResult(data=saved.to_dict(), applied=applied, rejected=rejected)


@router.delete(
    "/audits/{audit_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a saved audit",
)
async def delete_audit(audit_id: str, store: HistoryDep) -> None:
    """Delete a saved audit."""
    if not await store.delete(audit_id):
        raise NotFoundError("Audit", audit_id)
