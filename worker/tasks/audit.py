"""Audit pipeline task."""

import asyncio
import time
from collections.abc import Mapping
from typing import Any

import structlog

from api.exceptions import BadRequestError
from worker.audit.calculator import recompute
from worker.audit.generator import AuditProvider, generate_audit
from worker.audit.history import HistoryStore
from worker.audit.models import AuditDocument
from worker.audit.repair import UNKNOWN_URL, repair

logger = structlog.get_logger(__name__)


def snapshot_url(snapshot: Mapping[str, Any]) -> str:
    """URL of the page a snapshot was captured from."""
    for key in ("url", "location"):
        value = snapshot.get(key)
        if isinstance(value, str) and value:
            return value
    return UNKNOWN_URL


async def run_audit(
    snapshot: Any,
    provider: AuditProvider,
    store: HistoryStore | None = None,
) -> AuditDocument:
    """
    Produce a finished audit for a page snapshot.

    This is the audit pipeline that:
    1. Asks the provider for a raw audit (one retry on unparseable output)
    2. Repairs the raw output into a canonical document
    3. Recomputes every derived score
    4. Saves the result to history, when a store is given

    Args:
        snapshot: Page snapshot JSON object
        provider: Audit provider to query
        store: Optional history store

    Returns:
        The finished document, carrying its history id when saved

    Raises:
        BadRequestError: If the snapshot is not a JSON object
        AnalysisError: If the provider never returns parseable output
        ExternalServiceError: If the provider fails
    """
    if not isinstance(snapshot, Mapping):
        raise BadRequestError("Invalid snapshot data")

    url = snapshot_url(snapshot)
    started = time.perf_counter()
    logger.info("audit_started", url=url, model=provider.model)

    try:
        raw = await generate_audit(provider, snapshot)
    except Exception as e:
        logger.error("audit_failed", url=url, error=str(e), error_type=type(e).__name__)
        raise

    document = recompute(repair(raw, requested_url=url))

    if store is not None:
        document = await store.save(document)

    logger.info(
        "audit_completed",
        url=document.url,
        model=provider.model,
        overall_score=document.overall_score,
        critical_issues=len(document.critical_issues),
        tests=len(document.tests),
        record_id=document.record_id,
        duration_ms=round((time.perf_counter() - started) * 1000),
    )
    return document


def run_audit_sync(
    snapshot: Any,
    provider: AuditProvider,
    store: HistoryStore | None = None,
) -> AuditDocument:
    """Synchronous wrapper for scripts and the command line."""
    return asyncio.run(run_audit(snapshot, provider, store))
