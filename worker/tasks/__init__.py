"""Background task definitions."""

from worker.tasks.audit import run_audit, run_audit_sync, snapshot_url

__all__ = [
    "run_audit",
    "run_audit_sync",
    "snapshot_url",
]
