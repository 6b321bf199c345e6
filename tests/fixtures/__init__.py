"""Test fixtures for audit documents and page snapshots."""

from tests.fixtures.audits import SNAPSHOT, raw_audit, snapshot

__all__ = [
    "SNAPSHOT",
    "raw_audit",
    "snapshot",
]
