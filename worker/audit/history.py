"""Saved audit history.

Records are kept most-recent-first and capped at a fixed number of
entries; the oldest record falls off when a new one is saved. Both
backends store wire-shaped dictionaries and hand out canonical
``AuditDocument`` instances, so a stored record always reads back
repaired. Stored records keep their test order: only a fresh repair of
generator output ranks tests.
"""

import asyncio
import secrets
import string
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import orjson
import structlog
from redis.asyncio import Redis
from redis.exceptions import WatchError

from api.config import get_settings
from api.exceptions import NotFoundError
from worker.audit.models import AuditDocument
from worker.audit.repair import repair

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ENTRIES = 50

_ID_ALPHABET = string.digits + string.ascii_lowercase

Records = list[dict[str, Any]]


def generate_record_id() -> str:
    """Create an id of the form ``audit_<epoch millis>_<9 base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"audit_{int(time.time() * 1000)}_{suffix}"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _stored(record: Any) -> AuditDocument:
    return repair(record, sort_tests=False)


class HistoryStore(ABC):
    """Base class for audit history backends.

    Subclasses read the full record list and apply a change to it
    atomically; ordering, the retention cap and edit stamping live here.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.max_entries = max_entries

    @abstractmethod
    async def _read(self) -> Records:
        """Load all records, most recent first."""

    @abstractmethod
    async def _modify(self, change: Callable[[Records], Records]) -> None:
        """Replace the records with ``change(records)`` as one atomic step.

        ``change`` may run more than once when a backend retries after a
        concurrent write, so it must not depend on earlier calls.
        """

    async def list(self) -> list[AuditDocument]:
        """All saved audits, most recent first."""
        return [_stored(record) for record in await self._read()]

    async def get(self, record_id: str) -> AuditDocument | None:
        """Get one saved audit, or None if it does not exist."""
        for record in await self._read():
            if record.get("id") == record_id:
                return _stored(record)
        return None

    async def save(self, document: AuditDocument, edited: bool = False) -> AuditDocument:
        """Store a new audit at the front of the history.

        The record is stamped unedited unless ``edited`` is set, in which
        case the document's own edit stamp is kept.
        """
        saved = _stored(document)
        saved.record_id = generate_record_id()
        saved.saved_at = _now()
        if not edited:
            saved.is_edited = False
            saved.edited_at = None
        record = saved.to_dict()
        dropped = 0

        def change(records: Records) -> Records:
            nonlocal dropped
            dropped = max(len(records) + 1 - self.max_entries, 0)
            return [record, *records][: self.max_entries]

        await self._modify(change)

        logger.info("audit_saved", record_id=saved.record_id, url=saved.url, dropped=dropped)
        return saved

    async def update(
        self, record_id: str, patch: AuditDocument | Mapping[str, Any]
    ) -> AuditDocument:
        """Merge ``patch`` over a saved audit and mark it edited.

        ``patch`` is either a whole document or a wire-shaped partial
        record. The id and save time of the stored record always win.

        Raises:
            NotFoundError: If no record has this id
        """
        changes = patch.to_dict() if isinstance(patch, AuditDocument) else dict(patch)
        edited_at = _now()
        updated: AuditDocument | None = None

        def change(records: Records) -> Records:
            nonlocal updated
            for index, record in enumerate(records):
                if record.get("id") == record_id:
                    break
            else:
                raise NotFoundError("Audit", record_id)

            merged = {**record, **changes, "id": record_id}
            if "savedAt" in record:
                merged["savedAt"] = record["savedAt"]
            updated = _stored(merged)
            updated.is_edited = True
            updated.edited_at = edited_at
            return [*records[:index], updated.to_dict(), *records[index + 1 :]]

        await self._modify(change)
        assert updated is not None

        logger.info("audit_updated", record_id=record_id, fields=sorted(changes))
        return updated

    async def delete(self, record_id: str) -> bool:
        """Remove a saved audit. Returns False if it did not exist."""
        found = False

        def change(records: Records) -> Records:
            nonlocal found
            remaining = [r for r in records if r.get("id") != record_id]
            found = len(remaining) != len(records)
            return remaining

        await self._modify(change)
        if found:
            logger.info("audit_deleted", record_id=record_id)
        return found

    async def clear(self) -> None:
        """Remove every saved audit."""
        await self._modify(lambda records: [])
        logger.info("audit_history_cleared")


class InMemoryHistoryStore(HistoryStore):
    """Process-local history, used in development and tests."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        super().__init__(max_entries)
        self._records: Records = []
        self._lock = asyncio.Lock()

    async def _read(self) -> Records:
        # Copies so callers never share mutable state with the store
        return orjson.loads(orjson.dumps(self._records))

    async def _modify(self, change: Callable[[Records], Records]) -> None:
        async with self._lock:
            records = change(await self._read())
            self._records = orjson.loads(orjson.dumps(records))


class RedisHistoryStore(HistoryStore):
    """History kept as one JSON list under a single Redis key.

    Changes run in a WATCH/MULTI transaction and are retried when another
    process wrote the key in between.
    """

    def __init__(
        self,
        client: Redis,
        key: str = "lift:audit_history",
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_retries: int = 10,
    ):
        super().__init__(max_entries)
        self.client = client
        self.key = key
        self.max_retries = max_retries

    def _decode(self, data: Any) -> Records:
        if not data:
            return []
        records = orjson.loads(data)
        if not isinstance(records, list):
            logger.warning("audit_history_corrupt", key=self.key, value_type=type(records).__name__)
            return []
        return [r for r in records if isinstance(r, dict)]

    async def _read(self) -> Records:
        return self._decode(await self.client.get(self.key))

    async def _modify(self, change: Callable[[Records], Records]) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            for attempt in range(1, self.max_retries + 1):
                try:
                    await pipe.watch(self.key)
                    records = change(self._decode(await pipe.get(self.key)))
                    pipe.multi()
                    pipe.set(self.key, orjson.dumps(records))
                    await pipe.execute()
                    return
                except WatchError:
                    logger.debug("audit_history_write_conflict", key=self.key, attempt=attempt)
        raise WatchError(f"Gave up writing {self.key} after {self.max_retries} conflicting attempts")


def get_history_store() -> HistoryStore:
    """Build the history backend selected in settings."""
    settings = get_settings()
    if settings.history_backend == "redis":
        client = Redis.from_url(settings.redis_url, decode_responses=True)
        return RedisHistoryStore(
            client,
            key=settings.history_key,
            max_entries=settings.history_max_entries,
        )
    return InMemoryHistoryStore(max_entries=settings.history_max_entries)
