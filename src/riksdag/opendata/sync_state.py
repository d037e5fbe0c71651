"""
Durable per-resource-type sync cursors.

Reads return detached SyncCursor copies. The success-path update
(advance_cursor) takes the caller's session so it commits in the same
transaction as the records it accounts for.
"""
import logging
from datetime import datetime
from typing import List

from sqlmodel import Session, select

from riksdag.config import ResourceType
from riksdag.models.sync import SyncCursor

logger = logging.getLogger(__name__)


class CursorNotFoundError(LookupError):
    """No cursor row exists for a resource type (database not initialized)."""


class SyncStateStore:
    def __init__(self, engine):
        self.engine = engine

    def get(self, resource_type: ResourceType) -> SyncCursor:
        with Session(self.engine) as s:
            cursor = self._load(s, resource_type)
            s.expunge(cursor)
            return cursor

    def list_all(self) -> List[SyncCursor]:
        with Session(self.engine) as s:
            cursors = s.exec(select(SyncCursor).order_by(SyncCursor.resource_type)).all()
            for c in cursors:
                s.expunge(c)
            return list(cursors)

    def advance_cursor(
        self,
        session: Session,
        resource_type: ResourceType,
        records_processed: int,
        requested_batch_size: int,
    ) -> SyncCursor:
        """
        Apply a successful cycle to the cursor inside `session` (not committed).

        offset and total_fetched grow by records_processed; the resource is
        complete when the page came back short of what was requested.
        """
        cursor = self._load(session, resource_type)
        cursor.offset += records_processed
        cursor.total_fetched += records_processed
        cursor.is_complete = records_processed < requested_batch_size
        cursor.retry_count = 0
        cursor.last_error = None
        cursor.last_sync_at = datetime.utcnow()
        cursor.updated_at = cursor.last_sync_at
        session.add(cursor)
        return cursor

    def mark_complete(self, resource_type: ResourceType) -> SyncCursor:
        """Flag a resource as fully fetched without moving its offset."""
        with Session(self.engine) as s:
            cursor = self._load(s, resource_type)
            cursor.is_complete = True
            cursor.retry_count = 0
            cursor.last_error = None
            cursor.last_sync_at = datetime.utcnow()
            cursor.updated_at = cursor.last_sync_at
            return self._commit(s, cursor)

    def record_failure(self, resource_type: ResourceType, error: str) -> SyncCursor:
        """Store the error and bump retry_count; offset stays where it was."""
        with Session(self.engine) as s:
            cursor = self._load(s, resource_type)
            cursor.last_error = error
            cursor.retry_count += 1
            cursor.updated_at = datetime.utcnow()
            return self._commit(s, cursor)

    def reset(self, resource_type: ResourceType) -> SyncCursor:
        """Rewind a resource to the beginning so the next cycle refetches it."""
        logger.info("Resetting sync cursor for %s", ResourceType(resource_type).value)
        with Session(self.engine) as s:
            cursor = self._load(s, resource_type)
            cursor.offset = 0
            cursor.total_fetched = 0
            cursor.is_complete = False
            cursor.last_error = None
            cursor.retry_count = 0
            cursor.updated_at = datetime.utcnow()
            return self._commit(s, cursor)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _load(session: Session, resource_type: ResourceType) -> SyncCursor:
        key = ResourceType(resource_type).value
        cursor = session.exec(
            select(SyncCursor).where(SyncCursor.resource_type == key)
        ).first()
        if cursor is None:
            raise CursorNotFoundError(f"No sync cursor for {key!r}")
        return cursor

    @staticmethod
    def _commit(session: Session, cursor: SyncCursor) -> SyncCursor:
        session.add(cursor)
        session.commit()
        session.refresh(cursor)
        session.expunge(cursor)
        return cursor
