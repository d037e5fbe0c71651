"""Append-only audit log of sync attempts."""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlmodel import Session, select

from riksdag.models.sync import SyncAttempt

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


class AuditLog:
    def __init__(self, engine):
        self.engine = engine

    def start(self, resource_type: str) -> SyncAttempt:
        attempt = SyncAttempt(resource_type=resource_type, status=RUNNING)
        with Session(self.engine) as s:
            s.add(attempt)
            s.commit()
            s.refresh(attempt)
            s.expunge(attempt)
        return attempt

    def complete(self, attempt: SyncAttempt, records_processed: int) -> SyncAttempt:
        return self._finish(attempt, COMPLETED, records_processed=records_processed)

    def fail(self, attempt: SyncAttempt, error_message: str) -> SyncAttempt:
        return self._finish(attempt, FAILED, error_message=error_message)

    def recent(self, limit: int = 20, resource_type: Optional[str] = None) -> List[SyncAttempt]:
        with Session(self.engine) as s:
            query = select(SyncAttempt)
            if resource_type is not None:
                query = query.where(SyncAttempt.resource_type == resource_type)
            query = query.order_by(SyncAttempt.started_at.desc(), SyncAttempt.id.desc()).limit(limit)
            return list(s.exec(query).all())

    def stale(self, older_than: timedelta) -> List[SyncAttempt]:
        """Attempts still "running" past the bound, most likely crashed invocations."""
        cutoff = datetime.utcnow() - older_than
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncAttempt)
                    .where(SyncAttempt.status == RUNNING)
                    .where(SyncAttempt.started_at < cutoff)
                    .order_by(SyncAttempt.started_at)
                ).all()
            )

    def _finish(
        self,
        attempt: SyncAttempt,
        status: str,
        *,
        records_processed: int = 0,
        error_message: Optional[str] = None,
    ) -> SyncAttempt:
        with Session(self.engine) as s:
            db_attempt = s.get(SyncAttempt, attempt.id)
            if db_attempt.status != RUNNING:
                raise ValueError(
                    f"Sync attempt {attempt.id} already finished as {db_attempt.status}"
                )
            db_attempt.status = status
            db_attempt.completed_at = datetime.utcnow()
            db_attempt.records_processed = records_processed
            db_attempt.error_message = error_message
            s.add(db_attempt)
            s.commit()
            s.refresh(db_attempt)
            s.expunge(db_attempt)
        return db_attempt
