"""Sync cursor and sync attempt audit models."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncCursor(SQLModel, table=True):
    """Durable pagination progress for one resource type."""

    __tablename__ = "sync_cursor"

    id: Optional[int] = Field(default=None, primary_key=True)
    resource_type: str = Field(unique=True, index=True)
    offset: int = 0
    total_fetched: int = 0
    is_complete: bool = False
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    retry_count: int = 0
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SyncAttempt(SQLModel, table=True):
    """Append-only record of each sync invocation for one resource type."""

    __tablename__ = "sync_attempt"

    id: Optional[int] = Field(default=None, primary_key=True)
    resource_type: str = Field(index=True)
    status: str = Field(default="running", index=True)  # "running", "completed", "failed"
    started_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None
