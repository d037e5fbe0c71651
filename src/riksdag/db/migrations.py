"""
Database migrations for the sync store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from init_db() after create_all() so both fresh
installs and existing DBs are handled without manual steps.
"""
from sqlalchemy import text
from sqlmodel import Session, select

from riksdag.config import ResourceType


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times: checks column existence before altering.
    Only SQLite needs this (PRAGMA table_info); other backends are created
    fresh by create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return
    with engine.connect() as conn:
        # speech: headline, type and full text columns
        _add_column_if_missing(conn, "speech", "subject", "VARCHAR")
        _add_column_if_missing(conn, "speech", "speech_type", "VARCHAR")
        _add_column_if_missing(conn, "speech", "text", "VARCHAR")
        _add_column_if_missing(conn, "speech", "protocol_url", "VARCHAR")
        _add_column_if_missing(conn, "speech", "related_document_url", "VARCHAR")

        # document: storage id, related document and PDF link
        _add_column_if_missing(conn, "document", "hangar_id", "VARCHAR")
        _add_column_if_missing(conn, "document", "related_id", "VARCHAR")
        _add_column_if_missing(conn, "document", "pdf_url", "VARCHAR")
        conn.execute(text(
            "CREATE INDEX IF NOT EXISTS ix_document_hangar_id ON document (hangar_id)"
        ))

        conn.commit()


def seed_sync_cursors(engine) -> None:
    """Create a zeroed SyncCursor row for every resource type that lacks one."""
    from riksdag.models.sync import SyncCursor

    with Session(engine) as s:
        existing = set(s.exec(select(SyncCursor.resource_type)).all())
        for resource_type in ResourceType:
            if resource_type.value not in existing:
                s.add(SyncCursor(resource_type=resource_type.value))
        s.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "REAL", "TEXT".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
