"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from riksdag.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False  # SQLite only; safe for FastAPI
        _engine = create_engine(settings.database_url, connect_args=connect_args)
        init_db(_engine)
    return _engine


def init_db(engine) -> None:
    """Create tables, apply migrations and seed one cursor per resource type."""
    # Import all models so metadata is populated before create_all
    from riksdag.models.parliament import Assignment, Document, Member, Speech, VoteRecord  # noqa
    from riksdag.models.sync import SyncAttempt, SyncCursor  # noqa
    SQLModel.metadata.create_all(engine)
    from riksdag.db.migrations import run_migrations, seed_sync_cursors
    run_migrations(engine)
    seed_sync_cursors(engine)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
