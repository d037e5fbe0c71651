"""Shared test fixtures."""
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from riksdag.config import default_sync_config
from riksdag.db.engine import init_db


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with tables, migrations and seeded cursors."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="sync_config")
def sync_config_fixture():
    """Production resource table with a fake host and no inter-phase delay."""
    return default_sync_config("https://api.test", inter_phase_delay_seconds=0)
