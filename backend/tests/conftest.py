import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db import models  # noqa: F401  ensure models are loaded
from transformer_fakes import MemoryEntryStore, MemoryHabitStore, MemoryJournalStore, MemoryProfileStore


@pytest.fixture()
def memory_stores():
    return {
        "habits": MemoryHabitStore(),
        "entries": MemoryEntryStore(),
        "profiles": MemoryProfileStore(),
        "journal": MemoryJournalStore(),
    }


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()
