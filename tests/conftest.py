import os

import pytest

os.environ.setdefault("REVIEWBOX_DATABASE_URL", "sqlite://")
os.environ.setdefault("REVIEWBOX_LOG_JSON", "false")

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reviewbox import crud
from reviewbox.database import init_db
from reviewbox.schemas import PatternCreate
from reviewbox.service import LocalItemService

from tests.helpers import TODAY, steps


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def service(session_factory):
    return LocalItemService(session_factory, clock=lambda: TODAY)


@pytest.fixture
def make_pattern(db):
    def _make(*intervals, name="pattern"):
        return crud.create_pattern(db, PatternCreate(name=name, steps=steps(*intervals)))
    return _make
