import os

# Settings are read at import time; keep the demo app off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from querybar.schemas.log_entry import LogEntry
from querybar.services.collector import QueryCollector
from querybar.services.extractor import FieldExtractor


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture()
def engine():
    """Per-test SQLite in-memory engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def extractor():
    return FieldExtractor(outer="|||", inner=":::")


@pytest.fixture()
def make_entry(extractor):
    """Builds an entry from field values, filling in the ones not given."""
    def _make(time="0.0010", mem="1.00", method="Cursor.execute", sql="SELECT 1", **kwargs):
        message = extractor.format(time=time, mem=mem, method=method, sql=sql)
        return LogEntry(message=message, **kwargs)

    return _make


@pytest.fixture()
def collector(extractor):
    """Collector without a connection."""
    return QueryCollector(extractor=extractor)


@pytest.fixture()
def client():
    from querybar.main import app

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
