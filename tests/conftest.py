"""
Pytest configuration and shared fixtures.

- In-memory SQLite engine bound to the global session factory
- Session + seed helpers
- Recording dispatcher and fake HTTP responses for channel calls
"""

import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from data_models import Base  # noqa: E402
from data_models.growth_enums import IdentityProvider  # noqa: E402
from data_services.automation_queue import AutomationDispatcher, AutomationWorkItem  # noqa: E402
from data_utils.db_factory import bind_engine, get_session  # noqa: E402
from data_workers.person_repository import PersonRepository  # noqa: E402
from main_configs import GrowthConfigs  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory database per test; one shared connection for every session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    bind_engine(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = get_session()
    yield session
    session.close()


@pytest.fixture
def strict_session():
    """
    Session on a database that enforces foreign keys and real SAVEPOINTs,
    the way Postgres does. SAVEPOINTs only nest under pysqlite with an explicit BEGIN.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    bind_engine(engine)
    session = get_session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture(autouse=True)
def no_integrations(monkeypatch):
    """Tests never talk to real providers unless they opt in."""
    monkeypatch.setattr(GrowthConfigs, "META_PIXEL_ID", None)
    monkeypatch.setattr(GrowthConfigs, "META_CAPI_ACCESS_TOKEN", None)
    monkeypatch.setattr(GrowthConfigs, "META_CAPI_TEST_CODE", None)
    monkeypatch.setattr(GrowthConfigs, "META_ACCESS_TOKEN", None)
    monkeypatch.setattr(GrowthConfigs, "RESEND_API_KEY", None)
    monkeypatch.setattr(GrowthConfigs, "RESEND_WEBHOOK_SECRET", None)
    monkeypatch.setattr(GrowthConfigs, "WEBHOOK_SIGNING_SECRET", None)
    monkeypatch.setattr(GrowthConfigs, "AUTOMATION_DISPATCH_MODE", "inline")
    monkeypatch.setattr(GrowthConfigs, "BATCH_MAX_WORKERS", 1)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def utc(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def make_person(session):
    """Create a person, optionally linked to an app user id."""

    def _make(email=None, name=None, phone=None, user_id=None, **traits):
        repo = PersonRepository(session)
        person = repo.create(email=email, phone=phone, name=name, traits=traits)
        if user_id:
            repo.create_link(person.id, IdentityProvider.APP, user_id)
        session.commit()
        return person

    return _make


class RecordingDispatcher(AutomationDispatcher):
    """Collects work items instead of running them."""

    def __init__(self):
        self.items: List[AutomationWorkItem] = []

    def dispatch(self, items: List[AutomationWorkItem]) -> List[Dict[str, Any]]:
        self.items.extend(items)
        return [{"status": "recorded", "channel": item.channel} for item in items]


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload

    def raise_for_status(self):
        import requests

        if not self.ok:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)


class HttpRecorder:
    """Stand-in for requests.post / requests.request that records every call."""

    def __init__(self, response: FakeResponse = None, error: Exception = None):
        self.response = response or FakeResponse(200, {"ok": True})
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def http(monkeypatch):
    import requests

    recorder = HttpRecorder()
    monkeypatch.setattr(requests, "post", recorder.post)
    monkeypatch.setattr(requests, "request", recorder.request)
    return recorder
