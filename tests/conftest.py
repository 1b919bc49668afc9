"""Pytest fixtures for testing."""
import os

# Must be set before bopomofo.config is imported
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("ENVIRONMENT", "development")

import random
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from bopomofo.main import app
from bopomofo.db.database import Base, get_db
from bopomofo.db.models import Device
from bopomofo.services.reporter import ResultReporter
from bopomofo.services.runtime import Runtime, get_runtime
from bopomofo.services.trace_grader import TraceVerdict
from bopomofo.constants import TRACE_PASS_SCORE


class StubGrader:
    """Grader double returning a fixed score, so API tests do not depend on installed fonts."""

    def __init__(self, score: int = 100):
        self.score = score
        self.calls = []

    def grade_encoded(self, symbol, data):
        self.calls.append(symbol)
        return TraceVerdict(score=self.score, passed=self.score >= TRACE_PASS_SCORE)


@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    db = SessionLocal()

    yield db

    db.close()


@pytest.fixture
def test_device(test_db):
    """Create a test device."""
    device = Device(id="dev_test_123")
    test_db.add(device)
    test_db.commit()
    return device


@pytest.fixture
def make_runtime():
    """Factory for runtimes with a stub grader and a seeded random source."""
    created = []

    def _make(reporter=None):
        rt = Runtime(
            grader=StubGrader(),
            reporter=reporter or ResultReporter(endpoint=""),
            rng=random.Random(7)
        )
        created.append(rt)
        return rt

    yield _make

    for rt in created:
        rt.shutdown()


@pytest.fixture
def runtime(make_runtime):
    """Runtime whose reporter has no endpoint, so deliveries are skipped."""
    return make_runtime()


@pytest.fixture(scope="function")
def test_client(runtime):
    """Create a test client with in-memory database and a test runtime."""
    # One shared connection so every request sees the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_runtime] = lambda: runtime

    client = TestClient(app)

    yield client

    # Cleanup
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def ready_client(test_client):
    """Client with a bootstrapped device, a saved student and small thresholds."""
    test_client.get("/api/bootstrap")
    test_client.put("/api/student", json={"studentId": "S01", "studentName": "Mei"})
    test_client.put("/api/settings", json={
        "requiredQuestions": 2,
        "requiredAccuracy": 50,
        "enabledSymbols": ["ㄅ", "ㄆ", "ㄇ", "ㄈ"],
        "lockAfterPick": True,
    })
    return test_client
