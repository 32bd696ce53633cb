import json
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("ASSESS_DATABASE_URL", "sqlite:///:memory:")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.db import Base
from app.dependencies import get_db, get_engine
from app.main import app
from app.services.assessment import AssessmentEngine
from app.services.rate_limiter import SlidingWindowRateLimiter

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def assessment_payload(**overrides):
    payload = {
        "remark": "Good",
        "feedback": "Solid answer with clear structure.",
        "detailedFeedback": {
            "summary": "The submission covers most requirements.",
            "strengths": ["Clear explanation"],
            "weaknesses": ["Missing edge cases"],
            "recommendations": ["Add examples"],
        },
        "scoreBreakdown": {
            "contentQuality": 80,
            "completeness": 75,
            "technicalAccuracy": 85,
            "structure": 70,
        },
        "criteriaMet": ["Explains the concept", "Gives an example", "Uses correct terms"],
        "areasForImprovement": ["Cover edge cases"],
        "confidence": 0.9,
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeBackend:
    """Stands in for the Gemini client; records every call."""

    def __init__(self, responses=None, failing_models=()):
        self.responses = list(responses or [])
        self.failing_models = set(failing_models)
        self.calls = []

    async def complete(self, model, system_prompt, user_prompt):
        self.calls.append({"model": model, "system": system_prompt, "prompt": user_prompt})
        if model in self.failing_models:
            raise RuntimeError(f"{model} unavailable")
        if self.responses:
            return self.responses.pop(0)
        return assessment_payload()


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def unreachable_handler(request):
    return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url=SQLALCHEMY_DATABASE_URL,
        gemini_api_key="test-key",
        github_api_url="https://api.github.test",
        llm_timeout_seconds=2.0,
    )


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_engine(settings, clock):
    """Builds an engine whose network traffic goes through ``handler``."""

    def factory(backend, handler=unreachable_handler, limiter=None):
        limiter = limiter or SlidingWindowRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
            clock=clock,
        )
        return AssessmentEngine(
            settings,
            limiter,
            backend,
            http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    return factory


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def assessment_engine(make_engine, fake_backend):
    return make_engine(fake_backend)


@pytest.fixture(scope="function")
def client(session, assessment_engine):
    """
    Create a TestClient that uses the test session and a fake-backed engine.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: assessment_engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def model_json():
    return assessment_payload


@pytest.fixture
def make_backend():
    return FakeBackend
