"""Pytest fixtures: fake monotonic clock, isolated DB per test, FastAPI TestClient."""
import pytest
from fastapi.testclient import TestClient

from studyfocus.database import init_db, make_session_factory
from studyfocus.environment_analyzer import EnvironmentAnalyzer
from studyfocus.main import create_app
from studyfocus.models import SessionConfig
from studyfocus.session_timer import SessionTimer


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_timer(clock):
    def _make(session_seconds=10, break_seconds=0):
        config = SessionConfig(
            session_duration_seconds=session_seconds,
            break_duration_seconds=break_seconds,
        )
        return SessionTimer(config, clock=clock)
    return _make


@pytest.fixture
def analyzer():
    return EnvironmentAnalyzer()


@pytest.fixture
def session_factory(tmp_path):
    factory = make_session_factory(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(factory)
    return factory


@pytest.fixture
def client(session_factory):
    app = create_app(session_factory=session_factory, run_background=False)
    with TestClient(app) as c:
        yield c
