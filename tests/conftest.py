"""
Pytest configuration for the proctoring service tests
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# must be set before proctor_service.config is imported
os.environ["STORE_BACKEND"] = "memory"
os.environ["RECORDING_STORAGE_PATH"] = tempfile.mkdtemp(prefix="proctor-recordings-")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient

from proctor_service.services.proctoring import ProctoringService
from proctor_service.services.session_store import InMemorySessionRepository


class FakeClock:
    """Deterministic clock advancing a fixed step per call."""

    def __init__(self, start=None, step_seconds=60):
        self.current = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step_seconds)

    def __call__(self):
        now = self.current
        self.current = self.current + self.step
        return now


def make_event(session_id, kind="focus-loss", severity="warning", **extra):
    payload = {
        "session_id": session_id,
        "kind": kind,
        "severity": severity,
        "message": f"{kind} detected",
    }
    payload.update(extra)
    return payload


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return ProctoringService(store=InMemorySessionRepository(), clock=clock)


@pytest.fixture
def client():
    """FastAPI test client with a fresh in-memory service per test"""
    from proctor_service.main import app

    with TestClient(app) as c:
        yield c
