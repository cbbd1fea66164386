import asyncio
import os
import tempfile
from datetime import datetime, timedelta

# Must be set before the app modules read their configuration.
_DB_DIR = tempfile.mkdtemp(prefix="booking-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["API_PREFIX"] = "/api"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import drop_db, init_db  # noqa: E402
from main import app, get_now  # noqa: E402

NOW = datetime(2025, 3, 10, 9, 0, 0)


async def _reset_db():
    await drop_db()
    await init_db()


class Clock:
    """Settable replacement for the ``get_now`` dependency."""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def reset_db():
    asyncio.run(_reset_db())


@pytest.fixture
def clock():
    clock = Clock(NOW)
    app.dependency_overrides[get_now] = clock
    yield clock
    app.dependency_overrides.pop(get_now, None)


@pytest.fixture
def client(reset_db, clock):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def device(client):
    return client.post("/api/devices", json={"name": "Projector"}).json()


@pytest.fixture
def auditory(client):
    return client.post("/api/auditories", json={"name": "Room 101", "capacity": 30}).json()
