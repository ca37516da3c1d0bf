import os

# In-memory SQLite stands in for Postgres; set before anything builds an engine.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
import pytest_asyncio

import db
from app.services.lifecycle import LifecycleEngine
from app.services.notifications import NotificationQueue


@pytest_asyncio.fixture
async def store():
    await db.create_all()
    await db.seed_frequencies()
    yield
    await db.dispose_engine()


@pytest.fixture
def lifecycle():
    return LifecycleEngine(outbox=NotificationQueue())


@pytest.fixture
def signup_form():
    def _make(**overrides):
        form = {
            "email": "a@b.com",
            "freq": "monthly",
            "sex": "male",
            "age": 30,
            "measurement_sys": "metric",
            "weight": 80.0,
            "height": 180.0,
            "est_bmr": 1800,
            "est_tdee": 2200,
        }
        form.update(overrides)
        return form

    return _make
