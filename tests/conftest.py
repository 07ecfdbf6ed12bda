from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from tripsplit.main import app
from tripsplit.services.cache import result_cache
from tripsplit.services.inflight import settlement_guard

COLLECTIONS = [
    "trip", "trip_member", "bill", "bill_share", "payment", "payment_proof",
    "debt_summary", "notification", "friends", "friend_requests",
]

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_cursor(docs):
    """Stand-in for a motor cursor: find(...).sort(...).to_list(None)."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(docs))
    return cursor


@pytest.fixture
def cursor():
    return make_cursor


@pytest.fixture
def at():
    """Timestamp `minutes` after a fixed base time."""
    def _at(minutes: int = 0) -> datetime:
        return BASE_TIME + timedelta(minutes=minutes)
    return _at


@pytest.fixture
def mock_db():
    """Mock MongoDB database: every collection reachable as db[name] and db.name."""
    db = MagicMock()
    collections = {}
    for name in COLLECTIONS:
        collection = MagicMock()
        collection.name = name
        collection.find = MagicMock(return_value=make_cursor([]))
        collection.find_one = AsyncMock(return_value=None)
        collection.find_one_and_update = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.insert_many = AsyncMock()
        collection.update_one = AsyncMock()
        collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
        collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
        collections[name] = collection
        setattr(db, name, collection)
    db.__getitem__.side_effect = lambda name: collections[name]
    return db


@pytest.fixture(autouse=True)
def clean_state():
    """Process-wide singletons start empty for every test."""
    result_cache.clear()
    settlement_guard._active.clear()
    yield
    result_cache.clear()
    settlement_guard._active.clear()
    app.dependency_overrides.clear()
