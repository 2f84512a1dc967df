from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from auth import Identity, SessionContext, get_session, get_session_provider
from database import get_bucket, get_db
from main import app
from schemas import UserProfile

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_snapshot(doc_id: str, data: Optional[Dict[str, Any]], exists: bool = True) -> MagicMock:
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.exists = exists
    snapshot.to_dict.return_value = data
    return snapshot


def make_query(snapshots: List[MagicMock]) -> MagicMock:
    """A query mock whose chained calls return itself and whose stream yields `snapshots`."""
    query = MagicMock()
    query.where.return_value = query
    query.order_by.return_value = query
    query.limit.return_value = query
    query.stream.side_effect = lambda: iter(snapshots)
    return query


def make_session(role: Optional[str], uid: str = "user-1", name: str = "Test User") -> SessionContext:
    identity = Identity(uid=uid, email=f"{uid}@example.com", display_name=name)
    if role is None:
        return SessionContext(identity=identity)
    profile = UserProfile(id=uid, display_name=name, email=identity.email, role=role)
    return SessionContext(identity=identity, profile=profile)


@pytest.fixture
def db() -> MagicMock:
    """Stand-in Firestore client."""
    client = MagicMock()
    client.collection.return_value = make_query([])
    return client


@pytest.fixture
def bucket() -> MagicMock:
    """Stand-in Storage bucket whose blobs report a fixed public URL."""
    storage_bucket = MagicMock()
    storage_bucket.blob.return_value.public_url = "https://storage.example.com/blob"
    return storage_bucket


@pytest.fixture
def provider() -> MagicMock:
    return MagicMock()


@pytest.fixture
def api(db, bucket, provider):
    """
    Build a TestClient signed in as the given session. The lifespan is not
    entered, so no Firebase app is created.
    """

    def make_client(session: SessionContext) -> TestClient:
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_bucket] = lambda: bucket
        app.dependency_overrides[get_session_provider] = lambda: provider
        app.dependency_overrides[get_session] = lambda: session
        return TestClient(app)

    yield make_client
    app.dependency_overrides.clear()
