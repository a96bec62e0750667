"""Shared fixtures: an in-memory MongoDB, the stores on top of it and an API client."""

from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from catalog import Criterion
from database import get_db
from main import app, create_access_token
from stores import RatingStore, ShipStore


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def ships(db):
    return ShipStore(db)


@pytest.fixture
def ratings(db):
    return RatingStore(db)


def make_user(db, name="Pilot Silva", display_name="Hawk", role="pilot"):
    doc = {
        "name": name,
        "display_name": display_name,
        "email": f"{name.lower().replace(' ', '.')}@example.com",
        "password_hash": "x",
        "role": role,
        "is_active": True,
        "created_at": datetime.now(timezone.utc),
    }
    res = db["user"].insert_one(doc)
    return {"id": str(res.inserted_id), "name": name, "display_name": display_name, "role": role}


@pytest.fixture
def pilot(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, name="Admin User", display_name="Boss", role="admin")


def bearer(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user['id']})}"}


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def scored(**scores):
    """Items map for a rating, keyed by Criterion member name: scored(DEVICE=5, FOOD=3)."""
    return {
        Criterion[member].value: {"score": score, "note": ""}
        for member, score in scores.items()
    }
