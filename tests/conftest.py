import os

os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

from fake_firestore import FakeFirestore
from main import app
from models import User
from routes import auth_routes
from utils.firebase import get_db
from utils.turn_clock import get_turn_clock


class RecordingClock:
    def __init__(self):
        self.started = []
        self.stopped = []

    def start(self, lobby_id):
        self.started.append(lobby_id)

    def stop(self, lobby_id):
        self.stopped.append(lobby_id)


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(auth_routes, "pwd_ctx", CryptContext(schemes=["bcrypt"], bcrypt__rounds=4))


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def clock():
    return RecordingClock()


@pytest.fixture
def client(db, clock):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_turn_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Seed a user document and return (user_id, auth headers)."""
    def _make(username, **extra):
        user = User(
            user_id  = f"uid-{username}",
            email    = f"{username}@example.com",
            password = "x",
            username = username,
            **extra,
        )
        db.collection("users").document(user.user_id).set(user.model_dump())
        token = auth_routes.create_jwt(user.user_id)
        return user.user_id, {"Authorization": f"Bearer {token}"}
    return _make
