"""Pytest configuration and fixtures for the water billing API."""

import os
import tempfile

# Must be set before config/database are imported.
_TEST_DIR = tempfile.mkdtemp(prefix="water-billing-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TEST_DIR, "test.db")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from auth import hash_password
from database import Base, MeterReading, Role, SessionLocal, User, engine, init_db
from dependencies import get_image_store, get_sms_gateway
from errors import ImageUploadError
from main import app


class FakeImageStore:
    def __init__(self, url="https://res.cloudinary.com/demo/image/upload/reading.jpg"):
        self.url = url
        self.fail = False
        self.calls = []
        self.readings_at_call = []

    def upload(self, data):
        self.calls.append(data)
        with SessionLocal() as db:
            self.readings_at_call.append(db.query(MeterReading).count())
        if self.fail:
            raise ImageUploadError("Failed to upload image")
        return self.url


class FakeSmsGateway:
    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, to, message):
        if self.error is not None:
            raise self.error
        self.sent.append((to, message))
        return [{"message_id": 1, "recipient": to, "status": "Pending"}]


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def sms_gateway():
    return FakeSmsGateway()


@pytest.fixture
def client(image_store, sms_gateway):
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_sms_gateway] = lambda: sms_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def lenient_client(image_store, sms_gateway):
    """Client that returns the app's 500 responses instead of re-raising."""
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_sms_gateway] = lambda: sms_gateway
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def channel(client):
    return client.app.state.channel


@pytest.fixture
def subscription(channel):
    sub = channel.subscribe()
    yield sub
    channel.unsubscribe(sub)


def role_id(name):
    with SessionLocal() as db:
        return db.query(Role).filter(Role.name == name).one().id


def make_account(username="juan", password="secret123", role="consumer", purok="Purok 3"):
    with SessionLocal() as db:
        user = User(
            username=username,
            password=hash_password(password),
            role_id=role_id(role),
            purok=purok,
        )
        db.add(user)
        db.commit()
        return user.id


def make_reading(account_id, value=120.5):
    with SessionLocal() as db:
        reading = MeterReading(user_id=account_id, reading_value=value)
        db.add(reading)
        db.commit()
        return reading.id


def drain(sub):
    frames = []
    while not sub.queue.empty():
        frames.append(sub.queue.get_nowait())
    return frames


@pytest.fixture
def account_id():
    return make_account()
