import os

# Must be set before guardiant modules read their config
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from guardiant import audit
from guardiant import models  # noqa: F401  registers tables
from guardiant.auth import create_access_token
from guardiant.database import Base, make_engine, get_db
from guardiant.main import (
    app,
    get_services,
    get_push_gateway,
    get_sms_gateway,
    get_clock,
)
from guardiant.models import User


class FakeClock:

    def __init__(self, start=datetime(2026, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakePushGateway:
    """Records messages; `error` is raised instead of sending when set."""

    def __init__(self):
        self.sent = []
        self.error = None
        self.on_send = None

    def send(self, token, data, notification=None):

        if self.on_send:
            self.on_send(token, data, notification)

        if self.error:
            raise self.error

        self.sent.append({"token": token, "data": data, "notification": notification})

        return f"projects/test/messages/{len(self.sent)}"

    def commands(self):
        return [m["data"]["command"] for m in self.sent if "command" in m["data"]]


class FakeSmsGateway:

    def __init__(self):
        self.messages = []
        self.error = None

    def send(self, phone_number, body):

        if self.error:
            raise self.error

        self.messages.append((phone_number, body))

        return "msg-1"


@pytest.fixture(autouse=True)
def audit_log(tmp_path, monkeypatch):
    path = tmp_path / "audit.log"
    monkeypatch.setattr(audit, "LOG_FILE", str(path))
    return path


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def push():
    return FakePushGateway()


@pytest.fixture
def sms():
    return FakeSmsGateway()


@pytest.fixture
def services(db, push, clock):
    return get_services(db=db, push=push, clock=clock)


@pytest.fixture
def user(db):
    user = User(email="owner@example.com", password="not-a-real-hash")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def device_user(db, user):
    user.push_token = "device-token-1"
    db.commit()
    return user


@pytest.fixture
def client(db, push, sms, clock):

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_push_gateway] = lambda: push
    app.dependency_overrides[get_sms_gateway] = lambda: sms
    app.dependency_overrides[get_clock] = lambda: clock

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    token = create_access_token({"sub": user.id})
    return {"Authorization": f"Bearer {token}"}
