import asyncio
import os
from datetime import datetime, timedelta

# Must be set before authcode.config / authcode.database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["EMAIL_HOST"] = ""

import pytest
from fastapi.testclient import TestClient

from authcode.config import settings
from authcode.database import Base, SessionLocal, engine, get_db
from authcode import models  # noqa: F401
from authcode.dependencies import get_clock
from authcode.services.challenge_store import ChallengeStore
from authcode.services.email_service import get_delivery
from authcode.services.errors import DeliveryError
from authcode.services.flow_service import FlowController
from authcode.services.identity_service import SqlIdentityProvider
from authcode.services.verification_service import VerificationService
from authcode.utils.clock import FrozenClock

TEST_PASSWORD = "Sup3r$ecret"


def run(coro):
    return asyncio.run(coro)


class FakeDelivery:
    """Records every code handed to delivery instead of sending email."""

    def __init__(self):
        self.sent = []
        self.welcomed = []
        self.fail = False
        self.delay = 0

    async def send(self, address, purpose, code):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise DeliveryError()
        self.sent.append((address, purpose, code))

    async def send_welcome(self, address):
        self.welcomed.append(address)
        return True

    @property
    def last_code(self):
        return self.sent[-1][2]


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def identity(db_session, clock):
    return SqlIdentityProvider(db_session, clock)


@pytest.fixture
def account(identity):
    return identity.register("Jane.Doe@Example.com", TEST_PASSWORD)


@pytest.fixture
def store(db_session, clock):
    return ChallengeStore(db_session, clock, max_attempts=settings.MAX_ATTEMPTS, lock_timeout=1.0)


@pytest.fixture
def verification(store, delivery, identity, clock):
    return VerificationService(store, delivery, identity, clock, code_ttl=timedelta(minutes=settings.CODE_TTL_MINUTES))


@pytest.fixture
def flows(db_session, verification, identity, clock, delivery):
    return FlowController(db_session, verification, identity, clock, settings, delivery=delivery)


@pytest.fixture
def client(db_session, clock, delivery):
    from authcode.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_delivery] = lambda: delivery
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
