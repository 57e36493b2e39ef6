from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy.orm import sessionmaker

from app import create_app
from clients.notification_client import NotificationResult
from config import TestConfig
from models import db
from security.tokens import Identity


class FakeNotifier:
    def __init__(self):
        self.calls = []
        self.fail = False

    def _record(self, kind, email, display_name, service_type, formatted_date):
        self.calls.append((kind, email, display_name, service_type, formatted_date))
        if self.fail:
            return NotificationResult(False, "notification-service down")
        return NotificationResult(True)

    def notify_created(self, email, display_name, service_type, formatted_date):
        return self._record("created", email, display_name, service_type, formatted_date)

    def notify_cancelled(self, email, display_name, service_type, formatted_date):
        return self._record("cancelled", email, display_name, service_type, formatted_date)


class FakeUserClient:
    def __init__(self, profiles=None):
        self.profiles = profiles or {}
        self.lookups = []

    def get_user(self, user_id, token):
        self.lookups.append(user_id)
        return self.profiles.get(user_id)


class SteppingClock:
    """Each call returns a time one second later than the previous one."""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def clock():
    return SteppingClock(datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def user_client():
    return FakeUserClient()


@pytest.fixture
def app(notifier, user_client, clock):
    app = create_app(TestConfig, notifier=notifier, user_client=user_client, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def service(app):
    return app.extensions["booking_service"]


@pytest.fixture
def session_factory(app):
    return sessionmaker(bind=db.engine, expire_on_commit=False)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def identity():
    return Identity(user_id="U1", email="u1@example.com", display_name="Ana")


def make_token(user_id="U1", email="u1@example.com", nombre="Ana", secret=TestConfig.JWT_SECRET, **extra):
    claims = {"userId": user_id, **extra}
    if email is not None:
        claims["email"] = email
    if nombre is not None:
        claims["nombre"] = nombre
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
