"""Pytest configuration and fixtures for testing."""

from datetime import timedelta

import pytest
from argon2 import PasswordHasher

from models.base_model import utcnow
from models.db_storage import DBStorage
from services.rotation import RotationCoordinator
from services.session import SessionService
from utils.security import AccessTokenCodec, AuthSettings, CredentialVerifier

TEST_SECRET = "unit-test-secret-0123456789abcdef0123456789abcdef0123456789abcdef"
PASSWORD = "secret1"


class FakeClock:
    """Settable clock for the rotation coordinator."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def cheap_verifier(time_cost=1):
    return CredentialVerifier(PasswordHasher(time_cost=time_cost, memory_cost=8, parallelism=1))


@pytest.fixture(scope="function")
def settings():
    return AuthSettings(
        secret=TEST_SECRET,
        issuer="test-issuer",
        audience="test-audience",
        access_ttl=timedelta(minutes=60),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture(scope="function")
def storage(tmp_path):
    """A fresh SQLite file database per test (file, so threads share it)."""
    storage = DBStorage(f"sqlite:///{tmp_path / 'auth.db'}", timeout=10)
    storage.reload()

    yield storage

    storage.close()
    storage.drop_all()
    storage.engine.dispose()


@pytest.fixture(scope="function")
def verifier():
    return cheap_verifier()


@pytest.fixture(scope="function")
def codec(settings):
    return AccessTokenCodec(settings)


@pytest.fixture(scope="function")
def clock():
    return FakeClock(utcnow())


@pytest.fixture(scope="function")
def coordinator(storage, codec, settings, clock):
    return RotationCoordinator(storage, codec, settings, clock=clock)


@pytest.fixture(scope="function")
def service(storage, verifier, codec, coordinator):
    return SessionService(storage, verifier, codec, coordinator)


@pytest.fixture(scope="function")
def user(service):
    """Registered user a@b.com / secret1."""
    return service.register("Ada", "a@b.com", PASSWORD)


@pytest.fixture(scope="function")
def app(tmp_path):
    from api import create_app

    app = create_app(
        "testing",
        {"DATABASE_URL": f"sqlite:///{tmp_path / 'api.db'}"},
    )

    yield app

    storage = app.extensions["storage"]
    storage.close()
    storage.drop_all()
    storage.engine.dispose()


@pytest.fixture(scope="function")
def client(app):
    return app.test_client()
