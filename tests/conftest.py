# File: tests/conftest.py

import os
import tempfile
from datetime import datetime, timedelta, timezone

# duet.main builds a module-level app on import, so the environment has to
# be usable before anything from duet is imported.
_IMPORT_DB_DIR = tempfile.mkdtemp(prefix="duet-tests-")
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-0123456789"
os.environ["DATABASE_URL"] = f"sqlite:///{_IMPORT_DB_DIR}/import.db"
os.environ["DUET_ENV"] = "development"
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "1024"
os.environ["ARGON2_PARALLELISM"] = "1"

import pytest
from fastapi.testclient import TestClient

from duet.core.config import Settings
from duet.main import create_application
from duet.models.user import UserRole

TEST_SECRET = "another-test-secret-key-with-plenty-of-bytes-42"
GOOD_PASSWORD = "Ab12345!"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path}/duet.db",
        secret_key=TEST_SECRET,
        environment="development",
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
    )


@pytest.fixture
def app(settings):
    application = create_application(settings)
    yield application
    application.state.engine.dispose()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def new_client(app):
    """Separate cookie jars, one per simulated browser."""
    return lambda: TestClient(app)


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def store(app):
    return app.state.identity_store


@pytest.fixture
def gateway(app):
    return app.state.gateway


@pytest.fixture
def coordinator(app):
    return app.state.coordinator


@pytest.fixture
def make_user(app, gateway, store):
    def _make_user(username: str, password: str = GOOD_PASSWORD, role: UserRole = UserRole.USER):
        with app.state.session_factory() as session:
            user = gateway.register(session, username=username, password=password)
            if role != UserRole.USER:
                store.update_profile(session, user.id, role=role)
                session.commit()
            return user

    return _make_user


def reload_user(app, user_id: str):
    from duet.models.user import User

    with app.state.session_factory() as session:
        return session.get(User, user_id)
