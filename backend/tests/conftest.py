import os

# Secrets must exist before importing gatepass.main (it calls require_token_secrets() at import time).
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test_refresh_token_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("EMAIL_ENABLED", "false")

from contextlib import contextmanager
import importlib

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gatepass.core.base import Base
from gatepass.core import config as app_config
from gatepass.core.tokens import issue_access_token

# Import models so they register with SQLAlchemy metadata.
from gatepass.models.user import User, UserRole  # noqa: F401
from gatepass.models.refresh_token import RefreshToken  # noqa: F401
from gatepass.models.password_reset_token import PasswordResetToken  # noqa: F401
from gatepass.models.event import Event  # noqa: F401
from gatepass.models.resource import ClaimableResource, ScanRecord  # noqa: F401

from gatepass.core.database import get_db
from gatepass.services import credentials
from gatepass.services.notifications import reset_notification_bus
from gatepass.services.sessions import access_claims_for

PASSWORD = "Correct-Horse-42"


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests (StaticPool), so reset the schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """
    File-backed SQLite with one connection per session, for tests where
    several sessions (or threads) must race against the same rows.
    """
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests sometimes tweak the process-global settings object; restore them after each test.
    """
    keys = [
        "ENABLE_RATE_LIMITING",
        "PASSWORD_MIN_LENGTH",
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "REFRESH_TOKEN_EXPIRE_DAYS",
        "REFRESH_REUSE_REVOKES_ALL",
        "DAILY_GENERIC_CODE_LIMIT",
        "EMAIL_ENABLED",
        "EMAIL_PROVIDER",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        app_config.settings.ENABLE_RATE_LIMITING = False


@pytest.fixture(autouse=True)
def _fresh_notification_bus():
    reset_notification_bus()
    yield
    reset_notification_bus()


@pytest.fixture()
def app(db_session):
    app_config.settings.ENABLE_RATE_LIMITING = False

    # SlowAPI decorators bind at import time; reload so a rate-limit test can't leak into others.
    import gatepass.routes.auth as auth_routes
    import gatepass.routes.resources as resource_routes
    import gatepass.main as main

    importlib.reload(auth_routes)
    importlib.reload(resource_routes)
    importlib.reload(main)
    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session):
    """
    Factory: make_user("a@example.com", roles=["GENERATOR"]) -> committed User.
    """

    def _make_user(email: str, roles=("USER",), password: str = PASSWORD, **profile) -> User:
        user = credentials.create_user(
            db_session,
            email=email,
            password=password,
            roles=list(roles),
            trusted_roles=True,
            **profile,
        )
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def admin(make_user):
    return make_user("admin@example.com", roles=["ADMIN"])


@pytest.fixture()
def generator(make_user):
    return make_user("gen@example.com", roles=["GENERATOR"])


@pytest.fixture()
def other_generator(make_user):
    return make_user("gen2@example.com", roles=["GENERATOR"])


@pytest.fixture()
def scanner(make_user):
    return make_user("scanner@example.com", roles=["SCANNER"])


@pytest.fixture()
def receiver(make_user):
    return make_user("receiver@example.com", roles=["RECEIVER"])


def auth_headers(user: User) -> dict[str, str]:
    token = issue_access_token(access_claims_for(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(app):
    """Unauthenticated client; auth tests drive the cookie/bearer flow themselves."""
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def client_for(app):
    """
    Context manager for a client carrying a real bearer token for `user`.

    Usage:
        with client_for(user) as c:
            ...
    """

    @contextmanager
    def _client_for(user: User):
        with TestClient(app, headers=auth_headers(user)) as c:
            yield c

    return _client_for


@pytest.fixture()
def headers_for():
    return auth_headers


@pytest.fixture()
def password():
    return PASSWORD
