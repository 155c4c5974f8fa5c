import os

# Settings are read at import time, so the environment has to be in place first
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ["ADMIN_JWT_SECRET"] = "test-admin-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["APP_URL"] = "http://localhost:3000"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from eventskona.core.database import Base, get_db
from eventskona.core.rate_limit import rate_limiter
from eventskona.core.security import get_password_hash
from eventskona.main import app
from eventskona.models.user import User
from eventskona.services.admin_auth import admin_store

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    rate_limiter.reset()
    admin_store.clear()
    yield
    rate_limiter.reset()
    admin_store.clear()


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: the lifespan (scheduler, admin bootstrap) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Insert a user row directly; password=None makes an OAuth-only account"""
    def _make_user(email="user@example.com", password="Str0ng!Pass", **fields):
        user = User(
            email=email,
            password_hash=get_password_hash(password) if password else None,
            **fields
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def reload_user(db_session):
    """Fresh copy of a user row, bypassing the session's identity map"""
    def _reload(user_id):
        db_session.expire_all()
        return db_session.query(User).filter(User.id == user_id).first()
    return _reload
