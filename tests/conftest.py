import os
import time

os.environ.setdefault("EXPENSES_DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings, get_settings
from database import Base, build_engine, session_scope
from main import app, get_db
from tokens import issue_token


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "timezone": "UTC",
        "token_secret": "test-secret",
        "token_ttl_hours": 1,
        "environment": "test",
        "category_delete_policy": "nullify",
        "log_level": "INFO",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def client(engine, settings):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        with session_scope(factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(
        email: str = "john@example.com",
        name: str = "John Doe",
        password: str = "password123",
    ) -> dict:
        res = client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert res.status_code == 201, res.text
        body = res.json()
        return {"Authorization": f"Bearer {body['token']}"}

    return _register


@pytest.fixture
def auth_headers(register) -> dict:
    return register()


@pytest.fixture
def use_settings(client):
    def _use(**overrides) -> Settings:
        replacement = make_settings(**overrides)
        app.dependency_overrides[get_settings] = lambda: replacement
        return replacement

    return _use


@pytest.fixture
def issue_token_at(monkeypatch):
    def _issue(settings: Settings, user_id: int, timestamp: int) -> str:
        with monkeypatch.context() as patch:
            patch.setattr(time, "time", lambda: timestamp)
            return issue_token(settings, user_id)

    return _issue


@pytest.fixture
def lenient_client(client):
    # Server errors come back as 500 responses instead of being re-raised.
    return TestClient(app, raise_server_exceptions=False)
