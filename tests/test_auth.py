import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from auth import authenticate
from config import Settings
from database import Base
from errors import AuthError, AuthReason
from models import User
from tokens import TokenExpired, TokenInvalid, issue_token, verify_token


def _settings(secret: str = "test-secret") -> Settings:
    return Settings(
        database_url="sqlite://",
        timezone="UTC",
        token_secret=secret,
        token_ttl_hours=1,
        environment="test",
        category_delete_policy="nullify",
        log_level="INFO",
    )


def test_token_round_trip_carries_user_id() -> None:
    settings = _settings()
    assert verify_token(settings, issue_token(settings, 42)) == 42


def test_token_expires_after_ttl(monkeypatch, issue_token_at) -> None:
    settings = _settings()
    issued_at = int(time.time()) - 2 * 3600
    token = issue_token_at(settings, 42, issued_at)
    with pytest.raises(TokenExpired):
        verify_token(settings, token)

    monkeypatch.setattr(time, "time", lambda: issued_at + 60)
    assert verify_token(settings, token) == 42


def test_token_from_the_future_is_rejected(issue_token_at) -> None:
    settings = _settings()
    token = issue_token_at(settings, 42, int(time.time()) + 3600)
    with pytest.raises(TokenExpired):
        verify_token(settings, token)


def test_token_signed_with_other_secret_is_invalid() -> None:
    token = issue_token(_settings("other-secret"), 42)
    with pytest.raises(TokenInvalid):
        verify_token(_settings(), token)
    with pytest.raises(TokenInvalid):
        verify_token(_settings(), "not.a.token")


def test_authenticate_reasons(issue_token_at) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    settings = _settings()

    with Session(engine) as session:
        user = User(name="John Doe", email="john@example.com", password_hash="x")
        session.add(user)
        session.commit()

        def reason(header):
            with pytest.raises(AuthError) as exc:
                authenticate(session, header, settings)
            return exc.value.reason

        assert reason(None) == AuthReason.missing_token
        assert reason("Token abc") == AuthReason.missing_token
        assert reason("Bearer ") == AuthReason.missing_token
        assert reason("Bearer garbage") == AuthReason.invalid_token
        expired = issue_token_at(settings, user.id, int(time.time()) - 7200)
        assert reason(f"Bearer {expired}") == AuthReason.expired_token
        ghost = issue_token(settings, user.id + 100)
        assert reason(f"Bearer {ghost}") == AuthReason.unknown_user

        identity = authenticate(session, f"Bearer {issue_token(settings, user.id)}", settings)
        assert identity.id == user.id
        assert identity.email == "john@example.com"
        assert not hasattr(identity, "password_hash")
