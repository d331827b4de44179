import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from config import Settings
from errors import AuthError, AuthReason
from models import User
from tokens import TokenExpired, TokenInvalid, verify_token

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


def authenticate(
    session: Session, raw_header: Optional[str], settings: Settings
) -> Identity:
    if not raw_header or not raw_header.startswith(BEARER_PREFIX):
        raise AuthError(AuthReason.missing_token)

    token = raw_header[len(BEARER_PREFIX) :].strip()
    if not token:
        raise AuthError(AuthReason.missing_token)

    try:
        user_id = verify_token(settings, token)
    except TokenExpired as exc:
        raise AuthError(AuthReason.expired_token) from exc
    except TokenInvalid as exc:
        raise AuthError(AuthReason.invalid_token) from exc

    user = session.get(User, user_id)
    if user is None:
        logger.info(f"auth_rejected: reason=unknown_user user_id={user_id}")
        raise AuthError(AuthReason.unknown_user)
    return Identity.from_user(user)
