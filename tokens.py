from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import Settings


class TokenInvalid(Exception):
    pass


class TokenExpired(Exception):
    pass


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.token_secret, salt="access-token")


def issue_token(settings: Settings, user_id: int) -> str:
    return _serializer(settings).dumps({"u": user_id})


def verify_token(settings: Settings, token: str) -> int:
    """Return the user id carried by ``token``.

    Raises ``TokenInvalid`` when the signature or payload is malformed and
    ``TokenExpired`` once the token is older than the configured TTL.
    """
    max_age = settings.token_ttl_hours * 3600
    try:
        data = _serializer(settings).loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise TokenExpired("Token expired.") from exc
    except BadSignature as exc:
        raise TokenInvalid("Invalid token.") from exc

    if not isinstance(data, dict) or not isinstance(data.get("u"), int):
        raise TokenInvalid("Invalid token.")
    return data["u"]
