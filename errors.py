from enum import Enum
from typing import Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict[str, object]:
        return {"error": self.message}


class ValidationFailed(AppError):
    status_code = 400

    def __init__(
        self, details: list[dict[str, str]], message: str = "Validation failed"
    ) -> None:
        super().__init__(message)
        self.details = details

    def payload(self) -> dict[str, object]:
        return {"error": self.message, "details": self.details}


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 400


class AuthReason(str, Enum):
    missing_token = "missing_token"
    invalid_token = "invalid_token"
    expired_token = "expired_token"
    unknown_user = "unknown_user"
    invalid_credentials = "invalid_credentials"


AUTH_MESSAGES = {
    AuthReason.missing_token: "No token provided. Access denied.",
    AuthReason.invalid_token: "Invalid token.",
    AuthReason.expired_token: "Token expired.",
    AuthReason.unknown_user: "User not found. Token invalid.",
    AuthReason.invalid_credentials: "Invalid email or password.",
}


class AuthError(AppError):
    status_code = 401

    def __init__(self, reason: AuthReason, message: Optional[str] = None) -> None:
        super().__init__(message or AUTH_MESSAGES[reason])
        self.reason = reason

    def payload(self) -> dict[str, object]:
        return {"error": self.message, "reason": self.reason.value}
