# File: duet/core/errors.py

"""
Domain errors raised by the Duet services.

Services raise these; duet.main registers exception handlers that turn
them into JSON responses of the form ``{"detail": ..., "code": ...}``.
Storage-layer details never reach the client: StoreError always carries
the same opaque message.
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class DuetError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"
    default_message: str = "Request failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ConfigurationError(RuntimeError):
    """Startup configuration is missing or malformed. Fatal."""


# ---------- Validation ----------


class ValidationError(DuetError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid input."


class PasswordPolicyViolation(ValidationError):
    code = "password_policy"
    default_message = "Password does not meet the security policy."

    def __init__(self, violations: List[str], messages: List[str]):
        super().__init__()
        self.violations = violations
        self.messages = messages

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["violations"] = self.violations
        payload["messages"] = self.messages
        return payload


class DuplicateUsername(ValidationError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_username"
    default_message = "That username is already taken."


# ---------- Authentication ----------


class AuthError(DuetError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "auth_error"
    default_message = "Authentication failed."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    default_message = "Incorrect username or password."


class Unauthenticated(AuthError):
    code = "unauthenticated"
    default_message = "Please log in first."


class InvalidToken(Unauthenticated):
    code = "invalid_token"
    default_message = "Session is invalid or has expired, please log in again."


class AccountDisabled(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "account_disabled"
    default_message = "This account has been disabled."


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "You are not allowed to do that."


# ---------- Pairing ----------


class PairingConflict(DuetError):
    status_code = status.HTTP_409_CONFLICT
    code = "pairing_conflict"
    default_message = "Pairing request conflicts with the current state."


class AlreadyPaired(PairingConflict):
    code = "already_paired"
    default_message = "User is already part of a couple."


class SelfPairing(PairingConflict):
    code = "self_pairing"
    default_message = "You cannot redeem your own invite code."


class AlreadyComplete(PairingConflict):
    code = "already_complete"
    default_message = "This invite code has already been used."


class InvalidCode(PairingConflict):
    status_code = status.HTTP_404_NOT_FOUND
    code = "invalid_code"
    default_message = "Invite code does not exist or has expired."


# ---------- Infrastructure ----------


class NotFound(DuetError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found."


class ConcurrencyError(DuetError):
    """The atomic unit could not be acquired in time. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "busy"
    default_message = "The server is busy with a conflicting request, please retry."
    retry_after_seconds = 1


class StoreError(DuetError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "store_error"
    default_message = "Internal server error."

    def __init__(self, message: Optional[str] = None):
        # Callers may pass detail for the log; the client always sees the default.
        super().__init__()
        self.internal_message = message
