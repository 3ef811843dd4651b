# File: duet/core/security.py

"""
Security helpers for the Duet API.

- Password hashing with argon2id (argon2-cffi).
- Signed, stateless session tokens (HS256 JWT via python-jose).

The signing secret is read once at startup and handed to TokenService by
construction. Nothing here touches the database.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from jose import jwt
from jose.exceptions import JOSEError
from jose.utils import base64url_decode, base64url_encode

from duet.core.config import Settings
from duet.core.errors import ConfigurationError, InvalidToken

MIN_SECRET_BYTES = 32

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------
# Passwords
# -----------------------------


def build_password_hasher(settings: Settings) -> PasswordHasher:
    """argon2id hasher; unset tuning knobs fall back to argon2-cffi defaults."""
    params: Dict[str, int] = {}
    if settings.argon2_time_cost is not None:
        params["time_cost"] = settings.argon2_time_cost
    if settings.argon2_memory_cost is not None:
        params["memory_cost"] = settings.argon2_memory_cost
    if settings.argon2_parallelism is not None:
        params["parallelism"] = settings.argon2_parallelism
    return PasswordHasher(**params)


def hash_password(hasher: PasswordHasher, password: str) -> str:
    return hasher.hash(password)


def verify_password(hasher: PasswordHasher, password_hash: str, password: str) -> bool:
    try:
        return hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# -----------------------------
# Session tokens
# -----------------------------


@dataclass(frozen=True)
class IdentityClaims:
    user_id: str
    username: str
    role: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    username: str
    role: str
    issued_at: datetime
    expires_at: datetime

    @property
    def identity(self) -> IdentityClaims:
        return IdentityClaims(user_id=self.user_id, username=self.username, role=self.role)


class TokenService:
    """
    Issues and verifies signed session tokens.

    verify() is strict: bad signature, malformed token, missing claims,
    non-canonical signature encoding and ``now >= exp`` all raise
    InvalidToken. There is no partially trusted result.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        *,
        lifetime: timedelta = timedelta(hours=24),
        algorithm: str = "HS256",
        clock: Clock = utcnow,
    ):
        if not secret_key or not secret_key.strip():
            raise ConfigurationError("SECRET_KEY is not set; refusing to start.")
        if len(secret_key.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigurationError(
                f"SECRET_KEY must be at least {MIN_SECRET_BYTES} bytes long."
            )
        if lifetime <= timedelta(0):
            raise ConfigurationError("Token lifetime must be positive.")
        if not algorithm.startswith("HS"):
            raise ConfigurationError(f"Unsupported token algorithm: {algorithm}")

        self._secret_key = secret_key
        self._lifetime = lifetime
        self._algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Clock = utcnow) -> "TokenService":
        return cls(
            settings.secret_key,
            lifetime=timedelta(minutes=settings.access_token_expire_minutes),
            algorithm=settings.algorithm,
            clock=clock,
        )

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, claims: IdentityClaims) -> str:
        now = int(self._clock().timestamp())
        payload: Dict[str, Any] = {
            "sub": claims.user_id,
            "username": claims.username,
            "role": claims.role,
            "iat": now,
            "exp": now + int(self._lifetime.total_seconds()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: Optional[str]) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise InvalidToken()

        self._check_canonical_signature(token)

        try:
            # Expiry is checked below against our own clock.
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JOSEError:
            raise InvalidToken()

        user_id = payload.get("sub")
        username = payload.get("username")
        role = payload.get("role")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if not (isinstance(user_id, str) and isinstance(username, str) and isinstance(role, str)):
            raise InvalidToken()
        if not (isinstance(iat, int) and isinstance(exp, int)):
            raise InvalidToken()
        # bool is an int subclass
        if isinstance(iat, bool) or isinstance(exp, bool):
            raise InvalidToken()

        if self._clock().timestamp() >= exp:
            raise InvalidToken()

        return TokenClaims(
            user_id=user_id,
            username=username,
            role=role,
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )

    @staticmethod
    def _check_canonical_signature(token: str) -> None:
        # base64url decoding ignores the spare low bits of the final
        # character, so two spellings can decode to the same MAC.
        parts = token.split(".")
        if len(parts) != 3 or not parts[2]:
            raise InvalidToken()
        try:
            segment = parts[2].encode("ascii")
            canonical = base64url_encode(base64url_decode(segment))
        except (UnicodeEncodeError, ValueError, TypeError):
            raise InvalidToken()
        if canonical != segment:
            raise InvalidToken()
