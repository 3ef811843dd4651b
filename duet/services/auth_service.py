# File: duet/services/auth_service.py

"""
Session gateway.

Turns credentials into tokens and tokens back into identities:
  - registration (password policy -> argon2 hash -> identity store)
  - login / token issuing
  - per-request authentication, optionally re-reading the user so role,
    status and pairing changes show up before the token expires

Logout is stateless: the server keeps no session table, so the HTTP layer
simply tells the client to drop its cookie.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from argon2 import PasswordHasher
from sqlalchemy.orm import Session

from duet.core.config import PasswordPolicy, Settings
from duet.core.errors import (
    AccountDisabled,
    InvalidCredentials,
    PasswordPolicyViolation,
    Unauthenticated,
    ValidationError,
)
from duet.core.security import (
    IdentityClaims,
    TokenService,
    build_password_hasher,
    hash_password,
    verify_password,
)
from duet.db.session import atomic
from duet.models.user import User, UserRole
from duet.services.identity_store import IdentityStore
from duet.services.password_policy import PolicyResult, evaluate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserIdentity:
    """Already-authenticated caller, as handed to route handlers."""

    user_id: str
    username: str
    role: str
    couple_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @classmethod
    def from_user(cls, user: User) -> "UserIdentity":
        return cls(
            user_id=user.id,
            username=user.username,
            role=UserRole(user.role).value,
            couple_id=user.couple_id,
            display_name=user.display_name,
        )


class SessionGateway:
    def __init__(
        self,
        store: IdentityStore,
        tokens: TokenService,
        hasher: PasswordHasher,
        policy: Optional[PasswordPolicy] = None,
    ):
        self._store = store
        self._tokens = tokens
        self._hasher = hasher
        self._policy = policy or PasswordPolicy()
        # Verified against when the username is unknown, so both failure
        # paths cost one argon2 verification.
        self._dummy_hash = hasher.hash("duet-dummy-password")

    @classmethod
    def from_settings(cls, settings: Settings, store: IdentityStore, tokens: TokenService) -> "SessionGateway":
        return cls(store, tokens, build_password_hasher(settings), settings.password_policy)

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    # ---------- Password policy ----------

    def check_password(self, password: Optional[str]) -> PolicyResult:
        return evaluate(password, self._policy)

    def _require_acceptable(self, password: str) -> None:
        result = self.check_password(password)
        if not result.accepted:
            raise PasswordPolicyViolation(result.codes, result.messages)

    # ---------- Registration ----------

    def register(
        self,
        db: Session,
        *,
        username: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> User:
        self._require_acceptable(password)
        with atomic(db):
            user = self._store.create_user(
                db,
                username=username,
                password_hash=hash_password(self._hasher, password),
                display_name=display_name,
            )
        logger.info("Registered user %s", user.id)
        return user

    # ---------- Login ----------

    def issue_token(self, user: User) -> str:
        return self._tokens.issue(
            IdentityClaims(user_id=user.id, username=user.username, role=UserRole(user.role).value)
        )

    def login(self, db: Session, *, username: str, password: str) -> Tuple[str, User]:
        if not username or not password:
            raise InvalidCredentials()

        user = self._store.get_by_username(db, username)
        if user is None:
            verify_password(self._hasher, self._dummy_hash, password)
            raise InvalidCredentials()
        if not verify_password(self._hasher, user.password_hash, password):
            logger.info("Failed login for user %s", user.id)
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountDisabled()

        with atomic(db):
            if self._hasher.check_needs_rehash(user.password_hash):
                self._store.update_profile(db, user.id, password_hash=hash_password(self._hasher, password))
            self._store.touch_last_login(db, user)

        logger.info("User %s logged in", user.id)
        return self.issue_token(user), user

    # ---------- Per-request authentication ----------

    def authenticate(self, db: Session, token: Optional[str], *, fresh: bool = True) -> UserIdentity:
        """
        Resolve a bearer token to the calling user.

        With ``fresh=False`` only the signed claims are used (no database
        read); couple_id is then unknown and left as None.
        """
        if not token:
            raise Unauthenticated()
        claims = self._tokens.verify(token)

        if not fresh:
            return UserIdentity(user_id=claims.user_id, username=claims.username, role=claims.role)

        user = self._store.get_by_id(db, claims.user_id)
        if user is None or not user.is_active:
            raise Unauthenticated()
        return UserIdentity.from_user(user)

    # ---------- Profile ----------

    def update_profile(self, db: Session, user_id: str, *, display_name: Optional[str]) -> User:
        with atomic(db):
            user = self._store.update_profile(db, user_id, display_name=display_name)
        return user

    def change_password(
        self,
        db: Session,
        user_id: str,
        *,
        current_password: Optional[str],
        new_password: str,
    ) -> User:
        if not current_password:
            raise ValidationError("Current password is required to set a new one.")
        self._require_acceptable(new_password)

        user = self._store.require_user(db, user_id)
        if not verify_password(self._hasher, user.password_hash, current_password):
            raise InvalidCredentials("Current password is incorrect.")

        with atomic(db):
            user = self._store.update_profile(db, user_id, password_hash=hash_password(self._hasher, new_password))
        logger.info("User %s changed password", user_id)
        return user
