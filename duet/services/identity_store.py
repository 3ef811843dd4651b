# File: duet/services/identity_store.py

"""
Identity store: durable user records and the user -> couple link.

Every method works inside the caller's SQLAlchemy session and never
commits; the caller owns the transaction. Link changes are conditional
UPDATEs so two writers racing on the same user cannot both win, even
across processes.
"""

from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from duet.core.errors import AlreadyPaired, DuplicateUsername, NotFound, ValidationError
from duet.models.base import utcnow
from duet.models.user import User, UserRole, UserStatus

USERNAME_MAX_LENGTH = 64
# Fields update_profile may touch; username is immutable.
MUTABLE_FIELDS = frozenset({"display_name", "password_hash", "role", "status"})


def normalize_username(username: str) -> str:
    return (username or "").strip()


class IdentityStore:
    # ---------- Reads ----------

    def get_by_id(self, db: Session, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        return db.get(User, user_id)

    def get_by_username(self, db: Session, username: str) -> Optional[User]:
        username = normalize_username(username)
        if not username:
            return None
        return db.execute(select(User).where(User.username == username)).scalar_one_or_none()

    def require_user(self, db: Session, user_id: str) -> User:
        user = self.get_by_id(db, user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    # ---------- Writes ----------

    def create_user(
        self,
        db: Session,
        *,
        username: str,
        password_hash: str,
        display_name: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        """
        Insert a new user. The password must already be policy-checked and
        hashed by the caller.
        """
        username = normalize_username(username)
        if not username:
            raise ValidationError("Username is required.")
        if len(username) > USERNAME_MAX_LENGTH:
            raise ValidationError(f"Username must be at most {USERNAME_MAX_LENGTH} characters.")

        if self.get_by_username(db, username) is not None:
            raise DuplicateUsername()

        user = User(
            username=username,
            password_hash=password_hash,
            display_name=(display_name or "").strip() or None,
            role=role,
            status=UserStatus.ACTIVE,
        )
        db.add(user)
        try:
            # A concurrent registration can still win the unique index.
            db.flush()
        except IntegrityError:
            raise DuplicateUsername()
        return user

    def update_profile(self, db: Session, user_id: str, **changes) -> User:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        user = self.require_user(db, user_id)
        if "display_name" in changes:
            value = changes["display_name"]
            user.display_name = (value or "").strip() or None
        if "password_hash" in changes:
            user.password_hash = changes["password_hash"]
        if "role" in changes:
            user.role = UserRole(changes["role"])
        if "status" in changes:
            user.status = UserStatus(changes["status"])
        db.flush()
        return user

    def touch_last_login(self, db: Session, user: User) -> None:
        user.last_login_at = utcnow()
        db.flush()

    def _loaded_user(self, db: Session, user_id: str) -> Optional[User]:
        return db.identity_map.get(identity_key(User, user_id))

    def set_couple_link(self, db: Session, user_id: str, couple_id: Optional[str]) -> None:
        """
        Move a user's couple link null -> value or value -> null.

        Replacing one non-null link with a different one raises
        AlreadyPaired. Setting the link it already holds is a no-op.
        """
        if couple_id is None:
            stmt = update(User).where(User.id == user_id).values(couple_id=None)
        else:
            stmt = (
                update(User)
                .where(User.id == user_id)
                .where(or_(User.couple_id.is_(None), User.couple_id == couple_id))
                .values(couple_id=couple_id)
            )

        # Bulk UPDATE bypasses the identity map; loaded rows are refreshed below.
        result = db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 1:
            loaded = self._loaded_user(db, user_id)
            if loaded is not None:
                db.refresh(loaded, ["couple_id"])
            return

        if db.get(User, user_id) is None:
            raise NotFound("User not found.")
        raise AlreadyPaired()

    def clear_couple_links(self, db: Session, couple_id: str) -> int:
        """Unlink every user pointing at ``couple_id``; returns how many."""
        result = db.execute(
            update(User)
            .where(User.couple_id == couple_id)
            .values(couple_id=None)
            .execution_options(synchronize_session=False)
        )
        for obj in list(db.identity_map.values()):
            if isinstance(obj, User) and obj.couple_id == couple_id:
                db.refresh(obj, ["couple_id"])
        return result.rowcount
