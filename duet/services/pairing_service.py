# File: duet/services/pairing_service.py

"""
Pairing coordinator: the couple lifecycle.

    Pending (creator only, live invite code)
      -> Complete (creator + partner, code inert)
      -> Dissolved (row deleted, both links cleared)

This is the only code that writes User.couple_id. Each public operation is
one atomic unit: it commits everything or rolls everything back.

redeem() is the operation that has to hold up under concurrency. Two
layers keep it single-winner:

  * a per-process KeyedLock on the invite code and the redeemer, with a
    bounded wait (ConcurrencyError when exceeded);
  * inside the transaction, a row lock on the couple (SELECT ... FOR UPDATE
    where the backend supports it) and conditional UPDATEs that only
    succeed while the couple is still pending and the redeemer unlinked.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import false, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from duet.core.config import Settings
from duet.core.errors import (
    AlreadyComplete,
    AlreadyPaired,
    DuetError,
    Forbidden,
    InvalidCode,
    NotFound,
    SelfPairing,
    StoreError,
)
from duet.db.session import atomic
from duet.models.base import as_utc, utcnow
from duet.models.couple import Couple
from duet.models.user import User
from duet.services.identity_store import IdentityStore
from duet.services.locks import KeyedLock

logger = logging.getLogger(__name__)

DEFAULT_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 5
MAX_CODE_INPUT_LENGTH = 32


class _CodeCollision(DuetError):
    """Freshly generated invite code already exists; roll back and retry."""


@dataclass
class PairingView:
    couple: Couple
    members: List[User] = field(default_factory=list)

    def partner_for(self, user_id: str) -> Optional[User]:
        for member in self.members:
            if member.id != user_id:
                return member
        return None


def normalize_invite_code(code: Optional[str]) -> str:
    """Upper-case and strip; return "" for anything that can't be a code."""
    if not isinstance(code, str):
        return ""
    code = code.strip().upper()
    if not code or len(code) > MAX_CODE_INPUT_LENGTH or not code.isalnum() or not code.isascii():
        return ""
    return code


class PairingCoordinator:
    def __init__(
        self,
        store: IdentityStore,
        *,
        invite_code_length: int = 8,
        invite_code_alphabet: str = DEFAULT_ALPHABET,
        invite_code_ttl: Optional[timedelta] = timedelta(hours=72),
        lock_timeout: float = 5.0,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if len(set(invite_code_alphabet)) < 16:
            raise ValueError("Invite code alphabet needs at least 16 distinct symbols.")
        self._store = store
        self._code_length = invite_code_length
        self._alphabet = invite_code_alphabet
        self._code_ttl = invite_code_ttl
        self._lock_timeout = lock_timeout
        self._locks = locks if locks is not None else KeyedLock()
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, store: IdentityStore) -> "PairingCoordinator":
        ttl = None
        if settings.invite_code_expire_hours:
            ttl = timedelta(hours=settings.invite_code_expire_hours)
        return cls(
            store,
            invite_code_length=settings.invite_code_length,
            invite_code_alphabet=settings.invite_code_alphabet,
            invite_code_ttl=ttl,
            lock_timeout=settings.redeem_lock_timeout_seconds,
        )

    # -----------------------------
    # Helpers
    # -----------------------------

    def generate_invite_code(self) -> str:
        return "".join(secrets.choice(self._alphabet) for _ in range(self._code_length))

    def is_code_expired(self, couple: Couple) -> bool:
        if self._code_ttl is None or couple.is_complete:
            return False
        return self._clock() >= as_utc(couple.invite_issued_at) + self._code_ttl

    def invite_expires_at(self, couple: Couple) -> Optional[datetime]:
        if self._code_ttl is None or couple.is_complete:
            return None
        return as_utc(couple.invite_issued_at) + self._code_ttl

    def _apply_lock_timeout(self, db: Session) -> None:
        if db.get_bind().dialect.name == "postgresql":
            millis = max(int(self._lock_timeout * 1000), 1)
            db.execute(text(f"SET LOCAL lock_timeout = {millis}"))

    def _insert_with_fresh_code(self, db: Session, couple: Couple) -> None:
        couple.invite_code = self.generate_invite_code()
        try:
            db.flush()
        except IntegrityError:
            raise _CodeCollision()

    # -----------------------------
    # Operations
    # -----------------------------

    def create_pairing(self, db: Session, creator_id: str) -> Couple:
        """
        Open a pending couple for ``creator_id`` and hand back its invite code.
        """
        with self._locks.hold(f"user:{creator_id}", timeout=self._lock_timeout):
            for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
                try:
                    with atomic(db):
                        creator = self._store.require_user(db, creator_id)
                        if creator.couple_id is not None:
                            raise AlreadyPaired()

                        now = self._clock()
                        couple = Couple(
                            creator_id=creator.id,
                            is_complete=False,
                            created_at=now,
                            invite_issued_at=now,
                        )
                        db.add(couple)
                        self._insert_with_fresh_code(db, couple)
                        self._store.set_couple_link(db, creator.id, couple.id)
                except _CodeCollision:
                    logger.info("Invite code collision (attempt %d), retrying", attempt)
                    continue

                logger.info("User %s opened pairing %s", creator_id, couple.id)
                return couple

        raise StoreError("Could not allocate a unique invite code.")

    def redeem(self, db: Session, invite_code: str, redeemer_id: str) -> Couple:
        """
        Join the pending couple identified by ``invite_code``.

        Checks run in this order inside one transaction: unknown/expired
        code (InvalidCode), already complete (AlreadyComplete), own code
        (SelfPairing), redeemer already linked (AlreadyPaired). Of several
        concurrent redeemers of one code exactly one succeeds.
        """
        code = normalize_invite_code(invite_code)
        if not code:
            raise InvalidCode()

        with self._locks.hold(f"invite:{code}", f"user:{redeemer_id}", timeout=self._lock_timeout):
            with atomic(db):
                self._apply_lock_timeout(db)

                couple = db.execute(
                    select(Couple).where(Couple.invite_code == code).with_for_update()
                ).scalar_one_or_none()
                if couple is None:
                    raise InvalidCode()
                if couple.is_complete:
                    raise AlreadyComplete()
                if self.is_code_expired(couple):
                    raise InvalidCode("Invite code has expired, ask your partner for a new one.")
                if couple.creator_id == redeemer_id:
                    raise SelfPairing()

                redeemer = self._store.require_user(db, redeemer_id)
                if redeemer.couple_id is not None:
                    raise AlreadyPaired()

                result = db.execute(
                    update(Couple)
                    .where(Couple.id == couple.id)
                    .where(Couple.invite_code == code)
                    .where(Couple.is_complete == false())
                    .where(Couple.partner_id.is_(None))
                    .values(partner_id=redeemer_id, is_complete=True, completed_at=self._clock())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    # Lost a race the row lock could not prevent (e.g. SQLite).
                    still_there = db.execute(
                        select(Couple.is_complete).where(Couple.id == couple.id)
                    ).scalar_one_or_none()
                    if still_there:
                        raise AlreadyComplete()
                    raise InvalidCode()

                db.refresh(couple)
                self._store.set_couple_link(db, redeemer_id, couple.id)

        logger.info("User %s redeemed invite for pairing %s", redeemer_id, couple.id)
        return couple

    def dissolve(self, db: Session, couple_id: str, *, actor_id: str, actor_is_admin: bool = False) -> bool:
        """
        Delete a couple and unlink its members.

        Only members or admins may do this. An unknown id is a no-op and
        returns False, so retries are harmless.
        """
        with atomic(db):
            self._apply_lock_timeout(db)
            couple = db.execute(
                select(Couple).where(Couple.id == couple_id).with_for_update()
            ).scalar_one_or_none()
            if couple is None:
                return False
            if not (actor_is_admin or couple.has_member(actor_id)):
                raise Forbidden("Only a member of this couple or an admin can dissolve it.")

            unlinked = self._store.clear_couple_links(db, couple.id)
            db.delete(couple)

        logger.info("Pairing %s dissolved by %s (%d member links cleared)", couple_id, actor_id, unlinked)
        return True

    def regenerate_invite_code(self, db: Session, creator_id: str) -> Couple:
        """Issue a new code for the creator's pending couple; the old one stops working."""
        with self._locks.hold(f"user:{creator_id}", timeout=self._lock_timeout):
            for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
                try:
                    with atomic(db):
                        self._apply_lock_timeout(db)
                        user = self._store.require_user(db, creator_id)
                        couple = None
                        if user.couple_id is not None:
                            couple = db.execute(
                                select(Couple).where(Couple.id == user.couple_id).with_for_update()
                            ).scalar_one_or_none()
                        if couple is None:
                            raise NotFound("You have no pending pairing.")
                        if couple.is_complete:
                            raise AlreadyComplete("Your pairing is already complete.")

                        couple.invite_issued_at = self._clock()
                        self._insert_with_fresh_code(db, couple)
                except _CodeCollision:
                    logger.info("Invite code collision (attempt %d), retrying", attempt)
                    continue

                logger.info("User %s regenerated invite for pairing %s", creator_id, couple.id)
                return couple

        raise StoreError("Could not allocate a unique invite code.")

    def get_pairing(self, db: Session, user_id: str) -> Optional[PairingView]:
        user = self._store.require_user(db, user_id)
        if user.couple_id is None:
            return None
        couple = db.get(Couple, user.couple_id)
        if couple is None:
            return None
        members = [m for m in (self._store.get_by_id(db, uid) for uid in couple.members) if m is not None]
        return PairingView(couple=couple, members=members)
