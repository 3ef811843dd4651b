"""
Database initialization helpers.

Models are imported here so their tables get registered on Base.metadata.
"""

import logging

from argon2 import PasswordHasher
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from duet.core.config import Settings
from duet.core.security import hash_password
from duet.models.base import Base
from duet.models import couple, user  # noqa: F401
from duet.models.user import User, UserRole
from duet.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)


def init_db(engine: Engine) -> None:
    """
    Create all tables based on SQLAlchemy models.
    """
    Base.metadata.create_all(bind=engine)


def seed_initial_data(
    db: Session,
    settings: Settings,
    store: IdentityStore,
    hasher: PasswordHasher,
) -> User | None:
    """
    Create the bootstrap admin account when ADMIN_USERNAME / ADMIN_PASSWORD
    are configured and the account does not exist yet.
    """
    if not settings.admin_username or not settings.admin_password:
        return None

    existing = store.get_by_username(db, settings.admin_username)
    if existing is not None:
        return existing

    admin = store.create_user(
        db,
        username=settings.admin_username,
        password_hash=hash_password(hasher, settings.admin_password),
        display_name="Administrator",
        role=UserRole.ADMIN,
    )
    db.commit()
    logger.info("Seeded admin account %s", admin.id)
    return admin
