# File: duet/db/session.py

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from duet.core.errors import ConcurrencyError, DuetError, StoreError

logger = logging.getLogger(__name__)

# Seconds SQLite waits on a locked database before raising OperationalError
SQLITE_BUSY_TIMEOUT = 5.0


def build_engine(database_url: str, *, echo: bool = False, busy_timeout: Optional[float] = None) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": busy_timeout if busy_timeout is not None else SQLITE_BUSY_TIMEOUT,
        }
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def _is_lock_failure(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "lock" in message


@contextmanager
def atomic(db: Session) -> Iterator[None]:
    """
    Commit the block's work, or roll all of it back.

    Domain errors pass through unchanged. Lock waits that time out become
    ConcurrencyError (retryable); any other database failure is logged and
    becomes an opaque StoreError.
    """
    try:
        yield
        db.commit()
    except DuetError:
        db.rollback()
        raise
    except OperationalError as exc:
        db.rollback()
        if _is_lock_failure(exc):
            logger.warning("Transaction gave up waiting for a database lock")
            raise ConcurrencyError() from exc
        logger.exception("Database operation failed")
        raise StoreError(str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database operation failed")
        raise StoreError(str(exc)) from exc
