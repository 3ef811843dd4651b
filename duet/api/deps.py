# File: duet/api/deps.py

from collections.abc import Generator
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from duet.core.config import Settings
from duet.services.auth_service import SessionGateway, UserIdentity
from duet.services.identity_store import IdentityStore
from duet.services.pairing_service import PairingCoordinator

bearer_scheme = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a SQLAlchemy session.

    Usage in route functions:
        db: Session = Depends(get_db)
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_identity_store(request: Request) -> IdentityStore:
    return request.app.state.identity_store


def get_gateway(request: Request) -> SessionGateway:
    return request.app.state.gateway


def get_coordinator(request: Request) -> PairingCoordinator:
    return request.app.state.coordinator


def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
) -> UserIdentity:
    """
    Resolve the caller from the auth cookie, falling back to an
    ``Authorization: Bearer`` header. Raises Unauthenticated otherwise.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    return gateway.authenticate(db, token, fresh=True)
