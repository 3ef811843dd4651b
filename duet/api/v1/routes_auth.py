# File: duet/api/v1/routes_auth.py

"""
Auth API routes.

The session token travels in an HTTP-only, SameSite=strict cookie
(``secure`` outside development). It is also returned in the body for
non-browser clients, which send it back as ``Authorization: Bearer``.
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from duet.api.deps import (
    get_coordinator,
    get_current_identity,
    get_db,
    get_gateway,
    get_identity_store,
    get_settings,
)
from duet.api.v1.routes_pairing import build_couple_read
from duet.core.config import Settings
from duet.core.errors import DuetError
from duet.schemas.auth import LoginRequest, LoginResponse, RegisterResponse
from duet.schemas.user import (
    MeResponse,
    PartnerRead,
    PasswordCheckRequest,
    PasswordCheckResponse,
    ProfileUpdate,
    UserCreate,
    UserRead,
)
from duet.services.auth_service import SessionGateway, UserIdentity
from duet.services.identity_store import IdentityStore
from duet.services.pairing_service import PairingCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- Cookie helpers ----------

def set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value="",
        max_age=0,
        expires=0,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


# ---------- Endpoints ----------

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account (optionally joining a partner)",
)
def register(
    payload: UserCreate,
    response: Response,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
    coordinator: PairingCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings),
):
    user = gateway.register(
        db,
        username=payload.username,
        password=payload.password,
        display_name=payload.display_name,
    )

    couple_read = None
    pairing_error = None
    if payload.invite_code:
        # The account is committed at this point; a failed redeem must not fail the signup.
        try:
            coordinator.redeem(db, payload.invite_code, user.id)
        except DuetError as exc:
            logger.info("Invite redeem during signup of %s failed: %s", user.id, exc.code)
            pairing_error = exc.message
        else:
            view = coordinator.get_pairing(db, user.id)
            couple_read = build_couple_read(view) if view else None

    token = gateway.issue_token(user)
    set_auth_cookie(response, token, settings)
    return RegisterResponse(
        token=token,
        user=UserRead.model_validate(user),
        couple=couple_read,
        pairing_error=pairing_error,
    )


@router.post("/login", response_model=LoginResponse, summary="User login")
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    token, user = gateway.login(db, username=payload.username, password=payload.password)
    set_auth_cookie(response, token, settings)
    return LoginResponse(token=token, user=UserRead.model_validate(user))


@router.post("/logout", summary="Drop the session cookie")
def logout(response: Response, settings: Settings = Depends(get_settings)):
    """
    Tokens are stateless, so there is nothing to revoke server-side; the
    cookie is overwritten with an immediately expiring value.
    """
    clear_auth_cookie(response, settings)
    return {}


@router.post(
    "/validate-password",
    response_model=PasswordCheckResponse,
    summary="Check a password against the policy",
)
def validate_password(
    payload: PasswordCheckRequest,
    gateway: SessionGateway = Depends(get_gateway),
):
    result = gateway.check_password(payload.password)
    return PasswordCheckResponse(valid=result.accepted, violations=result.codes, messages=result.messages)


@router.get("/me", response_model=MeResponse, summary="Current user and partner")
def read_me(
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    store: IdentityStore = Depends(get_identity_store),
    coordinator: PairingCoordinator = Depends(get_coordinator),
):
    user = store.require_user(db, identity.user_id)
    partner = None
    view = coordinator.get_pairing(db, user.id)
    if view is not None and view.couple.is_complete:
        other = view.partner_for(user.id)
        partner = PartnerRead.model_validate(other) if other else None
    return MeResponse(user=UserRead.model_validate(user), partner=partner)


@router.patch("/profile", response_model=UserRead, summary="Update display name and/or password")
def update_profile(
    payload: ProfileUpdate,
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
    store: IdentityStore = Depends(get_identity_store),
):
    if payload.new_password:
        gateway.change_password(
            db,
            identity.user_id,
            current_password=payload.current_password,
            new_password=payload.new_password,
        )
    if "display_name" in payload.model_fields_set:
        gateway.update_profile(db, identity.user_id, display_name=payload.display_name)
    return UserRead.model_validate(store.require_user(db, identity.user_id))
