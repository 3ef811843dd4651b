# File: duet/api/v1/routes_pairing.py

"""
Couple pairing routes. Every route requires an authenticated caller.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from duet.api.deps import get_coordinator, get_current_identity, get_db
from duet.schemas.pairing import (
    CoupleRead,
    DissolveRequest,
    InviteRead,
    RedeemRequest,
    RedeemResponse,
)
from duet.schemas.user import PartnerRead
from duet.services.auth_service import UserIdentity
from duet.services.pairing_service import PairingCoordinator, PairingView

router = APIRouter()


def build_couple_read(view: PairingView) -> CoupleRead:
    couple = view.couple
    return CoupleRead(
        id=couple.id,
        is_complete=couple.is_complete,
        invite_code=None if couple.is_complete else couple.invite_code,
        members=[PartnerRead.model_validate(m) for m in view.members],
        created_at=couple.created_at,
        completed_at=couple.completed_at,
    )


@router.get("", response_model=Optional[CoupleRead], summary="Current pairing of the caller")
def get_pairing(
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    coordinator: PairingCoordinator = Depends(get_coordinator),
):
    view = coordinator.get_pairing(db, identity.user_id)
    if view is None:
        return None
    return build_couple_read(view)


@router.post(
    "/create",
    response_model=InviteRead,
    status_code=status.HTTP_201_CREATED,
    summary="Open a pairing and get an invite code",
)
def create_pairing(
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    coordinator: PairingCoordinator = Depends(get_coordinator),
):
    couple = coordinator.create_pairing(db, identity.user_id)
    return InviteRead(
        couple_id=couple.id,
        invite_code=couple.invite_code,
        expires_at=coordinator.invite_expires_at(couple),
    )


@router.post("/redeem", response_model=RedeemResponse, summary="Join a partner with their invite code")
def redeem_invite(
    payload: RedeemRequest,
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    coordinator: PairingCoordinator = Depends(get_coordinator),
):
    couple = coordinator.redeem(db, payload.invite_code, identity.user_id)
    return RedeemResponse(couple_id=couple.id)


@router.post("/regenerate", response_model=InviteRead, summary="Replace the invite code of a pending pairing")
def regenerate_invite(
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    coordinator: PairingCoordinator = Depends(get_coordinator),
):
    couple = coordinator.regenerate_invite_code(db, identity.user_id)
    return InviteRead(
        couple_id=couple.id,
        invite_code=couple.invite_code,
        expires_at=coordinator.invite_expires_at(couple),
    )


@router.post("/dissolve", summary="Dissolve a pairing (members or admins)")
def dissolve_pairing(
    payload: DissolveRequest,
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    coordinator: PairingCoordinator = Depends(get_coordinator),
):
    coordinator.dissolve(
        db,
        payload.couple_id,
        actor_id=identity.user_id,
        actor_is_admin=identity.is_admin,
    )
    return {}
