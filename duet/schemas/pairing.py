# File: duet/schemas/pairing.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from duet.schemas.user import PartnerRead


class InviteRead(BaseModel):
    couple_id: str
    invite_code: str
    expires_at: Optional[datetime] = None


class RedeemRequest(BaseModel):
    invite_code: str


class RedeemResponse(BaseModel):
    couple_id: str


class DissolveRequest(BaseModel):
    couple_id: str


class CoupleRead(BaseModel):
    id: str
    is_complete: bool
    # Only exposed while the pairing is pending
    invite_code: Optional[str] = None
    members: List[PartnerRead] = []
    created_at: datetime
    completed_at: Optional[datetime] = None
