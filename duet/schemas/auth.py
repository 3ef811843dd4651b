# File: duet/schemas/auth.py

from typing import Optional

from pydantic import BaseModel

from duet.schemas.pairing import CoupleRead
from duet.schemas.user import UserRead


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserRead


class RegisterResponse(BaseModel):
    token: str
    user: UserRead
    couple: Optional[CoupleRead] = None
    # Set when an invite code was supplied but could not be redeemed;
    # the account itself was still created.
    pairing_error: Optional[str] = None
