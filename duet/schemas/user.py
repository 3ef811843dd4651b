# File: duet/schemas/user.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from duet.models.user import UserRole, UserStatus


class UserBase(BaseModel):
    username: str
    display_name: Optional[str] = None


class UserCreate(UserBase):
    username: str = Field(min_length=1, max_length=64)
    password: str
    display_name: Optional[str] = Field(default=None, max_length=120)
    # Optional: join a partner's couple right after signing up
    invite_code: Optional[str] = None


class UserRead(UserBase):
    id: str
    role: UserRole
    status: UserStatus
    couple_id: Optional[str] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True  # Pydantic v2: replaces orm_mode


class PartnerRead(BaseModel):
    id: str
    username: str
    display_name: Optional[str] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    user: UserRead
    partner: Optional[PartnerRead] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=120)
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class PasswordCheckRequest(BaseModel):
    password: str = ""


class PasswordCheckResponse(BaseModel):
    valid: bool
    violations: List[str] = []
    messages: List[str] = []
