# File: duet/models/couple.py

"""
Couple model.

Members are creator_id plus partner_id (when set), so a couple can never
hold more than two users. The check constraints pin
``is_complete == (partner_id IS NOT NULL)`` and forbid self-pairing at the
database level as well.

The invite code stays on the row after completion. It is inert from then on
(is_complete is True), but still recognised so a late redeemer gets
AlreadyComplete instead of InvalidCode.
"""

from datetime import datetime
from typing import List

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from duet.models.base import Base, new_id, utcnow


class Couple(Base):
    __tablename__ = "couples"
    __table_args__ = (
        CheckConstraint(
            "partner_id IS NULL OR partner_id <> creator_id",
            name="ck_couples_distinct_members",
        ),
        CheckConstraint(
            "(is_complete AND partner_id IS NOT NULL) OR (NOT is_complete AND partner_id IS NULL)",
            name="ck_couples_complete_iff_two_members",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    invite_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)

    creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    partner_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)

    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    # Start of the invite code's validity window; reset when the code is regenerated
    invite_issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def members(self) -> List[str]:
        return [uid for uid in (self.creator_id, self.partner_id) if uid is not None]

    def has_member(self, user_id: str) -> bool:
        return user_id in self.members
