"""Signed-in people. Account access is granted through AccountMember rows."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Stored lowercased; login codes are keyed on the same value.
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    # Account selected at the last sign-in or switch.
    last_account_id = Column(String, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
