"""Account rows keyed by the caller's identity key."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class Account(Base):
    """One row per identity key; email comes from a verified certificate claim."""

    __tablename__ = "users"
    __table_args__ = {"extend_existing": True}

    identity_key = Column(String(66), primary_key=True)
    email = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
