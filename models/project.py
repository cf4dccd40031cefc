from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class ProjectPayment(Base):
    """Settled payment credited to a project."""

    __tablename__ = "project_payments"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(128), nullable=False, index=True)
    identity_key = Column(String(66), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    reference = Column(String(128), nullable=False, unique=True)
    network = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
