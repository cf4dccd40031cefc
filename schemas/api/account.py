"""Account registration schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RegisterResponse(BaseModel):
    message: str
    userCount: int = Field(..., ge=0, description="Total number of registered accounts.")
