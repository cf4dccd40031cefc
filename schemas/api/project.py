"""Project-scoped API schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProjectPaymentRequest(BaseModel):
    amount: int = Field(..., ge=0, description="Amount to credit, in the smallest currency unit.")


class ProjectPaymentResponse(BaseModel):
    message: str
    projectId: str
    amount: int
    reference: Optional[str] = None
    balance: int


class ProjectStatusResponse(BaseModel):
    projectId: str
    balance: int
    payments: int


class DeploymentUploadResponse(BaseModel):
    deploymentId: str
    uploadURL: str
