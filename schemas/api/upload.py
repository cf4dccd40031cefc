from __future__ import annotations

from pydantic import BaseModel


class UploadResponse(BaseModel):
    message: str
    deploymentId: str
    bytes: int
