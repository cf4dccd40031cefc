"""Pydantic schemas for public/unauthenticated endpoints."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class RequestedCertificates(BaseModel):
    types: Dict[str, List[str]]
    certifiers: List[str]


class PublicInfoResponse(BaseModel):
    identityKeys: Dict[str, str] = Field(..., description="Server identity key per network.")
    requestedCertificates: RequestedCertificates
    userCount: int


class EvictionResponse(BaseModel):
    message: str
    evicted: int
