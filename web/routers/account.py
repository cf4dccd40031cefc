"""Account registration endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.account import RegisterResponse
from services.account_service import register_account
from services.identity import VerifiedIdentity
from web.deps import get_server_config, get_verified_identity
from web.middleware.identity_binding import qualifying_email

router = APIRouter(tags=["Account"])

logger = logging.getLogger(__name__)


@router.post("/register", response_model=RegisterResponse, summary="Register the calling identity.")
def register(
    identity: VerifiedIdentity = Depends(get_verified_identity),
    config=Depends(get_server_config),
    db: Session = Depends(get_db),
) -> RegisterResponse:
    email = qualifying_email(identity, config.certificates)
    if email is None:
        logger.info("Registering identity_key=%s without a verified email", identity.identity_key)
    result = register_account(db, identity_key=identity.identity_key, email=email)
    return RegisterResponse(message="User registered", userCount=result.account_count)


__all__ = ["router"]
