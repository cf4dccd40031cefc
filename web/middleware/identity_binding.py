"""Best-effort association of a verified email certificate with the caller's account."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

import database
from core.config import EMAIL_CERTIFICATE_TYPE, EMAIL_FIELD, CertificateRequirements
from core.logging import get_logger
from core.request_context import current_request_context
from services.account_service import update_account_email
from services.identity import VerifiedIdentity

logger = get_logger(__name__)


def qualifying_email(
    identity: VerifiedIdentity,
    requirements: CertificateRequirements,
    *,
    certificate_type: str = EMAIL_CERTIFICATE_TYPE,
) -> Optional[str]:
    """Email claim of the single trusted email certificate, or None."""
    matches = [
        cert
        for certifier in dict.fromkeys(requirements.certifiers)
        for cert in identity.certificates_matching(certificate_type, certifier)
    ]
    if len(matches) != 1:
        return None
    email = matches[0].decrypted_fields.get(EMAIL_FIELD)
    if not isinstance(email, str) or not email.strip():
        return None
    return email.strip()


def bind_identity_email(session_factory: Callable[[], Session], identity_key: str, email: str) -> bool:
    db = session_factory()
    try:
        return update_account_email(db, identity_key=identity_key, email=email)
    finally:
        db.close()


def build_identity_binding_middleware(
    requirements: CertificateRequirements,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Callable:
    factory = session_factory or database.open_session

    async def identity_binding_middleware(request: Request, call_next):
        identity = current_request_context().identity
        if identity is not None:
            try:
                email = qualifying_email(identity, requirements)
                if email is not None:
                    changed = await asyncio.to_thread(bind_identity_email, factory, identity.identity_key, email)
                    if changed:
                        logger.info("Updated account email for identity_key=%s", identity.identity_key)
            except Exception:
                logger.exception("Failed to bind email for identity_key=%s", identity.identity_key)
        return await call_next(request)

    return identity_binding_middleware


__all__ = ["bind_identity_email", "build_identity_binding_middleware", "qualifying_email"]
