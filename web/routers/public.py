"""Unauthenticated endpoints: public info and cache eviction."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.public import EvictionResponse, PublicInfoResponse
from services.account_service import count_accounts
from services.public_info import PublicInfoCache
from web.deps import get_identities, get_public_info_cache, get_server_config

router = APIRouter(tags=["Public"])

logger = logging.getLogger(__name__)

_PUBLIC_INFO_KEY = "public-info"


@router.get("/public", response_model=PublicInfoResponse, summary="Server identity and certificate requirements.")
def read_public_info(
    config=Depends(get_server_config),
    identities=Depends(get_identities),
    cache: PublicInfoCache = Depends(get_public_info_cache),
    db: Session = Depends(get_db),
) -> PublicInfoResponse:
    def _load() -> PublicInfoResponse:
        return PublicInfoResponse(
            identityKeys=identities.public_keys(),
            requestedCertificates=config.certificates.to_payload(),
            userCount=count_accounts(db),
        )

    return cache.get_or_load(_PUBLIC_INFO_KEY, _load)


@router.post("/evict-globally", response_model=EvictionResponse, summary="Drop every cached public payload.")
def evict_globally(cache: PublicInfoCache = Depends(get_public_info_cache)) -> EvictionResponse:
    evicted = cache.evict()
    logger.info("Evicted %d cached public entries", evicted)
    return EvictionResponse(message="Evicted", evicted=evicted)


__all__ = ["router"]
