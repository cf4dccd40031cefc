"""Signed-URL upload endpoint. Exempt from identity and payment stages."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from schemas.api.upload import UploadResponse
from services.upload_service import (
    UploadSignatureError,
    derive_upload_key,
    upload_path,
    verify_deployment_signature,
)
from web.deps import get_identities, get_server_config
from web.middleware.timeout_guard import EXPIRED_STATE_KEY

router = APIRouter(prefix="/upload", tags=["Upload"])

logger = logging.getLogger(__name__)


@router.post("/{deployment_id}/{signature}", response_model=UploadResponse, summary="Receive a deployment artifact.")
async def upload_artifact(
    deployment_id: str,
    signature: str,
    request: Request,
    config=Depends(get_server_config),
    identities=Depends(get_identities),
) -> UploadResponse:
    key = derive_upload_key(identities.primary.private_scalar_bytes())
    try:
        verify_deployment_signature(key, deployment_id, signature)
    except UploadSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc

    target = upload_path(config.upload_storage_dir, deployment_id)
    await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
    received = 0
    handle = await asyncio.to_thread(target.open, "wb")
    try:
        async for chunk in request.stream():
            if chunk:
                await asyncio.to_thread(handle.write, chunk)
                received += len(chunk)
    except BaseException:
        # Cancellation from the timeout guard or an oversized body; drop the partial file.
        handle.close()
        target.unlink(missing_ok=True)
        logger.warning("Upload for deployment %s aborted after %d bytes", deployment_id, received)
        raise
    await asyncio.to_thread(handle.close)

    if getattr(request.state, EXPIRED_STATE_KEY, False):
        target.unlink(missing_ok=True)
        logger.warning("Upload for deployment %s finished after its deadline; discarded", deployment_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "upload.timeout", "message": "Upload did not complete in time."},
        )

    logger.info("Stored upload for deployment %s (%d bytes)", deployment_id, received)
    return UploadResponse(message="Upload received", deploymentId=deployment_id, bytes=received)


__all__ = ["router"]
