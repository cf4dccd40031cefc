"""Project-scoped authenticated endpoints."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.request_context import RequestContext
from database import get_db
from schemas.api.project import (
    DeploymentUploadResponse,
    ProjectPaymentRequest,
    ProjectPaymentResponse,
    ProjectStatusResponse,
)
from services.identity import VerifiedIdentity
from services.project_service import DuplicatePaymentReference, project_balance, record_project_payment
from services.upload_service import build_upload_url, derive_upload_key
from web.deps import get_identities, get_request_context, get_server_config, get_verified_identity

router = APIRouter(prefix="/project", tags=["Project"])

logger = logging.getLogger(__name__)


@router.post("/{project_id}/pay", response_model=ProjectPaymentResponse, summary="Credit a settled payment.")
def pay_project(
    project_id: str,
    payload: ProjectPaymentRequest,
    identity: VerifiedIdentity = Depends(get_verified_identity),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> ProjectPaymentResponse:
    reference = None
    if payload.amount > 0:
        settlement = context.payment
        if settlement is None or context.price != payload.amount:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail={"code": "payment.required", "message": "Payment is required for this request."},
            )
        try:
            record_project_payment(
                db,
                project_id=project_id,
                identity_key=identity.identity_key,
                amount=payload.amount,
                reference=settlement.reference,
                network=settlement.network,
            )
        except DuplicatePaymentReference:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "payment.reference_used", "message": "This payment was already credited."},
            ) from None
        reference = settlement.reference
    balance = project_balance(db, project_id=project_id, identity_key=identity.identity_key)
    return ProjectPaymentResponse(
        message="Payment applied",
        projectId=project_id,
        amount=payload.amount,
        reference=reference,
        balance=balance.balance,
    )


@router.post(
    "/{project_id}/status",
    response_model=ProjectStatusResponse,
    summary="Project balance for the caller.",
)
def read_project_status(
    project_id: str,
    identity: VerifiedIdentity = Depends(get_verified_identity),
    db: Session = Depends(get_db),
) -> ProjectStatusResponse:
    balance = project_balance(db, project_id=project_id, identity_key=identity.identity_key)
    return ProjectStatusResponse(projectId=project_id, balance=balance.balance, payments=balance.payments)


@router.post(
    "/{project_id}/deploy",
    response_model=DeploymentUploadResponse,
    summary="Issue a signed upload URL for a new deployment.",
)
def create_deployment(
    project_id: str,
    identity: VerifiedIdentity = Depends(get_verified_identity),
    config=Depends(get_server_config),
    identities=Depends(get_identities),
) -> DeploymentUploadResponse:
    deployment_id = uuid.uuid4().hex
    key = derive_upload_key(identities.primary.private_scalar_bytes())
    logger.info(
        "Issued upload URL project=%s deployment=%s identity_key=%s",
        project_id,
        deployment_id,
        identity.identity_key,
    )
    return DeploymentUploadResponse(
        deploymentId=deployment_id,
        uploadURL=build_upload_url(config.base_url, key, deployment_id),
    )


__all__ = ["router"]
