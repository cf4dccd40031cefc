"""Project payment ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.project import ProjectPayment

logger = logging.getLogger(__name__)


class DuplicatePaymentReference(ValueError):
    """Raised when a settled payment reference was already credited."""


@dataclass(frozen=True)
class ProjectBalance:
    project_id: str
    balance: int
    payments: int


def record_project_payment(
    db: Session,
    *,
    project_id: str,
    identity_key: str,
    amount: int,
    reference: str,
    network: str,
) -> ProjectPayment:
    payment = ProjectPayment(
        project_id=project_id,
        identity_key=identity_key,
        amount=amount,
        reference=reference,
        network=network,
    )
    db.add(payment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicatePaymentReference(reference) from exc
    logger.info("Credited project=%s amount=%s reference=%s", project_id, amount, reference)
    return payment


def project_balance(db: Session, *, project_id: str, identity_key: str) -> ProjectBalance:
    row = db.execute(
        select(func.coalesce(func.sum(ProjectPayment.amount), 0), func.count(ProjectPayment.id)).where(
            ProjectPayment.project_id == project_id,
            ProjectPayment.identity_key == identity_key,
        )
    ).one()
    return ProjectBalance(project_id=project_id, balance=int(row[0]), payments=int(row[1]))


__all__ = ["DuplicatePaymentReference", "ProjectBalance", "project_balance", "record_project_payment"]
