"""Account data access helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.account import Account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountRecord:
    identity_key: str
    email: Optional[str]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class RegistrationResult:
    created: bool
    account_count: int


def _to_record(account: Account) -> AccountRecord:
    return AccountRecord(identity_key=account.identity_key, email=account.email, created_at=account.created_at)


def fetch_account(db: Session, identity_key: str) -> Optional[AccountRecord]:
    """Load an account row by identity key."""
    account = db.get(Account, identity_key)
    if account is None:
        return None
    return _to_record(account)


def count_accounts(db: Session) -> int:
    return int(db.execute(select(func.count()).select_from(Account)).scalar_one())


def _insert_if_absent(db: Session, identity_key: str, email: Optional[str]) -> bool:
    bind = db.get_bind()
    dialect = bind.dialect.name if bind is not None else ""
    values = {"identity_key": identity_key, "email": email}
    if dialect in {"postgresql", "sqlite"}:
        factory = pg_insert if dialect == "postgresql" else sqlite_insert
        statement = factory(Account).values(**values).on_conflict_do_nothing(index_elements=[Account.identity_key])
        result = db.execute(statement)
        return bool(result.rowcount)

    # Other dialects: rely on the primary key and treat a conflict as "already present".
    savepoint = db.begin_nested()
    try:
        db.add(Account(**values))
        db.flush()
    except IntegrityError:
        savepoint.rollback()
        return False
    savepoint.commit()
    return True


def register_account(db: Session, *, identity_key: str, email: Optional[str]) -> RegistrationResult:
    """Create the account for ``identity_key`` unless one already exists.

    The insert is a single conflict-ignoring statement, so two concurrent
    first-contact requests for the same key produce at most one row.
    """
    created = _insert_if_absent(db, identity_key, email)
    db.commit()
    if created:
        logger.info("Account registered identity_key=%s", identity_key)
    else:
        logger.info("Account already registered identity_key=%s", identity_key)
    return RegistrationResult(created=created, account_count=count_accounts(db))


def update_account_email(db: Session, *, identity_key: str, email: str) -> bool:
    """Overwrite the email of an existing account. Never inserts.

    Returns True when a row was changed.
    """
    result = db.execute(
        update(Account)
        .where(Account.identity_key == identity_key)
        .where((Account.email.is_(None)) | (Account.email != email))
        .values(email=email)
    )
    db.commit()
    return bool(result.rowcount)


__all__ = [
    "AccountRecord",
    "RegistrationResult",
    "count_accounts",
    "fetch_account",
    "register_account",
    "update_account_email",
]
