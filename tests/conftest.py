import os
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional

import pytest

os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import database as database_module
import models  # noqa: F401
from core.config import EMAIL_CERTIFICATE_TYPE, CertificateRequirements, ServerConfig
from database import Base
from services.identity import (
    NetworkIdentities,
    SigningIdentity,
    build_network_identities,
    issue_certificate,
    sign_request,
)
from services.payments import PaymentProof, PaymentProviderError, PaymentSettlement

MAINNET_KEY = "6dcc124be5f382be631d49ba12f61adbce33a5ac14f6ddee12de25272f943f8b"
TESTNET_KEY = "1f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a7988"
BASE_URL = "http://testserver"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    test_engine = create_engine(
        os.environ["TEST_DATABASE_URL"],
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)

    original_session_local = database_module.SessionLocal
    original_engine = database_module.engine
    database_module.SessionLocal = sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)
    database_module.engine = test_engine
    try:
        yield test_engine
    finally:
        database_module.SessionLocal = original_session_local
        database_module.engine = original_engine
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture(autouse=True)
def _clean_tables(engine: Engine) -> Iterator[None]:
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    session = database_module.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def certifier() -> SigningIdentity:
    return SigningIdentity.generate()


@pytest.fixture()
def caller() -> SigningIdentity:
    return SigningIdentity.generate()


@pytest.fixture()
def server_config(certifier: SigningIdentity, tmp_path) -> ServerConfig:
    return ServerConfig(
        mainnet_private_key=MAINNET_KEY,
        testnet_private_key=TESTNET_KEY,
        mainnet_payment_api_key="main_api_key",
        testnet_payment_api_key="test_api_key",
        base_url=BASE_URL,
        upload_storage_dir=tmp_path / "uploads",
        certificates=CertificateRequirements(certifiers=(certifier.identity_key,)),
    )


@pytest.fixture()
def identities(server_config: ServerConfig) -> NetworkIdentities:
    return build_network_identities(server_config)


class FakePaymentProvider:
    """Records settlement calls; settles the submitted amount unless told otherwise."""

    network = "mainnet"

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.status = "settled"
        self.settled_amount: Optional[int] = None
        self.error: Optional[Exception] = None

    async def settle(self, proof: PaymentProof, *, required_amount: int, payer: str) -> PaymentSettlement:
        self.calls.append(
            {"reference": proof.reference, "amount": proof.amount, "required": required_amount, "payer": payer}
        )
        if self.error is not None:
            raise self.error
        amount = proof.amount if self.settled_amount is None else self.settled_amount
        return PaymentSettlement(reference=proof.reference, amount=amount, status=self.status, network=self.network)


@pytest.fixture()
def payment_provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture()
def app(
    server_config: ServerConfig,
    identities: NetworkIdentities,
    payment_provider: FakePaymentProvider,
    engine: Engine,
) -> FastAPI:
    from web.main import create_app

    return create_app(server_config, identities=identities, payment_provider=payment_provider)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        test_client.close()


@pytest.fixture()
def email_certificate(certifier: SigningIdentity) -> Callable[..., Dict[str, Any]]:
    def _issue(subject: SigningIdentity, email: str, *, issuer: Optional[SigningIdentity] = None) -> Dict[str, Any]:
        return issue_certificate(
            issuer or certifier,
            subject=subject.identity_key,
            certificate_type=EMAIL_CERTIFICATE_TYPE,
            claims={"email": email},
            serial_number=f"serial-{email}",
        )

    return _issue


@pytest.fixture()
def signed_post(client: TestClient, identities: NetworkIdentities) -> Callable[..., Any]:
    """POST a JSON body with a valid identity proof for ``caller``."""

    def _post(
        path: str,
        caller: SigningIdentity,
        body: bytes = b"",
        *,
        certificates: Optional[list] = None,
        network: str = "mainnet",
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        headers = sign_request(
            caller,
            base_url=BASE_URL,
            server_identity_key=identities[network].identity_key,
            method="POST",
            path=path,
            body=body,
            network=network,
            certificates=certificates,
        )
        headers["content-type"] = "application/json"
        headers.update(extra_headers or {})
        return client.post(path, content=body, headers=headers)

    return _post


__all__ = ["FakePaymentProvider", "PaymentProviderError"]
