import threading
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from database import Base
from services.account_service import count_accounts, fetch_account, register_account, update_account_email


def test_register_is_idempotent(db_session):
    first = register_account(db_session, identity_key="02" + "a" * 64, email="a@x.io")
    second = register_account(db_session, identity_key="02" + "a" * 64, email="other@x.io")

    assert first.created is True
    assert second.created is False
    assert second.account_count == 1
    assert fetch_account(db_session, "02" + "a" * 64).email == "a@x.io"


def test_register_without_email(db_session):
    result = register_account(db_session, identity_key="02" + "b" * 64, email=None)

    assert result.created is True
    assert fetch_account(db_session, "02" + "b" * 64).email is None


def test_update_overwrites_email(db_session):
    key = "03" + "c" * 64
    register_account(db_session, identity_key=key, email="old@x.io")

    assert update_account_email(db_session, identity_key=key, email="new@x.io") is True
    assert update_account_email(db_session, identity_key=key, email="new@x.io") is False

    db_session.expire_all()
    assert fetch_account(db_session, key).email == "new@x.io"


def test_update_never_inserts(db_session):
    assert update_account_email(db_session, identity_key="03" + "d" * 64, email="a@x.io") is False
    assert count_accounts(db_session) == 0


def test_concurrent_first_contact_creates_one_row(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'accounts.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(bind=engine)

    # Writers take the lock at BEGIN and queue on the busy timeout.
    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    engine.dispose()
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    key = "02" + "e" * 64
    barrier = threading.Barrier(2)

    def _register(email: str):
        session = factory()
        try:
            barrier.wait()
            return register_account(session, identity_key=key, email=email)
        finally:
            session.close()

    try:
        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(_register, ["a@x.io", "b@x.io"]))
        with factory() as session:
            assert count_accounts(session) == 1
    finally:
        engine.dispose()

    assert sorted(result.created for result in results) == [False, True]
