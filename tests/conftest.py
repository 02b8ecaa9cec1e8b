"""
Pytest fixtures：每個測試一個全新的 in-memory SQLite 資料庫
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import models  # noqa: F401
from main import app
from services.ledger import DatabaseLedger
from core.session_manager import SessionManager


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def open_account(db):
    """開一個有餘額的帳戶並 commit"""
    def _open(owner, balance=0):
        account = DatabaseLedger(db).open_account(owner, balance)
        db.commit()
        return account
    return _open


@pytest.fixture()
def balance_of(db):
    def _balance(account_id):
        db.expire_all()
        return DatabaseLedger(db).balance_of(account_id)
    return _balance


@pytest.fixture()
def lobby(db):
    """entry_fee=100, max_players=2 的 Session"""
    return SessionManager.initialize_session(db, "host", 100, 2)


@pytest.fixture()
def full_lobby(db, lobby, open_account):
    """兩位玩家（alice, bob）都已加入的 Session"""
    alice = open_account("alice", 500)
    bob = open_account("bob", 500)
    SessionManager.join(db, lobby.id, "alice", alice.id)
    SessionManager.join(db, lobby.id, "bob", bob.id)
    return lobby, alice, bob
