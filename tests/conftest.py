"""Shared fixtures: an in-memory SQLite database wired into the stores and the API."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""

from collections.abc import Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from finance_tracker.core.db import Base, get_session  # noqa: E402
from finance_tracker.main import app  # noqa: E402
from finance_tracker.services.linkage import DebtLinkageService  # noqa: E402
from finance_tracker.services.record_store import DebtStore, TransactionStore  # noqa: E402


@pytest.fixture
def engine() -> Iterator[Engine]:
    """Provide a fresh in-memory database shared by every connection."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    """Provide a session factory bound to the test database."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def session(session_factory: sessionmaker) -> Iterator[Session]:
    """Provide a session for store-level tests."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def transactions(session: Session) -> TransactionStore:
    """Provide a TransactionStore over the test session."""
    return TransactionStore(session)


@pytest.fixture
def debts(session: Session) -> DebtStore:
    """Provide a DebtStore over the test session."""
    return DebtStore(session)


@pytest.fixture
def linkage(debts: DebtStore, transactions: TransactionStore) -> DebtLinkageService:
    """Provide a DebtLinkageService over the test stores."""
    return DebtLinkageService(debts, transactions)


@pytest.fixture
def client(session_factory: sessionmaker) -> Iterator[TestClient]:
    """Provide a TestClient whose requests use the test database."""

    def override_session() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()
