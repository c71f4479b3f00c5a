"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, rebuilt for every test
- Users/principals with or without a company
- FastAPI TestClient sharing the test session, with a local blob store
- An outbox capturing every email the app tries to send
"""
import os
import tempfile
from typing import Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["LOCAL_STORAGE_DIR"] = tempfile.mkdtemp(prefix="albaran-test-")
os.environ["STORAGE_PROVIDER"] = "local"
os.environ["SLACK_WEBHOOK"] = ""
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from albaran_api.auth.security import create_access_token, get_password_hash
from albaran_api.db import Base, enable_sqlite_savepoints, get_db
from albaran_api.main import app
from albaran_api.models.models import Company, User
from albaran_api.routes.files import get_blob_store
from albaran_api.services import mailer
from albaran_api.services.ownership import Principal
from albaran_api.storage.local_provider import LocalBlobStore


PASSWORD = "secret-password"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
enable_sqlite_savepoints(engine)
TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


# =============================================================================
# Database
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    Base.metadata.create_all(bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(base_dir=str(tmp_path), public_base_url="http://testserver")


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def _capture(to, subject, text, html=None):
        sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return True

    monkeypatch.setattr(mailer, "send_email", _capture)
    return sent


# =============================================================================
# Users and principals
# =============================================================================

def make_user(db: Session, email: str, company: Company = None, company_role: str = "owner", validated: bool = True) -> User:
    user = User(
        first_name=email.split("@")[0].title(),
        last_name="Tester",
        email=email,
        password_hash=get_password_hash(PASSWORD),
        validated=validated,
        company_id=company.id if company else None,
        company_role=company_role if company else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_company(db: Session, name: str = "Obras Norte SL") -> Company:
    company = Company(name=name, cif="B12345678", address={"street": "Gran Vía", "number": 1, "postal": 28013, "city": "Madrid"})
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def company(db: Session) -> Company:
    return make_company(db)


@pytest.fixture
def user(db: Session) -> User:
    return make_user(db, "solo@example.com")


@pytest.fixture
def principal(user: User) -> Principal:
    return Principal.for_user(user)


@pytest.fixture
def member_a(db: Session, company: Company) -> User:
    return make_user(db, "ana@example.com", company=company)


@pytest.fixture
def member_b(db: Session, company: Company) -> User:
    return make_user(db, "bruno@example.com", company=company, company_role="user")


@pytest.fixture
def outsider(db: Session) -> User:
    return make_user(db, "otro@example.com")


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client(db: Session, store: LocalBlobStore) -> Generator[TestClient, None, None]:
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_blob_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
