"""Shared fixtures: in-memory database, session factory helpers, API client and tokens."""

from datetime import datetime
from typing import Any, Callable, Dict, Generator, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from studyroom.api.dependencies.database import get_db
from studyroom.auth import create_access_token
from studyroom.core.enums import AppRole, BillingStatus, SessionStatus
from studyroom.database import Base
from studyroom.main import app
import studyroom.models  # noqa: F401
from studyroom.models.session import TutoringSession
from studyroom.principal import AuthorizationContext
from studyroom.utils.time_intervals import minutes_between

from .helpers import ADMIN_ID, TUTOR_ID


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def tutor() -> AuthorizationContext:
    return AuthorizationContext(user_id=TUTOR_ID, role=AppRole.TUTOR, email="alice@example.com")


@pytest.fixture
def admin() -> AuthorizationContext:
    return AuthorizationContext(user_id=ADMIN_ID, role=AppRole.ADMIN, email="carol@example.com")


@pytest.fixture
def make_session(db: Session) -> Callable[..., TutoringSession]:
    """Insert and commit a session row directly, bypassing validation."""

    def _make(
        start: datetime,
        end: datetime,
        *,
        tutor_id: str = TUTOR_ID,
        status: SessionStatus = SessionStatus.SCHEDULED,
        billing_status: BillingStatus = BillingStatus.NOT_BILLED,
        series_key: Optional[str] = None,
        xero_invoice_id: Optional[str] = None,
    ) -> TutoringSession:
        session = TutoringSession(
            tutor_id=tutor_id,
            client_id="client-1",
            student_id="student-1",
            start_at=start,
            end_at=end,
            duration_minutes=minutes_between(start, end),
            status=status.value,
            billing_status=billing_status.value,
            series_key=series_key,
            xero_invoice_id=xero_invoice_id,
        )
        db.add(session)
        db.commit()
        return session

    return _make


@pytest.fixture
def client(session_factory) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(sub: str = TUTOR_ID, **claims: Any) -> Dict[str, str]:
        payload: Dict[str, Any] = {"sub": sub, "role": "tutor"}
        payload.update(claims)
        return {"Authorization": f"Bearer {create_access_token(payload)}"}

    return _headers
