"""Pytest fixtures for testing"""

import uuid
import pytest
from datetime import date
from decimal import Decimal
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from obligation_engine.api.dependencies import get_today
from obligation_engine.api.main import create_app
from obligation_engine.domain.models import Obligation, ObligationKind, ObligationTemplate
from obligation_engine.infrastructure.database.models import Base
from obligation_engine.infrastructure.database.repositories import ObligationRepository
from obligation_engine.infrastructure.database.session import get_db


# Test database: one in-memory SQLite connection shared across threads
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TODAY = date(2025, 6, 15)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db: Session) -> ObligationRepository:
    return ObligationRepository(db)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database and a fixed today"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    return TestClient(app)


@pytest.fixture
def make_obligation() -> Callable[..., Obligation]:
    """Factory for domain obligations with sensible defaults"""

    def _make(
        anchor_date: date = date(2025, 1, 15),
        kind: ObligationKind = ObligationKind.EXPENSE,
        amount: str = "100.00",
        description: str = "Landscaping",
        is_recurring: bool = False,
        recurring_frequency: Optional[str] = None,
        recurring_interval: int = 1,
        recurring_end_date: Optional[date] = None,
        parent_recurring_id: Optional[str] = None,
        **template_fields,
    ) -> Obligation:
        return Obligation(
            id=str(uuid.uuid4()),
            anchor_date=anchor_date,
            template=ObligationTemplate(
                kind=kind,
                amount=Decimal(amount),
                description=description,
                **template_fields,
            ),
            is_recurring=is_recurring,
            recurring_frequency=recurring_frequency,
            recurring_interval=recurring_interval,
            recurring_end_date=recurring_end_date,
            parent_recurring_id=parent_recurring_id,
        )

    return _make


@pytest.fixture
def monthly_root(make_obligation) -> Obligation:
    """Monthly $1,500 rent root anchored on 2025-01-15"""
    return make_obligation(
        anchor_date=date(2025, 1, 15),
        kind=ObligationKind.INCOME,
        amount="1500.00",
        description="Unit 2 Rent",
        category="Rental Income",
        is_recurring=True,
        recurring_frequency="months",
    )
