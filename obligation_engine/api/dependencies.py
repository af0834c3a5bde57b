"""Dependency injection for FastAPI endpoints"""

from datetime import date

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from obligation_engine.infrastructure.database.repositories import ObligationRepository
from obligation_engine.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_store(db: Session = Depends(get_db)) -> ObligationRepository:
    """Provide the obligation store bound to the request session"""
    return ObligationRepository(db)


def get_today() -> date:
    """Reference date for generation and tax-year defaults"""
    return date.today()
