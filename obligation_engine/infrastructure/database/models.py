"""SQLAlchemy ORM models for obligations and their series"""

import uuid
from sqlalchemy import Column, String, Boolean, Date, DateTime, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class ObligationRecord(Base):
    """Expense, income transaction or reminder; root, child or standalone"""

    __tablename__ = "obligation"

    id = Column(String(36), primary_key=True, default=_new_id)
    kind = Column(String(16), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    description = Column(Text, nullable=False)
    category = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    property_id = Column(String(64), nullable=True, index=True)
    unit_id = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True)
    vendor_id = Column(String(64), nullable=True)
    status = Column(String(32), nullable=True)
    lead_days = Column(Integer, nullable=False, default=0)
    anchor_date = Column(Date, nullable=False, index=True)

    # Series
    is_recurring = Column(Boolean, nullable=False, default=False, index=True)
    recurring_frequency = Column(String(16), nullable=True)
    recurring_interval = Column(Integer, nullable=False, default=1)
    recurring_end_date = Column(Date, nullable=True)
    parent_recurring_id = Column(String(36), nullable=True, index=True)

    # Tax treatment
    tax_deductible = Column(Boolean, nullable=False, default=True)
    is_amortized = Column(Boolean, nullable=False, default=False)
    amortization_years = Column(Integer, nullable=True)
    amortization_start_date = Column(Date, nullable=True)
    amortization_method = Column(String(32), nullable=False, default="straight_line")

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SeriesExclusion(Base):
    """Occurrence date removed from a series, never to be regenerated"""

    __tablename__ = "series_exclusion"
    __table_args__ = (UniqueConstraint("root_id", "excluded_on", name="uq_series_exclusion_root_date"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    root_id = Column(String(36), nullable=False, index=True)
    excluded_on = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
