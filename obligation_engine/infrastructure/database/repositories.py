"""Data access layer for obligations and their series"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Set

from sqlalchemy.orm import Session

from obligation_engine.domain.models import (
    TEMPLATE_FIELDS,
    Obligation,
    ObligationKind,
    ObligationTemplate,
)
from obligation_engine.domain.store import ObligationFilter, ObligationStore
from obligation_engine.infrastructure.database.models import ObligationRecord, SeriesExclusion

COLUMN_FIELDS = TEMPLATE_FIELDS | {
    "anchor_date",
    "is_recurring",
    "recurring_frequency",
    "recurring_interval",
    "recurring_end_date",
    "parent_recurring_id",
}


def to_domain(record: ObligationRecord) -> Obligation:
    """Map an ORM row onto the domain dataclass"""
    template = ObligationTemplate(
        kind=ObligationKind(record.kind),
        amount=Decimal(record.amount),
        description=record.description,
        category=record.category,
        notes=record.notes,
        property_id=record.property_id,
        unit_id=record.unit_id,
        entity_id=record.entity_id,
        vendor_id=record.vendor_id,
        status=record.status,
        lead_days=record.lead_days or 0,
        tax_deductible=bool(record.tax_deductible),
        is_amortized=bool(record.is_amortized),
        amortization_years=record.amortization_years,
        amortization_start_date=record.amortization_start_date,
        amortization_method=record.amortization_method or "straight_line",
    )
    return Obligation(
        id=record.id,
        anchor_date=record.anchor_date,
        template=template,
        is_recurring=bool(record.is_recurring),
        recurring_frequency=record.recurring_frequency,
        recurring_interval=record.recurring_interval or 1,
        recurring_end_date=record.recurring_end_date,
        parent_recurring_id=record.parent_recurring_id,
    )


def to_record(obligation: Obligation) -> ObligationRecord:
    template = obligation.template
    return ObligationRecord(
        id=obligation.id,
        kind=template.kind.value,
        amount=template.amount,
        description=template.description,
        category=template.category,
        notes=template.notes,
        property_id=template.property_id,
        unit_id=template.unit_id,
        entity_id=template.entity_id,
        vendor_id=template.vendor_id,
        status=template.status,
        lead_days=template.lead_days,
        anchor_date=obligation.anchor_date,
        is_recurring=obligation.is_recurring,
        recurring_frequency=obligation.recurring_frequency,
        recurring_interval=obligation.recurring_interval,
        recurring_end_date=obligation.recurring_end_date,
        parent_recurring_id=obligation.parent_recurring_id,
        tax_deductible=template.tax_deductible,
        is_amortized=template.is_amortized,
        amortization_years=template.amortization_years,
        amortization_start_date=template.amortization_start_date,
        amortization_method=template.amortization_method,
    )


class ObligationRepository(ObligationStore):
    """SQLAlchemy-backed obligation store bound to one session"""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit the enclosed writes together, or roll all of them back"""
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get(self, obligation_id: str) -> Optional[Obligation]:
        record = (
            self.db.query(ObligationRecord)
            .filter(ObligationRecord.id == obligation_id)
            .populate_existing()
            .first()
        )
        return to_domain(record) if record else None

    def lock_root(self, root_id: str) -> Optional[Obligation]:
        record = (
            self.db.query(ObligationRecord)
            .filter(ObligationRecord.id == root_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        return to_domain(record) if record else None

    def create(self, obligation: Obligation) -> Obligation:
        record = to_record(obligation)
        self.db.add(record)
        self.db.flush()
        return to_domain(record)

    def list_root_obligations_with_recurrence(self) -> List[Obligation]:
        records = (
            self.db.query(ObligationRecord)
            .filter(
                ObligationRecord.is_recurring.is_(True),
                ObligationRecord.parent_recurring_id.is_(None),
            )
            .order_by(ObligationRecord.anchor_date, ObligationRecord.id)
            .all()
        )
        return [to_domain(r) for r in records]

    def list_instance_dates(self, root_id: str) -> Set[date]:
        dates = {
            row.anchor_date
            for row in self.db.query(ObligationRecord.anchor_date).filter(
                (ObligationRecord.id == root_id) | (ObligationRecord.parent_recurring_id == root_id)
            )
        }
        dates.update(
            row.excluded_on
            for row in self.db.query(SeriesExclusion.excluded_on).filter(SeriesExclusion.root_id == root_id)
        )
        return dates

    def list_series(self, root_id: str) -> List[Obligation]:
        records = (
            self.db.query(ObligationRecord)
            .filter(ObligationRecord.parent_recurring_id == root_id)
            .order_by(ObligationRecord.anchor_date, ObligationRecord.id)
            .all()
        )
        return [to_domain(r) for r in records]

    def list_obligations(self, kind: Optional[str] = None) -> List[Obligation]:
        query = self.db.query(ObligationRecord)
        if kind is not None:
            query = query.filter(ObligationRecord.kind == kind)
        return [to_domain(r) for r in query.order_by(ObligationRecord.anchor_date, ObligationRecord.id).all()]

    def insert_instances(self, instances: List[Obligation]) -> None:
        self.db.add_all([to_record(instance) for instance in instances])
        self.db.flush()

    def update_matching(self, predicate: ObligationFilter, fields: Dict[str, Any]) -> int:
        unknown = set(fields) - COLUMN_FIELDS
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")
        values = {
            key: value.value if isinstance(value, ObligationKind) else value
            for key, value in fields.items()
        }
        return self._matching(predicate).update(values, synchronize_session="fetch")

    def delete_matching(self, predicate: ObligationFilter) -> int:
        return self._matching(predicate).delete(synchronize_session="fetch")

    def add_exclusion(self, root_id: str, excluded_on: date) -> None:
        exists = (
            self.db.query(SeriesExclusion.id)
            .filter(SeriesExclusion.root_id == root_id, SeriesExclusion.excluded_on == excluded_on)
            .first()
        )
        if exists is None:
            self.db.add(SeriesExclusion(root_id=root_id, excluded_on=excluded_on))
            self.db.flush()

    def clear_exclusions(self, root_id: str) -> int:
        return (
            self.db.query(SeriesExclusion)
            .filter(SeriesExclusion.root_id == root_id)
            .delete(synchronize_session="fetch")
        )

    def _matching(self, predicate: ObligationFilter):
        query = self.db.query(ObligationRecord)
        if predicate.id is not None:
            query = query.filter(ObligationRecord.id == predicate.id)
        if predicate.parent_recurring_id is not None:
            query = query.filter(ObligationRecord.parent_recurring_id == predicate.parent_recurring_id)
        if predicate.on_or_after is not None:
            query = query.filter(ObligationRecord.anchor_date >= predicate.on_or_after)
        return query
