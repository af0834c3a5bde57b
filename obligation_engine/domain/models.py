"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from obligation_engine.domain.exceptions import InvalidObligationError


class ObligationKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    REMINDER = "reminder"


class SeriesRole(str, Enum):
    ROOT = "root"
    CHILD = "child"
    STANDALONE = "standalone"


class Scope(str, Enum):
    """Breadth of a series edit or delete relative to the target's date"""

    THIS = "this"
    FUTURE = "future"
    ALL = "all"


@dataclass
class ObligationTemplate:
    """Fields copied verbatim from a root onto every generated instance"""

    kind: ObligationKind
    amount: Decimal
    description: str
    category: Optional[str] = None
    notes: Optional[str] = None
    property_id: Optional[str] = None
    unit_id: Optional[str] = None
    entity_id: Optional[str] = None
    vendor_id: Optional[str] = None
    status: Optional[str] = None
    lead_days: int = 0
    # Amortization (expenses only)
    tax_deductible: bool = True
    is_amortized: bool = False
    amortization_years: Optional[int] = None
    amortization_start_date: Optional[date] = None
    amortization_method: str = "straight_line"


TEMPLATE_FIELDS = frozenset(f.name for f in fields(ObligationTemplate))
RECURRENCE_FIELDS = frozenset(
    {"recurring_frequency", "recurring_interval", "recurring_end_date"}
)


@dataclass
class Obligation:
    """An expense, income transaction or reminder, possibly part of a series"""

    id: str
    anchor_date: date
    template: ObligationTemplate
    is_recurring: bool = False
    recurring_frequency: Optional[str] = None
    recurring_interval: int = 1
    recurring_end_date: Optional[date] = None
    parent_recurring_id: Optional[str] = None

    @property
    def role(self) -> SeriesRole:
        if self.is_recurring and self.parent_recurring_id is None:
            return SeriesRole.ROOT
        if not self.is_recurring and self.parent_recurring_id is not None:
            return SeriesRole.CHILD
        if not self.is_recurring and self.parent_recurring_id is None:
            return SeriesRole.STANDALONE
        raise InvalidObligationError(
            f"Obligation {self.id} is flagged recurring but also has parent {self.parent_recurring_id}"
        )

    @property
    def series_id(self) -> Optional[str]:
        """Root id of the series this obligation belongs to, if any"""
        role = self.role
        if role is SeriesRole.ROOT:
            return self.id
        if role is SeriesRole.CHILD:
            return self.parent_recurring_id
        return None


@dataclass
class SeriesPosition:
    """Single ordered slot of an obligation within its series"""

    position: int
    obligation: Obligation


@dataclass
class MutationResult:
    """Row counts touched by a series edit or delete"""

    updated: int = 0
    deleted: int = 0


@dataclass(frozen=True)
class Edit:
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Delete:
    pass


@dataclass
class AmortizationStatus:
    """Cumulative deduction progress of an expense as of a tax year"""

    is_amortized: bool
    is_deductible: bool
    total_amount: Decimal
    amortization_years: int
    start_year: int
    end_year: int
    current_year_deduction: Decimal
    total_deducted_so_far: Decimal
    remaining_to_deduct: Decimal
    years_remaining: int
    is_completed: bool
    annual_amount: Decimal


@dataclass
class AmortizationDisplay:
    """User-facing strings describing an amortization status"""

    badge: str
    description: str
    progress: str
    current_year: str
    summary: Optional[str] = None


@dataclass
class SweepReport:
    """Outcome of one backfill sweep across all recurring roots"""

    roots_total: int = 0
    roots_processed: int = 0
    instances_created: int = 0
    failed_root_ids: list = field(default_factory=list)
    cancelled: bool = False
