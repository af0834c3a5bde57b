"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field, model_validator
from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from obligation_engine.domain.models import ObligationKind

# Unit names plus the legacy aliases still found on older records
Frequency = Literal["days", "weeks", "months", "years", "monthly", "quarterly", "biannually", "annually"]


class ObligationFields(BaseModel):
    """Editable obligation payload shared by root and instances"""

    kind: ObligationKind
    amount: Decimal = Field(..., ge=0, decimal_places=2, description="Amount in account currency")
    description: str = Field(..., min_length=1)
    category: Optional[str] = None
    notes: Optional[str] = None
    property_id: Optional[str] = None
    unit_id: Optional[str] = None
    entity_id: Optional[str] = None
    vendor_id: Optional[str] = None
    status: Optional[str] = None
    lead_days: int = Field(0, ge=0)
    tax_deductible: bool = True
    is_amortized: bool = False
    amortization_years: Optional[int] = Field(None, ge=1, le=40)
    amortization_start_date: Optional[date] = None


class ObligationCreateRequest(ObligationFields):
    """Request body for POST /v1/obligations"""

    anchor_date: date
    is_recurring: bool = False
    recurring_frequency: Optional[Frequency] = None
    recurring_interval: int = Field(1, ge=1)
    recurring_end_date: Optional[date] = None
    project_ahead: bool = Field(False, description="Also materialize upcoming instances within the horizon")

    @model_validator(mode="after")
    def check_recurrence(self):
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("Recurring frequency is required for recurring obligations")
        if self.recurring_end_date is not None and self.recurring_end_date < self.anchor_date:
            raise ValueError("Recurring end date must not precede the anchor date")
        return self


class ObligationUpdateRequest(BaseModel):
    """Request body for PATCH /v1/obligations/{id}; only provided fields change"""

    kind: Optional[ObligationKind] = None
    amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    notes: Optional[str] = None
    property_id: Optional[str] = None
    unit_id: Optional[str] = None
    entity_id: Optional[str] = None
    vendor_id: Optional[str] = None
    status: Optional[str] = None
    lead_days: Optional[int] = Field(None, ge=0)
    tax_deductible: Optional[bool] = None
    is_amortized: Optional[bool] = None
    amortization_years: Optional[int] = Field(None, ge=1, le=40)
    amortization_start_date: Optional[date] = None
    anchor_date: Optional[date] = None
    recurring_frequency: Optional[Frequency] = None
    recurring_interval: Optional[int] = Field(None, ge=1)
    recurring_end_date: Optional[date] = None


class ObligationResponse(ObligationFields):
    """Single obligation as stored"""

    id: str
    anchor_date: date
    is_recurring: bool
    recurring_frequency: Optional[str] = None
    recurring_interval: int
    recurring_end_date: Optional[date] = None
    parent_recurring_id: Optional[str] = None


class ObligationCreateResponse(BaseModel):
    """Response for POST /v1/obligations"""

    obligation: ObligationResponse
    instances_created: int


class SeriesMember(BaseModel):
    position: int
    obligation: ObligationResponse


class SeriesResponse(BaseModel):
    """Response for GET /v1/obligations/{id}/series"""

    root_id: str
    members: List[SeriesMember]


class MutationResponse(BaseModel):
    """Response for PATCH/DELETE /v1/obligations/{id}"""

    obligation_id: str
    action: str
    scope: str
    updated: int
    deleted: int


class AmortizationResponse(BaseModel):
    """Response for GET /v1/obligations/{id}/amortization"""

    obligation_id: str
    year: int
    is_amortized: bool
    is_deductible: bool
    total_amount: float
    amortization_years: int
    start_year: int
    end_year: int
    current_year_deduction: float
    total_deducted_so_far: float
    remaining_to_deduct: float
    years_remaining: int
    is_completed: bool
    annual_amount: float
    schedule: Dict[int, float]
    badge: str
    description: str
    progress: str
    current_year: str
    summary: Optional[str] = None


class DeductionSummaryResponse(BaseModel):
    """Response for GET /v1/tax/deductions"""

    year: int
    total_deductions: float
    by_category: Dict[str, float]


class SweepResponse(BaseModel):
    """Response for POST /v1/admin/generate-recurring"""

    roots_total: int
    roots_processed: int
    instances_created: int
    failed_root_ids: List[str]
