"""GET /v1/tax/deductions - Deductible expense totals for a tax year"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from obligation_engine.api.dependencies import get_store, get_today
from obligation_engine.api.v1.schemas import DeductionSummaryResponse
from obligation_engine.domain.amortization import total_deductions_for_year
from obligation_engine.domain.models import ObligationKind
from obligation_engine.infrastructure.database.repositories import ObligationRepository

router = APIRouter()


@router.get("/tax/deductions", response_model=DeductionSummaryResponse)
def get_deductions(
    year: Optional[int] = Query(None, ge=1900, le=2200, description="Tax year, defaults to the current year"),
    store: ObligationRepository = Depends(get_store),
    today: date = Depends(get_today),
):
    """
    Sum the deductions attributable to a tax year across all expenses.

    Every series member is its own expense, so a recurring root counts once
    alongside each of its generated instances.
    """
    tax_year = year if year is not None else today.year
    expenses = store.list_obligations(kind=ObligationKind.EXPENSE.value)
    total, by_category = total_deductions_for_year(expenses, tax_year)

    return DeductionSummaryResponse(
        year=tax_year,
        total_deductions=float(total),
        by_category={category: float(amount) for category, amount in sorted(by_category.items())},
    )
