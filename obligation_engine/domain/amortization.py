"""Tax deduction and multi-year amortization for expenses"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from obligation_engine.domain.exceptions import InvalidAmortizationError
from obligation_engine.domain.models import (
    AmortizationDisplay,
    AmortizationStatus,
    Obligation,
    ObligationKind,
    ObligationTemplate,
)
from obligation_engine.utils.date_utils import month_index

ZERO = Decimal("0")


def validate_amortization(template: ObligationTemplate) -> None:
    """
    Reject amortization parameters the calculator cannot work with.

    Raises:
        InvalidAmortizationError: Amortized expense without positive years and a start date
    """
    if not template.is_amortized:
        return
    if template.kind is not ObligationKind.EXPENSE:
        raise InvalidAmortizationError("Only expenses can be amortized")
    years = template.amortization_years
    if years is None or isinstance(years, bool) or not isinstance(years, int) or years <= 0:
        raise InvalidAmortizationError(f"Amortization years must be a positive integer, got {years!r}")
    if not isinstance(template.amortization_start_date, date):
        raise InvalidAmortizationError("Amortization start date is required for amortized expenses")
    if template.amortization_method != "straight_line":
        raise InvalidAmortizationError(f"Unsupported amortization method: {template.amortization_method!r}")


def is_deductible(obligation: Obligation) -> bool:
    template = obligation.template
    return template.kind is ObligationKind.EXPENSE and bool(template.tax_deductible)


def is_amortized(obligation: Obligation) -> bool:
    template = obligation.template
    return bool(
        template.is_amortized
        and template.amortization_years
        and template.amortization_start_date
    )


def amortization_window(obligation: Obligation) -> Tuple[int, int]:
    """Half-open month-index interval [first, last) covered by the amortization"""
    template = obligation.template
    first = month_index(template.amortization_start_date)
    return first, first + template.amortization_years * 12


def months_in_year(obligation: Obligation, year: int) -> int:
    """Number of amortization months (0..12) that fall in a calendar year"""
    if not is_amortized(obligation):
        return 0
    first, last = amortization_window(obligation)
    return max(0, min(last, (year + 1) * 12) - max(first, year * 12))


def deduction_for_year(obligation: Obligation, year: int) -> Decimal:
    """
    Deductible amount of an expense attributable to one tax year.

    Non-deductible obligations return 0. Non-amortized expenses are deducted
    in full in the year of their date. Amortized expenses spread the amount
    evenly over amortization_years * 12 months starting in the month of
    amortization_start_date; a year receives one monthly share per month of
    overlap, so the yearly deductions sum to the full amount.
    """
    if not is_deductible(obligation):
        return ZERO

    amount = Decimal(obligation.template.amount)
    if not is_amortized(obligation):
        return amount if obligation.anchor_date.year == year else ZERO

    total_months = obligation.template.amortization_years * 12
    monthly_amount = amount / total_months
    return monthly_amount * months_in_year(obligation, year)


def deduction_schedule(obligation: Obligation) -> Dict[int, Decimal]:
    """Deduction per year for every year that receives one"""
    if not is_deductible(obligation):
        return {}
    if not is_amortized(obligation):
        return {obligation.anchor_date.year: Decimal(obligation.template.amount)}

    first, last = amortization_window(obligation)
    return {
        year: deduction_for_year(obligation, year)
        for year in range(first // 12, (last - 1) // 12 + 1)
    }


def amortization_status(obligation: Obligation, as_of_year: int) -> AmortizationStatus:
    """Cumulative deduction progress as of a tax year"""
    total_amount = Decimal(obligation.template.amount)
    current_year_deduction = deduction_for_year(obligation, as_of_year)

    if not is_deductible(obligation):
        year = obligation.anchor_date.year
        return AmortizationStatus(
            is_amortized=False,
            is_deductible=False,
            total_amount=total_amount,
            amortization_years=0,
            start_year=year,
            end_year=year,
            current_year_deduction=ZERO,
            total_deducted_so_far=ZERO,
            remaining_to_deduct=ZERO,
            years_remaining=0,
            is_completed=False,
            annual_amount=ZERO,
        )

    if not is_amortized(obligation):
        year = obligation.anchor_date.year
        fully_deducted = as_of_year >= year
        return AmortizationStatus(
            is_amortized=False,
            is_deductible=True,
            total_amount=total_amount,
            amortization_years=0,
            start_year=year,
            end_year=year,
            current_year_deduction=current_year_deduction,
            total_deducted_so_far=total_amount if fully_deducted else ZERO,
            remaining_to_deduct=ZERO if fully_deducted else total_amount,
            years_remaining=0 if fully_deducted else max(0, year - as_of_year),
            is_completed=fully_deducted,
            annual_amount=total_amount,
        )

    years = obligation.template.amortization_years
    first, last = amortization_window(obligation)
    start_year = first // 12
    end_year = (last - 1) // 12

    total_deducted = sum(
        (deduction_for_year(obligation, year) for year in range(start_year, min(as_of_year, end_year) + 1)),
        ZERO,
    )

    return AmortizationStatus(
        is_amortized=True,
        is_deductible=True,
        total_amount=total_amount,
        amortization_years=years,
        start_year=start_year,
        end_year=end_year,
        current_year_deduction=current_year_deduction,
        total_deducted_so_far=total_deducted,
        remaining_to_deduct=max(ZERO, total_amount - total_deducted),
        years_remaining=max(0, end_year - as_of_year),
        is_completed=as_of_year > end_year,
        annual_amount=total_amount / years,
    )


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


def format_amortization_display(status: AmortizationStatus) -> AmortizationDisplay:
    """Badge, description and progress strings for an amortization status"""
    if status.current_year_deduction > 0:
        current_year = f"{_money(status.current_year_deduction)} this year"
    else:
        current_year = "Not deductible this year"

    if not status.is_deductible:
        return AmortizationDisplay(
            badge="Not Deductible",
            description=f"{_money(status.total_amount)} - not tax deductible",
            progress="Not deductible for tax purposes",
            current_year="Not deductible this year",
        )

    if not status.is_amortized:
        return AmortizationDisplay(
            badge="Full Deduction",
            description=f"{_money(status.total_amount)} deductible in {status.start_year}",
            progress="Fully Deducted" if status.is_completed else f"Deductible in {status.start_year}",
            current_year=current_year,
        )

    if status.is_completed:
        badge = "Amortization Complete"
        progress = "Fully Amortized"
    else:
        badge = f"{status.years_remaining} Years Remaining"
        progress = f"{_money(status.remaining_to_deduct)} remaining over {status.years_remaining} years"

    return AmortizationDisplay(
        badge=badge,
        description=(
            f"{_money(status.total_amount)} over {status.amortization_years} years "
            f"({status.start_year}-{status.end_year})"
        ),
        progress=progress,
        current_year=current_year,
        summary=f"{_money(status.total_deducted_so_far)} deducted so far",
    )


def total_deductions_for_year(obligations: Iterable[Obligation], year: int) -> Tuple[Decimal, Dict[str, Decimal]]:
    """Total deduction for a tax year and its breakdown by category"""
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    total = ZERO
    for obligation in obligations:
        deduction = deduction_for_year(obligation, year)
        if deduction == 0:
            continue
        total += deduction
        by_category[obligation.template.category or "Uncategorized"] += deduction
    return total, dict(by_category)
