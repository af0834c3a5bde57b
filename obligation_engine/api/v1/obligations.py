"""Obligation endpoints: create, read, series listing, scoped edit/delete, amortization"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from obligation_engine.api.dependencies import get_request_id, get_store, get_today
from obligation_engine.api.v1.schemas import (
    AmortizationResponse,
    MutationResponse,
    ObligationCreateRequest,
    ObligationCreateResponse,
    ObligationResponse,
    ObligationUpdateRequest,
    SeriesMember,
    SeriesResponse,
)
from obligation_engine.domain.amortization import (
    amortization_status,
    deduction_schedule,
    format_amortization_display,
    validate_amortization,
)
from obligation_engine.domain.date_cursor import resolve_frequency
from obligation_engine.domain.exceptions import (
    DataIntegrityError,
    ObligationNotFoundError,
    ValidationError,
)
from obligation_engine.domain.models import (
    TEMPLATE_FIELDS,
    Delete,
    Edit,
    Obligation,
    ObligationTemplate,
    Scope,
    SeriesRole,
)
from obligation_engine.domain.series_generator import order_series
from obligation_engine.domain.series_mutator import SeriesMutator
from obligation_engine.domain.sweep import materialize_new_root
from obligation_engine.infrastructure.database.repositories import ObligationRepository
from obligation_engine.infrastructure.observability.logging import log_mutation
from obligation_engine.infrastructure.observability.metrics import (
    instances_generated_counter,
    integrity_error_counter,
    record_mutation,
)

router = APIRouter()

# Fields a PATCH may explicitly clear with null
NULLABLE_FIELDS = {
    "category",
    "notes",
    "property_id",
    "unit_id",
    "entity_id",
    "vendor_id",
    "status",
    "amortization_years",
    "amortization_start_date",
    "recurring_end_date",
}


def to_response(obligation: Obligation) -> ObligationResponse:
    template = obligation.template
    return ObligationResponse(
        id=obligation.id,
        anchor_date=obligation.anchor_date,
        is_recurring=obligation.is_recurring,
        recurring_frequency=obligation.recurring_frequency,
        recurring_interval=obligation.recurring_interval,
        recurring_end_date=obligation.recurring_end_date,
        parent_recurring_id=obligation.parent_recurring_id,
        kind=template.kind,
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
        tax_deductible=template.tax_deductible,
        is_amortized=template.is_amortized,
        amortization_years=template.amortization_years,
        amortization_start_date=template.amortization_start_date,
    )


def _get_or_404(store: ObligationRepository, obligation_id: str) -> Obligation:
    obligation = store.get(obligation_id)
    if obligation is None:
        raise HTTPException(status_code=404, detail="Obligation not found")
    return obligation


@router.post("/obligations", response_model=ObligationCreateResponse, status_code=201)
def create_obligation(
    request_body: ObligationCreateRequest,
    request: Request,
    store: ObligationRepository = Depends(get_store),
    today: date = Depends(get_today),
):
    """
    Record an obligation. A recurring root immediately gets its instances up
    to today, or up to the horizon when project_ahead is set.
    """
    request_id = get_request_id(request)
    template = ObligationTemplate(**request_body.model_dump(include=set(TEMPLATE_FIELDS)))
    recurring = request_body.is_recurring
    obligation = Obligation(
        id=str(uuid.uuid4()),
        anchor_date=request_body.anchor_date,
        template=template,
        is_recurring=recurring,
        recurring_frequency=request_body.recurring_frequency if recurring else None,
        recurring_interval=request_body.recurring_interval if recurring else 1,
        recurring_end_date=request_body.recurring_end_date if recurring else None,
    )

    try:
        validate_amortization(template)
        if recurring:
            resolve_frequency(obligation.recurring_frequency, obligation.recurring_interval)

        instances_created = 0
        with store.transaction():
            created = store.create(obligation)
            if recurring:
                instances_created = materialize_new_root(
                    store, created, today, project_ahead=request_body.project_ahead
                )

    except ValidationError as e:
        logging.warning(f"Rejected obligation: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    instances_generated_counter.labels(trigger="create").inc(instances_created)
    logging.info(
        "Obligation created",
        extra={"request_id": request_id, "obligation_id": created.id, "instances_created": instances_created},
    )
    return ObligationCreateResponse(obligation=to_response(created), instances_created=instances_created)


@router.get("/obligations/{obligation_id}", response_model=ObligationResponse)
def get_obligation(obligation_id: str, store: ObligationRepository = Depends(get_store)):
    return to_response(_get_or_404(store, obligation_id))


@router.get("/obligations/{obligation_id}/series", response_model=SeriesResponse)
def get_series(obligation_id: str, store: ObligationRepository = Depends(get_store)):
    """
    List every member of the series the obligation belongs to, root first.

    A standalone obligation is reported as a series of one.
    """
    obligation = _get_or_404(store, obligation_id)
    if obligation.role is SeriesRole.STANDALONE:
        root, children = obligation, []
    else:
        root = store.get(obligation.series_id)
        if root is None:
            integrity_error_counter.inc()
            raise HTTPException(status_code=409, detail="Series root no longer exists")
        children = store.list_series(root.id)

    members = [
        SeriesMember(position=slot.position, obligation=to_response(slot.obligation))
        for slot in order_series(root, children)
    ]
    return SeriesResponse(root_id=root.id, members=members)


def _mutate(store: ObligationRepository, obligation_id: str, action, scope: Scope, request_id: str) -> MutationResponse:
    target = _get_or_404(store, obligation_id)
    action_name = type(action).__name__.lower()

    try:
        result = SeriesMutator(store).apply(target, action, scope)

    except ObligationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except ValidationError as e:
        logging.warning(f"Rejected {action_name}: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except DataIntegrityError as e:
        integrity_error_counter.inc()
        logging.error(f"Data integrity error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    record_mutation(action_name, scope.value)
    log_mutation(request_id, obligation_id, action_name, scope.value, result)
    return MutationResponse(
        obligation_id=obligation_id,
        action=action_name,
        scope=scope.value,
        updated=result.updated,
        deleted=result.deleted,
    )


@router.patch("/obligations/{obligation_id}", response_model=MutationResponse)
def update_obligation(
    obligation_id: str,
    request_body: ObligationUpdateRequest,
    request: Request,
    scope: Scope = Query(Scope.THIS, description="this | future | all"),
    store: ObligationRepository = Depends(get_store),
):
    """Edit an obligation, or a slice of its series selected by scope"""
    changes = {
        key: value
        for key, value in request_body.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    return _mutate(store, obligation_id, Edit(changes), scope, get_request_id(request))


@router.delete("/obligations/{obligation_id}", response_model=MutationResponse)
def delete_obligation(
    obligation_id: str,
    request: Request,
    scope: Scope = Query(Scope.THIS, description="this | future | all"),
    store: ObligationRepository = Depends(get_store),
):
    """Delete an obligation, or a slice of its series selected by scope"""
    return _mutate(store, obligation_id, Delete(), scope, get_request_id(request))


@router.get("/obligations/{obligation_id}/amortization", response_model=AmortizationResponse)
def get_amortization(
    obligation_id: str,
    year: Optional[int] = Query(None, ge=1900, le=2200, description="Tax year, defaults to the current year"),
    store: ObligationRepository = Depends(get_store),
    today: date = Depends(get_today),
):
    """Deduction progress of an expense as of a tax year"""
    obligation = _get_or_404(store, obligation_id)
    as_of = year if year is not None else today.year
    status = amortization_status(obligation, as_of)
    display = format_amortization_display(status)

    return AmortizationResponse(
        obligation_id=obligation.id,
        year=as_of,
        is_amortized=status.is_amortized,
        is_deductible=status.is_deductible,
        total_amount=float(status.total_amount),
        amortization_years=status.amortization_years,
        start_year=status.start_year,
        end_year=status.end_year,
        current_year_deduction=float(status.current_year_deduction),
        total_deducted_so_far=float(status.total_deducted_so_far),
        remaining_to_deduct=float(status.remaining_to_deduct),
        years_remaining=status.years_remaining,
        is_completed=status.is_completed,
        annual_amount=float(status.annual_amount),
        schedule={y: float(amount) for y, amount in deduction_schedule(obligation).items()},
        badge=display.badge,
        description=display.description,
        progress=display.progress,
        current_year=display.current_year,
        summary=display.summary,
    )
