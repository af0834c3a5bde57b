"""POST /v1/admin/generate-recurring - Manual trigger for the backfill sweep"""

import time
from datetime import date

from fastapi import APIRouter, Depends, Request

from obligation_engine.api.dependencies import get_request_id, get_store, get_today
from obligation_engine.api.v1.schemas import SweepResponse
from obligation_engine.domain.sweep import RecurringSweep
from obligation_engine.infrastructure.database.repositories import ObligationRepository
from obligation_engine.infrastructure.observability.logging import log_sweep
from obligation_engine.infrastructure.observability.metrics import record_sweep

router = APIRouter()


@router.post("/admin/generate-recurring", response_model=SweepResponse)
def generate_recurring(
    request: Request,
    store: ObligationRepository = Depends(get_store),
    today: date = Depends(get_today),
):
    """
    Run one backfill sweep over every recurring root now.

    Per-root failures do not fail the request; they are listed in
    failed_root_ids.
    """
    start_time = time.time()
    report = RecurringSweep(store).run(now=today)

    duration = time.time() - start_time
    record_sweep(report, duration)
    log_sweep(get_request_id(request), report, duration * 1000)

    return SweepResponse(
        roots_total=report.roots_total,
        roots_processed=report.roots_processed,
        instances_created=report.instances_created,
        failed_root_ids=report.failed_root_ids,
    )
