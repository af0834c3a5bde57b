"""Materialization of recurring series into dated child instances"""

import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import AbstractSet, List, Optional, Sequence, Set

from obligation_engine.domain.date_cursor import DateCursor, GenerationLimits, resolve_frequency
from obligation_engine.domain.exceptions import (
    InvalidObligationError,
    NonAdvancingDateError,
    SeriesGenerationError,
)
from obligation_engine.domain.models import (
    Obligation,
    ObligationKind,
    ObligationTemplate,
    SeriesPosition,
    SeriesRole,
)
from obligation_engine.utils.date_utils import month_name

logger = logging.getLogger(__name__)

# Generated instances start out unsettled, except income which is booked as received
INSTANCE_STATUS = {
    ObligationKind.EXPENSE: "Unpaid",
    ObligationKind.INCOME: "Paid",
    ObligationKind.REMINDER: "Pending",
}

RENT_CATEGORY = "Rental Income"


def instance_template(root: Obligation, occurs_on: date) -> ObligationTemplate:
    """Copy of the root template as it should appear on one occurrence"""
    template = root.template
    description = template.description
    if template.category == RENT_CATEGORY and " Rent" in description:
        description = f"{month_name(occurs_on)} {occurs_on.year} Rent"
    return replace(
        template,
        description=description,
        status=INSTANCE_STATUS[template.kind],
    )


def build_instance(root: Obligation, occurs_on: date) -> Obligation:
    return Obligation(
        id=str(uuid.uuid4()),
        anchor_date=occurs_on,
        template=instance_template(root, occurs_on),
        is_recurring=False,
        recurring_frequency=None,
        recurring_interval=1,
        recurring_end_date=None,
        parent_recurring_id=root.id,
    )


def _generate(
    root: Obligation,
    existing_dates: AbstractSet[date],
    until: date,
    max_instances: int,
) -> List[Obligation]:
    if root.role is not SeriesRole.ROOT:
        raise InvalidObligationError(f"Obligation {root.id} is not the root of a recurring series")

    unit, step = resolve_frequency(root.recurring_frequency, root.recurring_interval)
    if root.recurring_end_date is not None:
        until = min(until, root.recurring_end_date)

    cursor = DateCursor(root.anchor_date, unit, step)
    instances: List[Obligation] = []
    try:
        for occurs_on in cursor.occurrences(until):
            if occurs_on in existing_dates:
                continue
            if len(instances) >= max_instances:
                logger.info(
                    "Generation limit reached",
                    extra={"root_id": root.id, "max_instances": max_instances},
                )
                break
            instances.append(build_instance(root, occurs_on))
    except NonAdvancingDateError as e:
        raise SeriesGenerationError(root.id, str(e)) from e

    return instances


def backfill(
    root: Obligation,
    existing_dates: AbstractSet[date],
    now: date,
    limits: Optional[GenerationLimits] = None,
    until: Optional[date] = None,
) -> List[Obligation]:
    """
    Build the missing child instances of a recurring root.

    Occurrences are walked from the root's anchor date up to the earliest of
    the root's recurring_end_date, `until` (default: `now`) and the horizon
    past `now`. An occurrence becomes a new instance only when its date is not
    in `existing_dates`, so calling this again with the dates it just produced
    yields nothing. At most `limits.max_instances` instances are built per call.

    Raises:
        InvalidRecurrenceError: Root carries an invalid frequency or interval
        SeriesGenerationError: Date arithmetic stopped advancing for this root
    """
    limits = limits or GenerationLimits.from_settings()
    bound = min(until or now, limits.horizon(now))
    return _generate(root, existing_dates, bound, limits.max_instances)


def project(
    root: Obligation,
    existing_dates: AbstractSet[date],
    now: date,
    limits: Optional[GenerationLimits] = None,
) -> List[Obligation]:
    """Build upcoming instances within the horizon, capped for a forward-looking schedule"""
    limits = limits or GenerationLimits.from_settings()
    cap = min(limits.max_instances, limits.max_projected_instances)
    return _generate(root, existing_dates, limits.horizon(now), cap)


def cadence_dates(root: Obligation, until: date) -> Set[date]:
    """Occurrence dates the root's cadence produces after its anchor, through until"""
    unit, step = resolve_frequency(root.recurring_frequency, root.recurring_interval)
    try:
        return set(DateCursor(root.anchor_date, unit, step).occurrences(until))
    except NonAdvancingDateError as e:
        raise SeriesGenerationError(root.id, str(e)) from e


def order_series(root: Obligation, children: Sequence[Obligation]) -> List[SeriesPosition]:
    """Give the root (position 0) and each child one ordered position in the series"""
    members = [root]
    seen = {root.id}
    for child in sorted(children, key=lambda c: (c.anchor_date, c.id)):
        if child.id in seen:
            continue
        seen.add(child.id)
        members.append(child)
    return [SeriesPosition(position=i, obligation=member) for i, member in enumerate(members)]
