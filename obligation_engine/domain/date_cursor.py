"""Date stepping for recurring series with safety bounds"""

from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional, Tuple

from dateutil.relativedelta import relativedelta

from obligation_engine.config import Settings, settings
from obligation_engine.domain.exceptions import InvalidRecurrenceError, NonAdvancingDateError

UNITS = ("days", "weeks", "months", "years")

# Legacy frequency names map onto a unit and a fixed multiplier of the interval
LEGACY_FREQUENCIES = {
    "monthly": ("months", 1),
    "quarterly": ("months", 3),
    "biannually": ("months", 6),
    "annually": ("years", 1),
}


@dataclass(frozen=True)
class GenerationLimits:
    """
    Upper bounds on a single generation run.

    max_instances caps the instances one run may create, horizon_years caps how
    far past "now" any run may look, and max_projected_instances caps a
    forward-looking projection made at creation time.
    """

    max_instances: int
    horizon_years: int
    max_projected_instances: int

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "GenerationLimits":
        config = config or settings
        return cls(
            max_instances=config.max_generated_instances,
            horizon_years=config.generation_horizon_years,
            max_projected_instances=config.max_projected_instances,
        )

    def horizon(self, now: date) -> date:
        return now + relativedelta(years=self.horizon_years)


def resolve_frequency(frequency: Optional[str], interval: Optional[int]) -> Tuple[str, int]:
    """
    Normalize a stored frequency and interval into (unit, step).

    Raises:
        InvalidRecurrenceError: Unknown unit or non-positive interval
    """
    if interval is None or isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise InvalidRecurrenceError(f"Recurring interval must be a positive integer, got {interval!r}")

    if frequency in UNITS:
        return frequency, interval
    if frequency in LEGACY_FREQUENCIES:
        unit, multiplier = LEGACY_FREQUENCIES[frequency]
        return unit, interval * multiplier

    raise InvalidRecurrenceError(f"Unknown recurring frequency: {frequency!r}")


def advance(start: date, unit: str, interval: int) -> date:
    """Move a date forward by interval units; month/year steps clamp to month end"""
    if unit == "days":
        return start + relativedelta(days=interval)
    if unit == "weeks":
        return start + relativedelta(weeks=interval)
    if unit == "months":
        return start + relativedelta(months=interval)
    if unit == "years":
        return start + relativedelta(years=interval)
    raise InvalidRecurrenceError(f"Unknown date unit: {unit!r}")


class DateCursor:
    """
    Walk the occurrences of a series after its anchor date.

    Occurrence k is always computed as anchor + k * interval, never from the
    previous occurrence, so a month-end anchor keeps its day of month
    (Jan 31 -> Feb 28 -> Mar 31).

    Every yielded date is strictly later than the one before it and no later
    than `until`, so the walk always terminates. A step that fails to advance
    raises NonAdvancingDateError instead of looping.
    """

    def __init__(self, anchor: date, unit: str, interval: int):
        self.anchor = anchor
        self.unit = unit
        self.interval = interval
        self.steps = 0

    def occurrences(self, until: date) -> Iterator[date]:
        previous = self.anchor
        while True:
            current = advance(self.anchor, self.unit, self.interval * (self.steps + 1))
            if current <= previous:
                raise NonAdvancingDateError(previous, current)
            if current > until:
                return
            self.steps += 1
            yield current
            previous = current
