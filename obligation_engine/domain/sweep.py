"""Periodic backfill of every recurring root"""

import logging
from datetime import date
from typing import Callable, Optional

from obligation_engine.domain.date_cursor import GenerationLimits
from obligation_engine.domain.exceptions import DomainException, SeriesGenerationError
from obligation_engine.domain.models import Obligation, SeriesRole, SweepReport
from obligation_engine.domain.series_generator import backfill, project
from obligation_engine.domain.store import ObligationStore

logger = logging.getLogger(__name__)


class RecurringSweep:
    """
    Backfill missing instances for all recurring roots.

    Each root is an independent unit of work: it is re-read under a row lock
    inside its own transaction, so the bound used is always the root's current
    recurring_end_date, and its new instances either all commit or none do.
    A failure on one root is logged and counted; the sweep moves on.
    """

    def __init__(self, store: ObligationStore, limits: Optional[GenerationLimits] = None):
        self.store = store
        self.limits = limits or GenerationLimits.from_settings()

    def run(self, now: Optional[date] = None, should_stop: Optional[Callable[[], bool]] = None) -> SweepReport:
        now = now or date.today()
        root_ids = [root.id for root in self.store.list_root_obligations_with_recurrence()]
        report = SweepReport(roots_total=len(root_ids))

        logger.info("Recurring sweep started", extra={"roots_total": len(root_ids), "as_of": now.isoformat()})

        for root_id in root_ids:
            if should_stop is not None and should_stop():
                report.cancelled = True
                logger.info("Recurring sweep cancelled", extra={"roots_processed": report.roots_processed})
                break

            try:
                created = self.backfill_root(root_id, now)
            except SeriesGenerationError as e:
                report.failed_root_ids.append(root_id)
                logger.error(f"Series generation aborted: {e}", extra={"root_id": root_id})
                continue
            except DomainException as e:
                report.failed_root_ids.append(root_id)
                logger.error(f"Recurring root skipped: {e}", extra={"root_id": root_id})
                continue
            except Exception as e:
                report.failed_root_ids.append(root_id)
                logger.exception(f"Unexpected error backfilling root: {e}", extra={"root_id": root_id})
                continue

            report.roots_processed += 1
            report.instances_created += created

        logger.info(
            "Recurring sweep finished",
            extra={
                "roots_processed": report.roots_processed,
                "instances_created": report.instances_created,
                "roots_failed": len(report.failed_root_ids),
            },
        )
        return report

    def backfill_root(self, root_id: str, now: date) -> int:
        """Materialize the missing instances of one root up to now; returns how many were created"""
        with self.store.transaction():
            root = self.store.lock_root(root_id)
            if root is None or root.role is not SeriesRole.ROOT:
                return 0
            existing = self.store.list_instance_dates(root_id)
            instances = backfill(root, existing, now, self.limits)
            self.store.insert_instances(instances)

        if instances:
            logger.info(
                "Recurring instances generated",
                extra={"root_id": root_id, "instances_created": len(instances)},
            )
        return len(instances)


def materialize_new_root(
    store: ObligationStore,
    root: Obligation,
    now: date,
    limits: Optional[GenerationLimits] = None,
    project_ahead: bool = False,
) -> int:
    """
    Generate the first instances of a freshly created root.

    Backfills up to `now`; with `project_ahead` also materializes upcoming
    occurrences inside the horizon. Runs in the caller's transaction.
    """
    existing = store.list_instance_dates(root.id)
    if project_ahead:
        instances = project(root, existing, now, limits)
    else:
        instances = backfill(root, existing, now, limits)
    store.insert_instances(instances)
    return len(instances)
