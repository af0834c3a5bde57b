"""Scoped edit and delete of recurring series"""

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Tuple, Union

from obligation_engine.domain.amortization import validate_amortization
from obligation_engine.domain.date_cursor import resolve_frequency
from obligation_engine.domain.exceptions import (
    InvalidObligationError,
    InvalidRecurrenceError,
    ObligationNotFoundError,
    OrphanedInstanceError,
)
from obligation_engine.domain.models import (
    RECURRENCE_FIELDS,
    TEMPLATE_FIELDS,
    Delete,
    Edit,
    MutationResult,
    Obligation,
    ObligationKind,
    Scope,
    SeriesRole,
)
from obligation_engine.domain.series_generator import cadence_dates
from obligation_engine.domain.store import ObligationFilter, ObligationStore
from obligation_engine.utils.date_utils import day_before

logger = logging.getLogger(__name__)

Action = Union[Edit, Delete]

# Fields that decide which dates a root generates
CADENCE_FIELDS = ("anchor_date", "recurring_frequency", "recurring_interval")


class SeriesMutator:
    """
    Apply an edit or delete to an obligation with a scope.

    Every call runs in a single store transaction that locks the series root
    first, so a concurrent backfill of the same root sees either none or all
    of the changes, including the root's new recurring_end_date.
    """

    def __init__(self, store: ObligationStore):
        self.store = store

    def apply(self, target: Obligation, action: Action, scope: Scope) -> MutationResult:
        scope = Scope(scope)
        with self.store.transaction():
            current = self.store.get(target.id)
            if current is None:
                raise ObligationNotFoundError(f"Obligation {target.id} not found")

            role = current.role
            if role is SeriesRole.STANDALONE:
                result = self._apply_standalone(current, action)
            else:
                root_id = current.series_id
                root = self.store.lock_root(root_id)
                if root is None:
                    raise OrphanedInstanceError(current.id, root_id)
                if role is SeriesRole.ROOT:
                    result = self._apply_to_root(root, action, scope)
                else:
                    result = self._apply_to_child(root, current, action, scope)

        logger.info(
            "Series mutation applied",
            extra={
                "obligation_id": target.id,
                "action": type(action).__name__.lower(),
                "scope": scope.value,
                "updated": result.updated,
                "deleted": result.deleted,
            },
        )
        return result

    def _apply_standalone(self, target: Obligation, action: Action) -> MutationResult:
        only_target = ObligationFilter(id=target.id)
        if isinstance(action, Delete):
            return MutationResult(deleted=self.store.delete_matching(only_target))

        template_changes, recurrence_changes, new_date = self._split_changes(target, action.changes)
        if recurrence_changes:
            raise InvalidObligationError("Recurrence fields can only be edited on a series root")
        fields = dict(template_changes)
        if new_date is not None:
            fields["anchor_date"] = new_date
        return MutationResult(updated=self._update(only_target, fields))

    def _apply_to_root(self, root: Obligation, action: Action, scope: Scope) -> MutationResult:
        if isinstance(action, Delete):
            if scope is Scope.FUTURE:
                deleted = self.store.delete_matching(
                    ObligationFilter(parent_recurring_id=root.id, on_or_after=root.anchor_date)
                )
                updated = self._end_series_before(root, root.anchor_date)
                return MutationResult(updated=updated, deleted=deleted)
            # Deleting the root always takes the whole series with it
            return self._delete_series(root)

        template_changes, recurrence_changes, new_date = self._split_changes(root, action.changes)
        if new_date is not None and scope is not Scope.THIS:
            raise InvalidObligationError("The date can only be edited on a single occurrence")
        self._validate_recurrence_changes(root, recurrence_changes)

        series_fields = dict(recurrence_changes)
        if new_date is not None:
            series_fields["anchor_date"] = new_date
        updated = self._update(ObligationFilter(id=root.id), {**template_changes, **series_fields})
        deleted = self._realign_children(root, replace(root, **series_fields))

        if scope is Scope.FUTURE:
            updated += self._update(
                ObligationFilter(parent_recurring_id=root.id, on_or_after=root.anchor_date),
                template_changes,
            )
        elif scope is Scope.ALL:
            updated += self._update(ObligationFilter(parent_recurring_id=root.id), template_changes)
        return MutationResult(updated=updated, deleted=deleted)

    def _apply_to_child(self, root: Obligation, child: Obligation, action: Action, scope: Scope) -> MutationResult:
        if isinstance(action, Delete):
            if scope is Scope.THIS:
                deleted = self.store.delete_matching(ObligationFilter(id=child.id))
                self.store.add_exclusion(root.id, child.anchor_date)
                return MutationResult(deleted=deleted)
            if scope is Scope.FUTURE:
                deleted = self.store.delete_matching(
                    ObligationFilter(parent_recurring_id=root.id, on_or_after=child.anchor_date)
                )
                updated = self._end_series_before(root, child.anchor_date)
                return MutationResult(updated=updated, deleted=deleted)
            return self._delete_series(root)

        template_changes, recurrence_changes, new_date = self._split_changes(child, action.changes)

        if scope is Scope.THIS:
            if recurrence_changes:
                raise InvalidObligationError("Recurrence fields can only be edited on a series root")
            fields = dict(template_changes)
            if new_date is not None and new_date != child.anchor_date:
                fields["anchor_date"] = new_date
                self.store.add_exclusion(root.id, child.anchor_date)
            return MutationResult(updated=self._update(ObligationFilter(id=child.id), fields))

        if new_date is not None:
            raise InvalidObligationError("The date can only be edited on a single occurrence")

        if scope is Scope.FUTURE:
            if recurrence_changes:
                raise InvalidObligationError("Recurrence fields can only be edited on a series root")
            updated = self._update(
                ObligationFilter(parent_recurring_id=root.id, on_or_after=child.anchor_date),
                template_changes,
            )
            updated += self._end_series_before(root, child.anchor_date)
            return MutationResult(updated=updated)

        self._validate_recurrence_changes(root, recurrence_changes)
        updated = self._update(ObligationFilter(id=root.id), {**template_changes, **recurrence_changes})
        deleted = self._realign_children(root, replace(root, **recurrence_changes))
        updated += self._update(ObligationFilter(parent_recurring_id=root.id), template_changes)
        return MutationResult(updated=updated, deleted=deleted)

    def _delete_series(self, root: Obligation) -> MutationResult:
        deleted = self.store.delete_matching(ObligationFilter(parent_recurring_id=root.id))
        deleted += self.store.delete_matching(ObligationFilter(id=root.id))
        self.store.clear_exclusions(root.id)
        return MutationResult(deleted=deleted)

    def _realign_children(self, root: Obligation, edited_root: Obligation) -> int:
        """
        Delete the generated children the edited root no longer produces.

        A child counts as generated when its date lies on the old cadence.
        Children moved off the cadence by a single-occurrence edit are kept.
        """
        cadence = {f: getattr(edited_root, f) for f in CADENCE_FIELDS}
        if cadence == {f: getattr(root, f) for f in CADENCE_FIELDS}:
            return 0

        children = self.store.list_series(root.id)
        if not children:
            return 0
        until = max(child.anchor_date for child in children)
        try:
            old_dates = cadence_dates(root, until)
        except InvalidRecurrenceError:
            # An unusable cadence never generated anything
            old_dates = set()
        stale = old_dates - cadence_dates(edited_root, until)

        deleted = 0
        for child in children:
            if child.anchor_date in stale:
                deleted += self.store.delete_matching(ObligationFilter(id=child.id))
        if deleted:
            logger.info(
                "Series children realigned to new cadence",
                extra={"root_id": root.id, "deleted": deleted},
            )
        return deleted

    def _end_series_before(self, root: Obligation, cutoff: date) -> int:
        """Stop the root from generating on or after cutoff; never widens an earlier end"""
        end_date = day_before(cutoff)
        if root.recurring_end_date is not None and root.recurring_end_date <= end_date:
            return 0
        return self.store.update_matching(ObligationFilter(id=root.id), {"recurring_end_date": end_date})

    def _update(self, predicate: ObligationFilter, fields: Dict[str, Any]) -> int:
        if not fields:
            return 0
        return self.store.update_matching(predicate, fields)

    def _split_changes(
        self, target: Obligation, changes: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], Dict[str, Any], Union[date, None]]:
        unknown = set(changes) - TEMPLATE_FIELDS - RECURRENCE_FIELDS - {"anchor_date"}
        if unknown:
            raise InvalidObligationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")

        template_changes = {k: v for k, v in changes.items() if k in TEMPLATE_FIELDS}
        if "kind" in template_changes:
            template_changes["kind"] = ObligationKind(template_changes["kind"])
        if "amount" in template_changes:
            template_changes["amount"] = Decimal(str(template_changes["amount"]))
        validate_amortization(replace(target.template, **template_changes))

        recurrence_changes = {k: v for k, v in changes.items() if k in RECURRENCE_FIELDS}
        new_date = changes.get("anchor_date")
        if new_date is not None and not isinstance(new_date, date):
            raise InvalidObligationError("anchor_date must be a date")
        return template_changes, recurrence_changes, new_date

    def _validate_recurrence_changes(self, root: Obligation, recurrence_changes: Dict[str, Any]) -> None:
        if recurrence_changes:
            resolve_frequency(
                recurrence_changes.get("recurring_frequency", root.recurring_frequency),
                recurrence_changes.get("recurring_interval", root.recurring_interval),
            )
