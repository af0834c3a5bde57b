"""Unit tests for scoped series edits and deletes against the SQLite store"""

import pytest
from datetime import date
from decimal import Decimal
from obligation_engine.domain.date_cursor import GenerationLimits
from obligation_engine.domain.exceptions import (
    InvalidAmortizationError,
    InvalidObligationError,
    InvalidRecurrenceError,
    ObligationNotFoundError,
    OrphanedInstanceError,
)
from obligation_engine.domain.models import Delete, Edit, Scope
from obligation_engine.domain.series_generator import backfill
from obligation_engine.domain.series_mutator import SeriesMutator
from obligation_engine.domain.sweep import RecurringSweep, materialize_new_root


TODAY = date(2025, 6, 15)
LIMITS = GenerationLimits(max_instances=100, horizon_years=2, max_projected_instances=24)


@pytest.fixture
def series(store, monthly_root):
    """Persisted monthly root (Jan 15) with children Feb 15 through Jun 15"""
    with store.transaction():
        store.create(monthly_root)
        materialize_new_root(store, monthly_root, TODAY, LIMITS)
    return monthly_root, store.list_series(monthly_root.id)


@pytest.fixture
def mutator(store):
    return SeriesMutator(store)


def child_on(children, day):
    return next(c for c in children if c.anchor_date == day)


def missing_after_backfill(store, root_id):
    root = store.get(root_id)
    return backfill(root, store.list_instance_dates(root_id), TODAY, LIMITS)


def test_series_fixture_shape(series):
    root, children = series
    assert [c.anchor_date.month for c in children] == [2, 3, 4, 5, 6]


def test_child_delete_this_removes_one_and_is_not_regenerated(store, mutator, series):
    root, children = series
    march = child_on(children, date(2025, 3, 15))

    result = mutator.apply(march, Delete(), Scope.THIS)

    assert result.deleted == 1
    assert store.get(march.id) is None
    assert len(store.list_series(root.id)) == 4
    assert store.get(root.id).recurring_end_date is None
    assert date(2025, 3, 15) in store.list_instance_dates(root.id)
    assert missing_after_backfill(store, root.id) == []


def test_child_delete_future_truncates_series(store, mutator, series):
    root, children = series
    march = child_on(children, date(2025, 3, 15))

    result = mutator.apply(march, Delete(), Scope.FUTURE)

    assert result.deleted == 4
    assert result.updated == 1
    assert [c.anchor_date for c in store.list_series(root.id)] == [date(2025, 2, 15)]
    assert store.get(root.id).recurring_end_date == date(2025, 3, 14)
    assert missing_after_backfill(store, root.id) == []


def test_child_delete_all_removes_series(store, mutator, series):
    root, children = series

    result = mutator.apply(children[0], Delete(), Scope.ALL)

    assert result.deleted == 6
    assert store.get(root.id) is None
    assert store.list_series(root.id) == []
    assert store.list_instance_dates(root.id) == set()


def test_root_delete_this_cascades(store, mutator, series):
    """Test removing the root never leaves orphaned children behind"""
    root, _ = series

    result = mutator.apply(root, Delete(), Scope.THIS)

    assert result.deleted == 6
    assert store.get(root.id) is None
    assert store.list_series(root.id) == []


def test_root_delete_future_keeps_root_and_stops_generation(store, mutator, series):
    root, _ = series

    result = mutator.apply(root, Delete(), Scope.FUTURE)

    assert result.deleted == 5
    remaining = store.get(root.id)
    assert remaining is not None
    assert remaining.recurring_end_date == date(2025, 1, 14)
    assert missing_after_backfill(store, root.id) == []


def test_child_edit_this_changes_only_target(store, mutator, series):
    root, children = series
    april = child_on(children, date(2025, 4, 15))

    result = mutator.apply(april, Edit({"amount": "1550.00", "notes": "Late fee"}), Scope.THIS)

    assert result.updated == 1
    assert store.get(april.id).template.amount == Decimal("1550.00")
    assert store.get(april.id).template.notes == "Late fee"
    assert store.get(root.id).template.amount == Decimal("1500.00")
    assert store.get(child_on(children, date(2025, 5, 15)).id).template.amount == Decimal("1500.00")


def test_child_redate_this_excludes_original_date(store, mutator, series):
    """Test a moved occurrence is not recreated on its old date"""
    root, children = series
    may = child_on(children, date(2025, 5, 15))

    result = mutator.apply(may, Edit({"anchor_date": date(2025, 5, 20)}), Scope.THIS)

    assert result.updated == 1
    assert store.get(may.id).anchor_date == date(2025, 5, 20)
    assert missing_after_backfill(store, root.id) == []


def test_child_edit_future_updates_later_instances_and_ends_root(store, mutator, series):
    root, children = series
    april = child_on(children, date(2025, 4, 15))

    result = mutator.apply(april, Edit({"amount": "1600.00"}), Scope.FUTURE)

    assert result.updated == 4
    amounts = {c.anchor_date.month: c.template.amount for c in store.list_series(root.id)}
    assert amounts == {
        2: Decimal("1500.00"),
        3: Decimal("1500.00"),
        4: Decimal("1600.00"),
        5: Decimal("1600.00"),
        6: Decimal("1600.00"),
    }
    stored_root = store.get(root.id)
    assert stored_root.template.amount == Decimal("1500.00")
    assert stored_root.recurring_end_date == date(2025, 4, 14)


def test_child_edit_all_updates_root_and_children(store, mutator, series):
    root, children = series

    result = mutator.apply(children[2], Edit({"vendor_id": "vendor-9"}), Scope.ALL)

    assert result.updated == 6
    assert store.get(root.id).template.vendor_id == "vendor-9"
    assert all(c.template.vendor_id == "vendor-9" for c in store.list_series(root.id))


def test_child_edit_all_can_change_recurrence(store, mutator, series):
    root, children = series

    result = mutator.apply(children[0], Edit({"recurring_interval": 2}), Scope.ALL)

    assert result.updated == 1
    assert result.deleted == 3
    assert store.get(root.id).recurring_interval == 2


def test_root_edit_this_leaves_children(store, mutator, series):
    root, _ = series

    result = mutator.apply(root, Edit({"description": "Unit 2B Rent"}), Scope.THIS)

    assert result.updated == 1
    assert store.get(root.id).template.description == "Unit 2B Rent"
    assert all(c.template.description != "Unit 2B Rent" for c in store.list_series(root.id))


def test_root_edit_future_updates_whole_series(store, mutator, series):
    root, _ = series

    result = mutator.apply(root, Edit({"amount": 1525}), Scope.FUTURE)

    assert result.updated == 6
    assert store.get(root.id).template.amount == Decimal("1525")
    assert all(c.template.amount == Decimal("1525") for c in store.list_series(root.id))


def test_root_edit_all_recurrence_and_template(store, mutator, series):
    root, _ = series

    result = mutator.apply(
        root,
        Edit({"recurring_end_date": date(2025, 12, 31), "category": "Rent"}),
        Scope.ALL,
    )

    assert result.updated == 6
    stored_root = store.get(root.id)
    assert stored_root.recurring_end_date == date(2025, 12, 31)
    assert stored_root.template.category == "Rent"


def series_dates(store, root_id):
    return [c.anchor_date for c in store.list_series(root_id)]


def test_root_anchor_move_then_sweep_has_no_parallel_children(store, mutator, series):
    """Test moving the root's date drops the children of the old cadence"""
    root, _ = series

    result = mutator.apply(root, Edit({"anchor_date": date(2025, 1, 20)}), Scope.THIS)
    RecurringSweep(store, LIMITS).run(now=TODAY)

    assert result.deleted == 5
    assert series_dates(store, root.id) == [
        date(2025, 2, 20),
        date(2025, 3, 20),
        date(2025, 4, 20),
        date(2025, 5, 20),
    ]


def test_root_cadence_change_then_sweep_has_no_parallel_children(store, mutator, series):
    root, _ = series

    result = mutator.apply(root, Edit({"recurring_frequency": "weeks", "recurring_interval": 2}), Scope.ALL)
    RecurringSweep(store, LIMITS).run(now=TODAY)

    assert result.deleted == 5
    assert series_dates(store, root.id) == [
        date(2025, 1, 29),
        date(2025, 2, 12),
        date(2025, 2, 26),
        date(2025, 3, 12),
        date(2025, 3, 26),
        date(2025, 4, 9),
        date(2025, 4, 23),
        date(2025, 5, 7),
        date(2025, 5, 21),
        date(2025, 6, 4),
    ]


def test_child_cadence_change_then_sweep_keeps_shared_dates(store, mutator, series):
    """Test children still on the new cadence survive and nothing is duplicated"""
    root, children = series
    march = child_on(children, date(2025, 3, 15))

    mutator.apply(children[0], Edit({"recurring_interval": 2}), Scope.ALL)
    report = RecurringSweep(store, LIMITS).run(now=TODAY)

    assert report.instances_created == 0
    assert series_dates(store, root.id) == [date(2025, 3, 15), date(2025, 5, 15)]
    assert store.get(march.id) is not None


def test_cadence_change_keeps_redated_child(store, mutator, series):
    root, children = series
    february = children[0]
    mutator.apply(february, Edit({"anchor_date": date(2025, 2, 18)}), Scope.THIS)

    result = mutator.apply(root, Edit({"recurring_interval": 2}), Scope.FUTURE)
    RecurringSweep(store, LIMITS).run(now=TODAY)

    assert result.deleted == 2
    assert series_dates(store, root.id) == [date(2025, 2, 18), date(2025, 3, 15), date(2025, 5, 15)]


def test_end_date_change_keeps_children(store, mutator, series):
    root, _ = series

    result = mutator.apply(root, Edit({"recurring_end_date": date(2025, 3, 31)}), Scope.ALL)

    assert result.deleted == 0
    assert len(store.list_series(root.id)) == 5


def test_future_end_date_never_widened(store, mutator, make_obligation):
    """Test a later cutoff keeps an earlier existing end date"""
    root = make_obligation(
        anchor_date=date(2025, 1, 1),
        is_recurring=True,
        recurring_frequency="months",
        recurring_end_date=date(2025, 3, 1),
    )
    stray = make_obligation(anchor_date=date(2025, 5, 1), parent_recurring_id=root.id)
    with store.transaction():
        store.create(root)
        store.create(stray)

    result = mutator.apply(stray, Edit({"notes": "moved"}), Scope.FUTURE)

    assert result.updated == 1
    assert store.get(root.id).recurring_end_date == date(2025, 3, 1)


def test_standalone_edit_and_delete(store, mutator, make_obligation):
    single = make_obligation(amount="40.00", description="Key copy")
    with store.transaction():
        store.create(single)

    edited = mutator.apply(single, Edit({"amount": "45.00", "anchor_date": date(2025, 2, 1)}), Scope.ALL)
    assert edited.updated == 1
    assert store.get(single.id).anchor_date == date(2025, 2, 1)
    assert store.get(single.id).template.amount == Decimal("45.00")

    deleted = mutator.apply(single, Delete(), Scope.FUTURE)
    assert deleted.deleted == 1
    assert store.get(single.id) is None


def test_standalone_rejects_recurrence_fields(store, mutator, make_obligation):
    single = make_obligation()
    with store.transaction():
        store.create(single)

    with pytest.raises(InvalidObligationError):
        mutator.apply(single, Edit({"recurring_frequency": "weeks"}), Scope.THIS)


def test_child_edit_this_rejects_recurrence_fields(mutator, series):
    _, children = series
    with pytest.raises(InvalidObligationError):
        mutator.apply(children[0], Edit({"recurring_interval": 3}), Scope.THIS)


@pytest.mark.parametrize("scope", [Scope.FUTURE, Scope.ALL])
def test_date_edit_rejected_outside_single_occurrence(mutator, series, scope):
    _, children = series
    with pytest.raises(InvalidObligationError):
        mutator.apply(children[1], Edit({"anchor_date": date(2025, 3, 20)}), scope)


def test_unknown_field_rejected(mutator, series):
    root, _ = series
    with pytest.raises(InvalidObligationError):
        mutator.apply(root, Edit({"parent_recurring_id": "someone-else"}), Scope.ALL)


def test_invalid_recurrence_change_rejected(store, mutator, series):
    root, _ = series
    with pytest.raises(InvalidRecurrenceError):
        mutator.apply(root, Edit({"recurring_interval": 0, "amount": "1.00"}), Scope.ALL)

    assert store.get(root.id).template.amount == Decimal("1500.00")


def test_invalid_amortization_change_rejected(store, mutator, make_obligation):
    expense = make_obligation(amount="9000.00")
    with store.transaction():
        store.create(expense)

    with pytest.raises(InvalidAmortizationError):
        mutator.apply(expense, Edit({"is_amortized": True, "amortization_years": None}), Scope.THIS)


def test_orphaned_child_is_integrity_error(store, mutator, make_obligation):
    orphan = make_obligation(parent_recurring_id="00000000-0000-0000-0000-000000000000")
    with store.transaction():
        store.create(orphan)

    with pytest.raises(OrphanedInstanceError) as exc_info:
        mutator.apply(orphan, Delete(), Scope.THIS)

    assert exc_info.value.root_id == "00000000-0000-0000-0000-000000000000"
    assert store.get(orphan.id) is not None


def test_missing_target_not_found(mutator, make_obligation):
    with pytest.raises(ObligationNotFoundError):
        mutator.apply(make_obligation(), Delete(), Scope.THIS)
