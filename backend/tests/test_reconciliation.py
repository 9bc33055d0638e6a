"""
Tests for edit-set reconciliation (validate_edit + apply_edited_set).
"""
from datetime import date

import pytest
from sqlmodel import select

from asset_register.core.errors import NotFound, OverAllocation, ValidationError
from asset_register.models import BatchAllocation, EmployeeAssignment, StationAllocation
from asset_register.schemas.requests import (
    DraftAllocationSet,
    EmployeeDestination,
    StationDestination,
)
from asset_register.services import allocation, ledger, reconciliation, registry, valuation


def _draft(world, rows, owner_id=None, kind="station"):
    return DraftAllocationSet(asset_id=world.laptop.id, kind=kind, owner_id=owner_id, rows=rows)


def _remaining(session, batch):
    session.refresh(batch)
    return batch.remaining_quantity


class TestTrueLimit:
    def test_growing_own_allocation_uses_true_limit(self, session, world):
        """B1 10: 4 at Station A, then edited to 6 -> limit 10, remaining 4."""
        row = allocation.allocate(
            session, StationDestination(station_id=world.station_a.id), world.b1.id, 4
        )
        assert _remaining(session, world.b1) == 6
        assert valuation.assigned_value(session, world.laptop.id) == 4000

        draft = _draft(world, [
            {"allocation_id": row.id, "destination_id": world.station_a.id,
             "batch_id": world.b1.id, "quantity": 6},
        ])
        plan = reconciliation.validate_edit(session, draft)
        assert plan.true_limit == {world.b1.id: 10}
        assert plan.original_usage == {world.b1.id: 4}
        assert len(plan.changed) == 1

        allocation.apply_edited_set(session, draft)
        assert _remaining(session, world.b1) == 4
        assert session.exec(select(StationAllocation)).one().quantity == 6

    def test_no_prior_usage_limit_is_remaining(self, session, world):
        allocation.allocate(session, StationDestination(station_id=world.station_b.id), world.b1.id, 7)
        draft = _draft(
            world,
            [{"batch_id": world.b1.id, "quantity": 7}],
            owner_id=world.station_a.id,
        )
        with pytest.raises(OverAllocation) as ei:
            allocation.apply_edited_set(session, draft)
        assert ei.value.to_dict()["details"] == {
            "batch_id": world.b1.id, "true_limit": 3, "requested": 7,
        }
        assert "Available: 3 (Requested: 7)" in ei.value.message
        assert _remaining(session, world.b1) == 3

    def test_rows_on_same_batch_are_summed(self, session, world):
        draft = _draft(world, [
            {"destination_id": world.station_a.id, "batch_id": world.b1.id, "quantity": 6},
            {"destination_id": world.station_b.id, "batch_id": world.b1.id, "quantity": 5},
        ])
        with pytest.raises(OverAllocation) as ei:
            reconciliation.validate_edit(session, draft)
        assert ei.value.requested == 11


class TestRowPolicy:
    def test_zero_quantity_row_is_dropped(self, session, world):
        draft = _draft(world, {
            0: {"destination_id": world.station_a.id, "batch_id": world.b1.id, "quantity": 2},
            1: {"destination_id": world.station_b.id, "batch_id": world.b1.id, "quantity": 0},
            2: {"destination_id": world.station_b.id, "batch_id": world.b1.id, "quantity": ""},
        })
        plan = reconciliation.validate_edit(session, draft)
        assert plan.dropped_rows == [1, 2]
        assert plan.requested == {world.b1.id: 2}

    def test_blank_row_is_dropped(self, session, world):
        plan = reconciliation.validate_edit(session, _draft(world, [{}]))
        assert plan.dropped_rows == [0]
        assert plan.is_noop

    def test_destination_without_batch(self, session, world):
        draft = _draft(world, [{"destination_id": world.station_a.id, "quantity": 2}])
        with pytest.raises(ValidationError) as ei:
            reconciliation.validate_edit(session, draft)
        assert ei.value.message == "batch required"
        assert ei.value.field == "rows[0].batch_id"

    def test_negative_quantity(self, session, world):
        draft = _draft(world, [{"destination_id": world.station_a.id, "batch_id": world.b1.id, "quantity": -1}])
        with pytest.raises(ValidationError):
            reconciliation.validate_edit(session, draft)

    def test_destination_required_for_whole_asset_set(self, session, world):
        draft = _draft(world, [{"batch_id": world.b1.id, "quantity": 1}])
        with pytest.raises(ValidationError) as ei:
            reconciliation.validate_edit(session, draft)
        assert ei.value.message == "destination required"

    def test_batch_of_other_asset(self, session, world):
        phone = registry.create_asset(session, "Phone")
        other = ledger.add_batch(session, phone.id, 300, 5)
        draft = _draft(world, [{"destination_id": world.station_a.id, "batch_id": other.id, "quantity": 1}])
        with pytest.raises(ValidationError):
            reconciliation.validate_edit(session, draft)

    def test_unknown_allocation_id(self, session, world):
        draft = _draft(world, [
            {"allocation_id": 99, "destination_id": world.station_a.id, "batch_id": world.b1.id, "quantity": 1},
        ])
        with pytest.raises(NotFound):
            reconciliation.validate_edit(session, draft)


class TestApply:
    def test_failed_edit_writes_nothing(self, session, world, second_batch):
        row = allocation.allocate(
            session, StationDestination(station_id=world.station_a.id), world.b1.id, 2
        )
        draft = _draft(world, [
            {"allocation_id": row.id, "destination_id": world.station_a.id,
             "batch_id": world.b1.id, "quantity": 8},
            {"destination_id": world.station_b.id, "batch_id": second_batch.id, "quantity": 6},
        ])
        with pytest.raises(OverAllocation) as ei:
            allocation.apply_edited_set(session, draft)
        assert ei.value.batch_id == second_batch.id
        assert _remaining(session, world.b1) == 8
        assert _remaining(session, second_batch) == 5
        assert session.get(BatchAllocation, row.id).quantity == 2

    def test_omitted_rows_are_removed(self, session, world):
        dest = StationDestination(station_id=world.station_a.id)
        allocation.allocate(session, dest, world.b1.id, 3)
        rows = allocation.apply_edited_set(session, _draft(world, []))
        assert rows == []
        assert _remaining(session, world.b1) == 10
        assert session.exec(select(StationAllocation)).all() == []

    def test_row_moves_between_batches(self, session, world, second_batch):
        row = allocation.allocate(
            session, StationDestination(station_id=world.station_a.id), world.b1.id, 4
        )
        draft = _draft(world, [
            {"allocation_id": row.id, "destination_id": world.station_a.id,
             "batch_id": second_batch.id, "quantity": 5},
        ])
        plan = reconciliation.validate_edit(session, draft)
        assert plan.batch_deltas() == {world.b1.id: -4, second_batch.id: 5}

        rows = allocation.apply_edited_set(session, draft)
        assert [(r.allocation_id, r.batch_id, r.quantity) for r in rows] == [(row.id, second_batch.id, 5)]
        assert _remaining(session, world.b1) == 10
        assert _remaining(session, second_batch) == 0
        assert registry.audit_batches(session) == []

    def test_row_moves_between_stations(self, session, world):
        row = allocation.allocate(
            session, StationDestination(station_id=world.station_a.id), world.b1.id, 4
        )
        allocation.apply_edited_set(session, _draft(world, [
            {"allocation_id": row.id, "destination_id": world.station_b.id,
             "batch_id": world.b1.id, "quantity": 4},
        ]))
        sa = session.exec(select(StationAllocation)).one()
        assert sa.station_id == world.station_b.id
        assert _remaining(session, world.b1) == 6

    def test_owner_scope_leaves_other_stations_alone(self, session, world):
        allocation.allocate(session, StationDestination(station_id=world.station_b.id), world.b1.id, 5)
        allocation.apply_edited_set(
            session,
            _draft(world, [{"batch_id": world.b1.id, "quantity": 5}], owner_id=world.station_a.id),
        )
        assert _remaining(session, world.b1) == 0
        assert len(session.exec(select(StationAllocation)).all()) == 2

    def test_unchanged_edit_is_noop(self, session, world):
        row = allocation.allocate(
            session, StationDestination(station_id=world.station_a.id), world.b1.id, 4
        )
        draft = _draft(world, [
            {"allocation_id": row.id, "destination_id": world.station_a.id,
             "batch_id": world.b1.id, "quantity": 4},
        ])
        assert reconciliation.validate_edit(session, draft).is_noop
        allocation.apply_edited_set(session, draft)
        assert _remaining(session, world.b1) == 6

    def test_employee_edit(self, session, world):
        ea = allocation.allocate(
            session, EmployeeDestination(employee_id=world.alice.id), world.b1.id, 1
        )
        draft = _draft(
            world,
            [
                {"allocation_id": ea.id, "batch_id": world.b1.id, "quantity": 1,
                 "serial_number": "SN-7", "assignment_date": "2024-05-02"},
                {"batch_id": world.b1.id, "quantity": 2},
            ],
            owner_id=world.alice.id,
            kind="employee",
        )
        rows = allocation.apply_edited_set(session, draft)
        assert len(rows) == 2
        assert rows[0].serial_number == "SN-7"
        assert rows[0].assignment_date == date(2024, 5, 2)
        assert _remaining(session, world.b1) == 7
        assert len(session.exec(select(EmployeeAssignment)).all()) == 2


class TestTargetQuantity:
    def test_station_total_capped_by_target(self, session, world):
        monitor = registry.create_asset(session, "Monitor", target_quantity=5)
        b = ledger.add_batch(session, monitor.id, 200, 10)
        draft = DraftAllocationSet(asset_id=monitor.id, rows=[
            {"destination_id": world.station_a.id, "batch_id": b.id, "quantity": 4},
            {"destination_id": world.station_b.id, "batch_id": b.id, "quantity": 2},
        ])
        with pytest.raises(ValidationError) as ei:
            allocation.apply_edited_set(session, draft)
        assert ei.value.message == "assigned quantity exceeds available stock"
        assert _remaining(session, b) == 10

    def test_target_counts_other_stations(self, session, world):
        monitor = registry.create_asset(session, "Monitor", target_quantity=5)
        b = ledger.add_batch(session, monitor.id, 200, 10)
        allocation.allocate(session, StationDestination(station_id=world.station_b.id), b.id, 3)
        draft = DraftAllocationSet(
            asset_id=monitor.id, owner_id=world.station_a.id,
            rows=[{"batch_id": b.id, "quantity": 3}],
        )
        with pytest.raises(ValidationError):
            reconciliation.validate_edit(session, draft)
