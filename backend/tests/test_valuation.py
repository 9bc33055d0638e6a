"""Tests for batch-costed valuation and the flattened allocation projection."""
from decimal import Decimal

import pytest

from asset_register.core.errors import NotFound, ValidationError
from asset_register.schemas.requests import EmployeeDestination, StationDestination
from asset_register.services import allocation, ledger, registry, valuation


@pytest.fixture
def spread(session, world, second_batch):
    """B1 (1000): 3 at Station A, 1 with Alice.  B2 (1200): 2 at Station B, 1 with Bob."""
    allocation.allocate(session, StationDestination(station_id=world.station_a.id), world.b1.id, 3)
    allocation.allocate(session, EmployeeDestination(employee_id=world.alice.id), world.b1.id, 1)
    allocation.allocate(session, StationDestination(station_id=world.station_b.id), second_batch.id, 2)
    allocation.allocate(session, EmployeeDestination(employee_id=world.bob.id), second_batch.id, 1)
    return world


def test_totals_use_each_batch_price(session, spread):
    aid = spread.laptop.id
    assert valuation.asset_total_value(session, aid) == Decimal("16000.00")
    assert valuation.assigned_value(session, aid, "station") == Decimal("5400.00")
    assert valuation.assigned_value(session, aid, "employee") == Decimal("2200.00")
    assert valuation.assigned_value(session, aid) == Decimal("7600.00")
    assert valuation.remaining_value(session, aid) == Decimal("8400.00")


def test_asset_without_batches(session, world):
    chair = registry.create_asset(session, "Chair")
    assert valuation.asset_total_value(session, chair.id) == Decimal("0.00")
    assert valuation.remaining_value(session, chair.id) == Decimal("0.00")


def test_unknown_scope(session, world):
    with pytest.raises(ValidationError):
        valuation.assigned_value(session, world.laptop.id, "warehouse")


def test_unknown_asset(session, world):
    with pytest.raises(NotFound):
        valuation.asset_total_value(session, 404)


def test_asset_valuation_row(session, spread):
    row = valuation.asset_valuation(session, spread.laptop.id)
    assert row["total_quantity"] == 15
    assert row["assigned_quantity"] == 7
    assert row["remaining_quantity"] == 8
    assert row["assigned_value"] + row["remaining_value"] == row["total_value"]


def test_flatten_allocations(session, spread):
    lines = valuation.flatten_allocations(session, asset_id=spread.laptop.id)
    assert len(lines) == 4
    by_dest = {(ln.kind, ln.destination_name): ln for ln in lines}
    bob = by_dest[("employee", "Bob")]
    assert bob.unit_price == Decimal("1200.00")
    assert bob.value == Decimal("1200.00")
    assert bob.department_name == "IT"
    station_a = by_dest[("station", "Station A")]
    assert station_a.quantity == 3
    assert station_a.category_name == "Computers"


def test_flatten_filters(session, spread):
    only_a = valuation.flatten_allocations(session, station_id=spread.station_a.id)
    assert [ln.destination_name for ln in only_a] == ["Station A"]
    employees = valuation.flatten_allocations(session, kind="employee")
    assert {ln.destination_name for ln in employees} == {"Alice", "Bob"}


def test_allocation_frame(session, spread):
    df = valuation.allocation_frame(session)
    assert len(df) == 4
    assert sum(df["value"], Decimal("0")) == Decimal("7600.00")
    assert all(isinstance(v, Decimal) for v in df["unit_price"])
    assert set(df["kind"]) == {"station", "employee"}


def test_allocation_frame_empty(session, world):
    df = valuation.allocation_frame(session)
    assert df.empty
    assert "value" in df.columns


class TestGroupedValue:
    def test_by_station(self, session, spread):
        got = valuation.grouped_value(session, "station")
        assert got == {spread.station_a.id: Decimal("3000.00"), spread.station_b.id: Decimal("2400.00")}

    def test_by_employee(self, session, spread):
        got = valuation.grouped_value(session, "employee")
        assert got == {spread.alice.id: Decimal("1000.00"), spread.bob.id: Decimal("1200.00")}

    def test_by_department_includes_attached_stations(self, session, spread):
        # Station A belongs to IT, Station B to no department
        got = valuation.grouped_value(session, "department")
        assert got == {spread.it.id: Decimal("5200.00")}

    def test_by_category_and_uncategorised(self, session, spread):
        mouse = registry.create_asset(session, "Mouse")
        b = ledger.add_batch(session, mouse.id, "25", 4)
        allocation.allocate(session, StationDestination(station_id=spread.station_b.id), b.id, 2)
        got = valuation.grouped_value(session, "category")
        assert got == {spread.category.id: Decimal("7600.00"), None: Decimal("50.00")}

    def test_by_asset(self, session, spread):
        assert valuation.grouped_value(session, "asset") == {spread.laptop.id: Decimal("7600.00")}

    def test_unknown_grouping(self, session, spread):
        with pytest.raises(ValidationError):
            valuation.grouped_value(session, "colour")

    def test_empty(self, session, world):
        assert valuation.grouped_value(session, "station") == {}


def test_department_breakdown(session, spread):
    out = valuation.department_breakdown(session, spread.it.id)
    assert out["employee_count"] == 2
    assert out["employees"] == {spread.alice.id: Decimal("1000.00"), spread.bob.id: Decimal("1200.00")}
    assert out["stations"] == {spread.station_a.id: Decimal("3000.00")}
    assert out["total_value"] == Decimal("5200.00")


def test_total_value_invariant_under_allocation(session, world):
    before = valuation.asset_total_value(session, world.laptop.id)
    allocation.allocate(session, StationDestination(station_id=world.station_a.id), world.b1.id, 5)
    assert valuation.asset_total_value(session, world.laptop.id) == before


def test_grouped_value_exact_for_large_prices(session, world):
    # twelve-digit unit prices, split over two rows at one station
    server = registry.create_asset(session, "Server", category_id=world.category.id)
    b = ledger.add_batch(session, server.id, "987654321012.34", 5)
    dest = StationDestination(station_id=world.station_a.id)
    allocation.allocate(session, dest, b.id, 3)
    allocation.allocate(session, dest, b.id, 2)

    got = valuation.grouped_value(session, "station")
    assert got == {world.station_a.id: Decimal("4938271605061.70")}
    out = valuation.department_breakdown(session, world.it.id)
    assert out["stations"] == {world.station_a.id: Decimal("4938271605061.70")}
    assert out["total_value"] == valuation.asset_total_value(session, server.id)
