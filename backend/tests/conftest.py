import os

# in-memory database shared through StaticPool; must be set before the
# engine module is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlmodel import Session, SQLModel

import asset_register.models  # noqa: F401
from asset_register.core.database import engine
from asset_register.services import ledger, registry


@pytest.fixture(autouse=True)
def fresh_schema():
    SQLModel.metadata.create_all(engine)
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session():
    with Session(engine) as ses:
        yield ses


@pytest.fixture
def world(session):
    """
    One laptop asset with batch B1 (10 @ 1000), two stations, two employees
    in the same department.
    """
    it = registry.create_department(session, "IT", manager="Kamau")
    ops = registry.create_department(session, "Operations")
    cat = registry.create_category(session, "Computers")
    laptop = registry.create_asset(session, "Laptop", asset_number="LAP-001", category_id=cat.id)
    b1 = ledger.add_batch(session, laptop.id, "1000", 10, date(2024, 1, 10), "B1")
    station_a = registry.create_station(session, "Station A", department_id=it.id)
    station_b = registry.create_station(session, "Station B")
    alice = registry.create_employee(session, "Alice", department_id=it.id)
    bob = registry.create_employee(session, "Bob", department_id=it.id)
    return SimpleNamespace(
        it=it, ops=ops, category=cat, laptop=laptop, b1=b1,
        station_a=station_a, station_b=station_b, alice=alice, bob=bob,
    )


@pytest.fixture
def second_batch(session, world):
    """B2: 5 @ 1200, bought after B1."""
    return ledger.add_batch(session, world.laptop.id, Decimal("1200"), 5, date(2024, 3, 1), "B2")
