"""
Two writers racing for the same batch on a file-backed SQLite database.

Each thread uses its own session (and connection); whichever commits first
wins, the other must see the committed remaining quantity and be refused.
"""
import threading
from types import SimpleNamespace

import pytest
from sqlmodel import Session, SQLModel

from asset_register.core.database import build_engine
from asset_register.core.errors import AllocationError
from asset_register.models import PurchaseBatch
from asset_register.schemas.requests import DraftAllocationSet, StationDestination
from asset_register.services import allocation, ledger, registry


@pytest.fixture
def file_db(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'register.db'}")
    SQLModel.metadata.create_all(eng)
    with Session(eng) as s:
        laptop = registry.create_asset(s, "Laptop")
        b1 = ledger.add_batch(s, laptop.id, "1000", 10, batch_name="B1")
        station_a = registry.create_station(s, "Station A")
        station_b = registry.create_station(s, "Station B")
        ids = SimpleNamespace(
            engine=eng, asset=laptop.id, b1=b1.id, stations=[station_a.id, station_b.id]
        )
    yield ids
    eng.dispose()


def _race(eng, work) -> list[str]:
    """Run *work(session, n)* in two threads released together."""
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def run(n):
        with Session(eng) as s:
            barrier.wait()
            try:
                work(s, n)
                result = "ok"
            except AllocationError as exc:
                result = exc.code
            except Exception as exc:  # surfaced through the assertion below
                result = repr(exc)
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=run, args=(n,)) for n in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return sorted(outcomes)


def _assert_ledger_balanced(eng, b1_id):
    with Session(eng) as s:
        assert s.get(PurchaseBatch, b1_id).remaining_quantity == 4
        assert registry.audit_batches(s) == []


def test_concurrent_allocate_cannot_overdraw(file_db):
    def work(s, n):
        dest = StationDestination(station_id=file_db.stations[n])
        allocation.allocate(s, dest, file_db.b1, 6)

    assert _race(file_db.engine, work) == ["ok", "over_allocation"]
    _assert_ledger_balanced(file_db.engine, file_db.b1)


def test_concurrent_edits_cannot_overdraw(file_db):
    def work(s, n):
        draft = DraftAllocationSet(
            asset_id=file_db.asset,
            kind="station",
            owner_id=file_db.stations[n],
            rows=[{"batch_id": file_db.b1, "quantity": 6}],
        )
        allocation.apply_edited_set(s, draft)

    assert _race(file_db.engine, work) == ["ok", "over_allocation"]
    _assert_ledger_balanced(file_db.engine, file_db.b1)
