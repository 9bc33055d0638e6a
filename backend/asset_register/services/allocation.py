"""
Allocation engine.

Draws batch quantity into station batch allocations and employee
assignments, and gives it back on removal.  Every public function is one
transaction: the batches it touches are locked first (``FOR UPDATE``,
ascending id), remaining quantity is re-checked under the lock, and the
whole change commits or none of it does.

Invariant kept for every batch::

    remaining_quantity + Σ(allocations drawn from it) == quantity
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Union

from sqlalchemy import func
from sqlmodel import Session, select

from asset_register.core.database import session_scope
from asset_register.core.errors import InfrastructureFailure, OverAllocation, ValidationError
from asset_register.models import (
    BatchAllocation,
    Employee,
    EmployeeAssignment,
    PurchaseBatch,
    Station,
    StationAllocation,
)
from asset_register.schemas.requests import (
    DraftAllocationSet,
    EmployeeDestination,
    StationDestination,
    UnitIdentity,
)
from asset_register.services.ledger import adjust_remaining, lock_batches
from asset_register.services.reconciliation import (
    ExistingRow,
    ReconciliationPlan,
    load_owner_rows,
    validate_edit,
)
from asset_register.services.registry import get_or_raise

logger = logging.getLogger(__name__)

AllocationRow = Union[BatchAllocation, EmployeeAssignment]


# --------------------------------------------------------------------------- #
# batch accounting                                                            #
# --------------------------------------------------------------------------- #
def _consume(session: Session, batch: PurchaseBatch, qty: int, held: int = 0) -> None:
    """
    Draw *qty* units.  *held* is what the caller already holds from the batch
    (an edit growing its own rows), reported as part of the true limit.
    """
    if not adjust_remaining(session, batch, qty):
        session.refresh(batch)
        raise OverAllocation(batch.id, batch.remaining_quantity + held, qty + held)


def _release(session: Session, batch: PurchaseBatch, qty: int) -> None:
    if not adjust_remaining(session, batch, -qty):
        # more returned than was ever drawn: the ledger is out of balance
        session.refresh(batch)
        raise InfrastructureFailure(
            f"batch {batch.id} would exceed its purchased quantity",
            batch_id=batch.id,
            remaining_quantity=batch.remaining_quantity,
            returned=qty,
            quantity=batch.quantity,
        )


# --------------------------------------------------------------------------- #
# station allocation aggregates                                               #
# --------------------------------------------------------------------------- #
def _station_allocation(session: Session, asset_id: int, station_id: int) -> StationAllocation:
    """Get or create the (asset, station) aggregate row."""
    stmt = select(StationAllocation).where(
        StationAllocation.asset_id == asset_id,
        StationAllocation.station_id == station_id,
    )
    sa = session.exec(stmt).first()
    if sa is None:
        sa = StationAllocation(asset_id=asset_id, station_id=station_id, quantity=0)
        session.add(sa)
        session.flush()
    return sa


def _resync_station_allocations(session: Session, ids) -> None:
    """Recompute aggregate quantities; drop aggregates left without rows."""
    session.flush()
    for sa_id in sorted(set(ids)):
        sa = session.get(StationAllocation, sa_id)
        if sa is None:
            continue
        total = session.exec(
            select(func.coalesce(func.sum(BatchAllocation.quantity), 0)).where(
                BatchAllocation.station_allocation_id == sa_id
            )
        ).one()
        total = int(total or 0)
        if total <= 0:
            session.delete(sa)
        else:
            sa.quantity = total
            session.add(sa)
    session.flush()


# --------------------------------------------------------------------------- #
# single-row operations                                                       #
# --------------------------------------------------------------------------- #
def allocate(
    session: Session,
    destination: Union[StationDestination, EmployeeDestination],
    batch_id: int,
    quantity: int,
    identity: Optional[UnitIdentity] = None,
) -> AllocationRow:
    """
    Draw *quantity* units of *batch_id* for *destination*.

    Raises OverAllocation when the batch has fewer than *quantity* units left.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", field="quantity")
    identity = identity or UnitIdentity()

    with session_scope(session):
        if isinstance(destination, StationDestination):
            get_or_raise(session, Station, destination.station_id, "station")
        elif isinstance(destination, EmployeeDestination):
            get_or_raise(session, Employee, destination.employee_id, "employee")
        else:
            raise ValidationError("destination required", field="destination")

        batch = lock_batches(session, [batch_id])[batch_id]
        _consume(session, batch, quantity)

        if isinstance(destination, StationDestination):
            sa = _station_allocation(session, batch.asset_id, destination.station_id)
            row: AllocationRow = BatchAllocation(
                station_allocation_id=sa.id,
                batch_id=batch.id,
                quantity=quantity,
                serial_number=identity.serial_number,
                barcode=identity.barcode,
            )
            session.add(row)
            _resync_station_allocations(session, [sa.id])
        else:
            row = EmployeeAssignment(
                employee_id=destination.employee_id,
                batch_id=batch.id,
                quantity=quantity,
                serial_number=identity.serial_number,
                barcode=identity.barcode,
                assignment_date=destination.assignment_date or date.today(),
            )
            session.add(row)
        session.flush()
        logger.info(
            "allocate: %s=%s batch=%s qty=%s remaining=%s",
            destination.kind,
            getattr(destination, "station_id", None) or getattr(destination, "employee_id", None),
            batch.id, quantity, batch.remaining_quantity,
        )
    return row


def deallocate(session: Session, allocation_id: int, kind: str = "station") -> dict:
    """Remove one allocation row and return its units to the batch."""
    model = BatchAllocation if kind == "station" else EmployeeAssignment
    if kind not in ("station", "employee"):
        raise ValidationError(f"unknown allocation kind {kind!r}", field="kind")

    with session_scope(session):
        row = get_or_raise(session, model, allocation_id, f"{kind} allocation")
        batch = lock_batches(session, [row.batch_id])[row.batch_id]
        _release(session, batch, row.quantity)
        result = {
            "allocation_id": row.id,
            "kind": kind,
            "batch_id": batch.id,
            "released": row.quantity,
            "remaining_quantity": batch.remaining_quantity,
        }
        sa_id = getattr(row, "station_allocation_id", None)
        session.delete(row)
        if sa_id is not None:
            _resync_station_allocations(session, [sa_id])
        logger.info("deallocate: %s allocation=%s batch=%s released=%s", kind, allocation_id, batch.id, result["released"])
    return result


# --------------------------------------------------------------------------- #
# edited set                                                                  #
# --------------------------------------------------------------------------- #
def _apply_station_plan(session: Session, plan: ReconciliationPlan) -> None:
    touched: set[int] = set()

    for before in plan.removed:
        ba = session.get(BatchAllocation, before.allocation_id)
        touched.add(ba.station_allocation_id)
        session.delete(ba)

    for change in plan.changed:
        ba = session.get(BatchAllocation, change.before.allocation_id)
        after = change.after
        touched.add(ba.station_allocation_id)
        if after.destination_id != change.before.destination_id:
            sa = _station_allocation(session, plan.asset_id, after.destination_id)
            ba.station_allocation_id = sa.id
            touched.add(sa.id)
        ba.batch_id = after.batch_id
        ba.quantity = after.quantity
        ba.serial_number = after.serial_number
        ba.barcode = after.barcode
        session.add(ba)

    for after in plan.added:
        sa = _station_allocation(session, plan.asset_id, after.destination_id)
        touched.add(sa.id)
        session.add(
            BatchAllocation(
                station_allocation_id=sa.id,
                batch_id=after.batch_id,
                quantity=after.quantity,
                serial_number=after.serial_number,
                barcode=after.barcode,
            )
        )

    _resync_station_allocations(session, touched)


def _apply_employee_plan(session: Session, plan: ReconciliationPlan) -> None:
    for before in plan.removed:
        session.delete(session.get(EmployeeAssignment, before.allocation_id))

    for change in plan.changed:
        ea = session.get(EmployeeAssignment, change.before.allocation_id)
        after = change.after
        ea.employee_id = after.destination_id
        ea.batch_id = after.batch_id
        ea.quantity = after.quantity
        ea.serial_number = after.serial_number
        ea.barcode = after.barcode
        if after.assignment_date is not None:
            ea.assignment_date = after.assignment_date
        session.add(ea)

    for after in plan.added:
        session.add(
            EmployeeAssignment(
                employee_id=after.destination_id,
                batch_id=after.batch_id,
                quantity=after.quantity,
                serial_number=after.serial_number,
                barcode=after.barcode,
                assignment_date=after.assignment_date or date.today(),
            )
        )
    session.flush()


def _apply_batch_accounting(session: Session, plan: ReconciliationPlan) -> None:
    # net change per batch; returns first so a move between batches never
    # depends on the order rows were edited in
    deltas = plan.batch_deltas()
    for bid in sorted(b for b, d in deltas.items() if d < 0):
        _release(session, plan.batches[bid], -deltas[bid])
    for bid in sorted(b for b, d in deltas.items() if d > 0):
        _consume(session, plan.batches[bid], deltas[bid], held=plan.original_usage.get(bid, 0))


def apply_edited_set(session: Session, draft: DraftAllocationSet) -> list[ExistingRow]:
    """
    Replace an owner's allocation rows with *draft*.

    Validation (true limits, row policy, target quantity) is delegated to
    :func:`reconciliation.validate_edit`; the accepted diff is then written
    in a single transaction.  Returns the owner's rows after the edit.
    """
    with session_scope(session):
        plan = validate_edit(session, draft, lock=True)
        if plan.is_noop:
            logger.info("apply_edited_set: nothing to change (%s)", plan.summary())
            return load_owner_rows(session, draft.asset_id, draft.kind, draft.owner_id)

        _apply_batch_accounting(session, plan)
        if plan.kind == "station":
            _apply_station_plan(session, plan)
        else:
            _apply_employee_plan(session, plan)

        logger.info(
            "apply_edited_set: asset=%s kind=%s owner=%s added=%d changed=%d removed=%d",
            plan.asset_id, plan.kind, plan.owner_id,
            len(plan.added), len(plan.changed), len(plan.removed),
        )
        rows = load_owner_rows(session, draft.asset_id, draft.kind, draft.owner_id)
    return rows
