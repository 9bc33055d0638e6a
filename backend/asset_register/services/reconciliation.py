"""
Validation of a resubmitted allocation set.

An edit form posts the *entire* desired set of rows for one owner.  Checking
each row against ``batch.remaining_quantity`` alone would reject edits that
merely keep or shrink the owner's own holdings, because remaining quantity
already excludes them.  Instead every batch is checked against

    trueLimit[b] = remaining_quantity[b] + originalUsage[b]

where ``originalUsage[b]`` is what the owner held from batch *b* before the
edit.  The validator only reads: it returns a :class:`ReconciliationPlan`
(limits + row diff) that ``allocation.apply_edited_set`` writes in one
transaction.

Row policy
----------
* destination set, batch missing      -> ValidationError("batch required")
* batch set, quantity empty or 0      -> row dropped (not requested)
* nothing set                         -> row dropped (blank form row)
* negative quantity                   -> ValidationError
* batch + quantity, no destination    -> ValidationError("destination required")
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from asset_register.core.errors import NotFound, OverAllocation, ValidationError
from asset_register.models import (
    Asset,
    BatchAllocation,
    Employee,
    EmployeeAssignment,
    PurchaseBatch,
    Station,
    StationAllocation,
)
from asset_register.schemas.requests import DraftAllocationSet
from asset_register.services.ledger import lock_batches
from asset_register.services.registry import get_or_raise

logger = logging.getLogger(__name__)


# -------------------------------
# Plan dataclasses
# -------------------------------
@dataclass(frozen=True)
class ExistingRow:
    """An allocation row as stored before the edit."""

    allocation_id: int
    destination_id: int
    batch_id: int
    quantity: int
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    assignment_date: Optional[date] = None


@dataclass(frozen=True)
class ProposedRow:
    """A draft row that survived the row policy."""

    index: int
    destination_id: int
    batch_id: int
    quantity: int
    allocation_id: Optional[int] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    assignment_date: Optional[date] = None


@dataclass(frozen=True)
class RowChange:
    before: ExistingRow
    after: ProposedRow


@dataclass
class ReconciliationPlan:
    asset_id: int
    kind: str
    owner_id: Optional[int]
    original_usage: dict[int, int] = field(default_factory=dict)
    true_limit: dict[int, int] = field(default_factory=dict)
    requested: dict[int, int] = field(default_factory=dict)
    added: list[ProposedRow] = field(default_factory=list)
    changed: list[RowChange] = field(default_factory=list)
    removed: list[ExistingRow] = field(default_factory=list)
    unchanged: list[ExistingRow] = field(default_factory=list)
    dropped_rows: list[int] = field(default_factory=list)
    # batches loaded (and locked when requested) during validation
    batches: dict[int, PurchaseBatch] = field(default_factory=dict, repr=False)

    @property
    def is_noop(self) -> bool:
        return not (self.added or self.changed or self.removed)

    def batch_deltas(self) -> dict[int, int]:
        """Net units each batch loses (+) or regains (-) when the plan is applied."""
        deltas: dict[int, int] = defaultdict(int)
        for bid in set(self.original_usage) | set(self.requested):
            d = self.requested.get(bid, 0) - self.original_usage.get(bid, 0)
            if d:
                deltas[bid] = d
        return dict(deltas)

    def summary(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "kind": self.kind,
            "owner_id": self.owner_id,
            "added": len(self.added),
            "changed": len(self.changed),
            "removed": len(self.removed),
            "unchanged": len(self.unchanged),
            "dropped_rows": list(self.dropped_rows),
            "true_limit": dict(self.true_limit),
            "requested": dict(self.requested),
        }


# -------------------------------
# Loading the owner's current rows
# -------------------------------
def load_owner_rows(
    session: Session, asset_id: int, kind: str, owner_id: Optional[int] = None
) -> list[ExistingRow]:
    """Current rows of one owner for one asset, in allocation id order."""
    if kind == "station":
        stmt = (
            select(BatchAllocation, StationAllocation.station_id)
            .join(StationAllocation, StationAllocation.id == BatchAllocation.station_allocation_id)
            .where(StationAllocation.asset_id == asset_id)
        )
        if owner_id is not None:
            stmt = stmt.where(StationAllocation.station_id == owner_id)
        stmt = stmt.order_by(BatchAllocation.id)
        return [
            ExistingRow(
                allocation_id=ba.id,
                destination_id=station_id,
                batch_id=ba.batch_id,
                quantity=ba.quantity,
                serial_number=ba.serial_number,
                barcode=ba.barcode,
            )
            for ba, station_id in session.exec(stmt).all()
        ]

    if kind == "employee":
        stmt = (
            select(EmployeeAssignment)
            .join(PurchaseBatch, PurchaseBatch.id == EmployeeAssignment.batch_id)
            .where(PurchaseBatch.asset_id == asset_id)
        )
        if owner_id is not None:
            stmt = stmt.where(EmployeeAssignment.employee_id == owner_id)
        stmt = stmt.order_by(EmployeeAssignment.id)
        return [
            ExistingRow(
                allocation_id=ea.id,
                destination_id=ea.employee_id,
                batch_id=ea.batch_id,
                quantity=ea.quantity,
                serial_number=ea.serial_number,
                barcode=ea.barcode,
                assignment_date=ea.assignment_date,
            )
            for ea in session.exec(stmt).all()
        ]

    raise ValidationError(f"unknown allocation kind {kind!r}", field="kind")


def _usage_by_batch(rows: Iterable) -> dict[int, int]:
    usage: dict[int, int] = defaultdict(int)
    for r in rows:
        usage[r.batch_id] += r.quantity
    return dict(usage)


def _station_usage_outside(session: Session, asset_id: int, owner_id: Optional[int]) -> int:
    """Station units of *asset_id* held outside the edited scope."""
    if owner_id is None:
        return 0
    stmt = (
        select(func.coalesce(func.sum(BatchAllocation.quantity), 0))
        .select_from(BatchAllocation)
        .join(StationAllocation, StationAllocation.id == BatchAllocation.station_allocation_id)
        .where(StationAllocation.asset_id == asset_id)
        .where(StationAllocation.station_id != owner_id)
    )
    return int(session.exec(stmt).one() or 0)


# -------------------------------
# Row policy
# -------------------------------
def _accept_rows(draft: DraftAllocationSet, existing_ids: set[int]) -> tuple[list[ProposedRow], list[int]]:
    accepted: list[ProposedRow] = []
    dropped: list[int] = []
    seen_ids: set[int] = set()

    for idx in sorted(draft.rows):
        row = draft.rows[idx]
        where = f"rows[{idx}]"

        if row.batch_id is None:
            if row.destination_id is not None:
                raise ValidationError("batch required", field=f"{where}.batch_id", row=idx)
            if row.quantity:
                raise ValidationError("batch required", field=f"{where}.batch_id", row=idx)
            dropped.append(idx)
            continue

        qty = row.quantity
        if qty is not None and qty < 0:
            raise ValidationError("quantity must be >= 0", field=f"{where}.quantity", row=idx)
        if not qty:
            # a batch was picked but nothing requested from it
            dropped.append(idx)
            continue

        destination = row.destination_id if row.destination_id is not None else draft.owner_id
        if destination is None:
            raise ValidationError("destination required", field=f"{where}.destination_id", row=idx)
        if draft.owner_id is not None and destination != draft.owner_id:
            raise ValidationError(
                f"row destination {destination} is outside the edited {draft.kind} {draft.owner_id}",
                field=f"{where}.destination_id",
                row=idx,
            )

        if row.allocation_id is not None:
            if row.allocation_id not in existing_ids:
                raise NotFound(f"{draft.kind} allocation", row.allocation_id)
            if row.allocation_id in seen_ids:
                raise ValidationError(
                    f"allocation {row.allocation_id} appears in more than one row",
                    field=f"{where}.allocation_id",
                    row=idx,
                )
            seen_ids.add(row.allocation_id)

        accepted.append(
            ProposedRow(
                index=idx,
                destination_id=destination,
                batch_id=row.batch_id,
                quantity=qty,
                allocation_id=row.allocation_id,
                serial_number=row.serial_number,
                barcode=row.barcode,
                assignment_date=row.assignment_date,
            )
        )
    return accepted, dropped


def _same_row(before: ExistingRow, after: ProposedRow) -> bool:
    return (
        before.destination_id == after.destination_id
        and before.batch_id == after.batch_id
        and before.quantity == after.quantity
        and before.serial_number == after.serial_number
        and before.barcode == after.barcode
        and (after.assignment_date is None or after.assignment_date == before.assignment_date)
    )


def _check_destinations(session: Session, kind: str, ids: set[int]) -> None:
    model, label = (Station, "station") if kind == "station" else (Employee, "employee")
    for dest in sorted(ids):
        get_or_raise(session, model, dest, label)


# -------------------------------
# Public API
# -------------------------------
def validate_edit(
    session: Session, draft: DraftAllocationSet, *, lock: bool = False
) -> ReconciliationPlan:
    """
    Validate *draft* against the owner's current rows and return the plan.

    With ``lock=True`` every referenced batch is loaded ``FOR UPDATE`` so the
    limits cannot go stale before the caller applies the plan in the same
    transaction.
    """
    asset = get_or_raise(session, Asset, draft.asset_id, "asset")
    if draft.kind not in ("station", "employee"):
        raise ValidationError(f"unknown allocation kind {draft.kind!r}", field="kind")
    if draft.owner_id is not None:
        _check_destinations(session, draft.kind, {draft.owner_id})

    existing = load_owner_rows(session, asset.id, draft.kind, draft.owner_id)
    existing_by_id = {r.allocation_id: r for r in existing}

    proposed, dropped = _accept_rows(draft, set(existing_by_id))
    _check_destinations(session, draft.kind, {r.destination_id for r in proposed})

    # -- batches: load (and lock) everything the edit can touch ------------
    batch_ids = {r.batch_id for r in proposed} | {r.batch_id for r in existing}
    if lock:
        batches = lock_batches(session, batch_ids)
    else:
        batches = {bid: get_or_raise(session, PurchaseBatch, bid, "batch") for bid in sorted(batch_ids)}
    for r in proposed:
        if batches[r.batch_id].asset_id != asset.id:
            raise ValidationError(
                f"batch {r.batch_id} does not belong to asset {asset.id}",
                field=f"rows[{r.index}].batch_id",
                row=r.index,
            )

    # -- limits --------------------------------------------------------------
    original_usage = _usage_by_batch(existing)
    requested = _usage_by_batch(proposed)
    true_limit = {
        bid: batches[bid].remaining_quantity + original_usage.get(bid, 0)
        for bid in requested
    }
    for bid in sorted(requested):
        if requested[bid] > true_limit[bid]:
            logger.info(
                "validate_edit: over-allocation asset=%s batch=%s limit=%s requested=%s",
                asset.id, bid, true_limit[bid], requested[bid],
            )
            raise OverAllocation(bid, true_limit[bid], requested[bid])

    if draft.kind == "station" and asset.target_quantity is not None:
        total = sum(requested.values()) + _station_usage_outside(session, asset.id, draft.owner_id)
        if total > asset.target_quantity:
            raise ValidationError(
                "assigned quantity exceeds available stock",
                field="rows",
                target_quantity=asset.target_quantity,
                requested_total=total,
            )

    # -- diff ----------------------------------------------------------------
    plan = ReconciliationPlan(
        asset_id=asset.id,
        kind=draft.kind,
        owner_id=draft.owner_id,
        original_usage=original_usage,
        true_limit=true_limit,
        requested=requested,
        dropped_rows=dropped,
        batches=batches,
    )
    matched: set[int] = set()
    for r in proposed:
        if r.allocation_id is None:
            plan.added.append(r)
            continue
        before = existing_by_id[r.allocation_id]
        matched.add(r.allocation_id)
        if _same_row(before, r):
            plan.unchanged.append(before)
        else:
            plan.changed.append(RowChange(before=before, after=r))
    plan.removed = [r for r in existing if r.allocation_id not in matched]

    logger.debug("validate_edit: %s", plan.summary())
    return plan
