"""
Batch-costed valuation.

Every value is ``quantity × purchase_price`` of the *batch the units came
from*; there is no asset-level average price, because batches of the same
asset may have been bought at different prices.

* ``asset_total_value``  – Σ batch.quantity × batch.purchase_price
* ``assigned_value``     – Σ row.quantity × row.batch.purchase_price per scope
* ``remaining_value``    – total − assigned (all scopes)
* ``flatten_allocations`` / ``allocation_frame`` – the one flattened
  projection of allocation rows used by every report
* ``grouped_value``      – Σ line value by station / employee / department /
  category / asset
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Optional

import pandas as pd
from sqlalchemy import func
from sqlmodel import Session, select

from asset_register.core.config import get_settings
from asset_register.core.errors import ValidationError
from asset_register.models import (
    Asset,
    BatchAllocation,
    Category,
    Department,
    Employee,
    EmployeeAssignment,
    PurchaseBatch,
    Station,
    StationAllocation,
)
from asset_register.services.registry import get_or_raise

logger = logging.getLogger(__name__)

SCOPES = ("station", "employee")
GROUP_KEYS = {
    "station": "station_id",
    "employee": "employee_id",
    "department": "department_id",
    "category": "category_id",
    "asset": "asset_id",
}


def _money(value) -> Decimal:
    places = get_settings().value_decimal_places
    if value is None:
        value = 0
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal(1).scaleb(-places))


# --------------------------------------------------------------------------- #
# totals                                                                      #
# --------------------------------------------------------------------------- #
def asset_total_value(session: Session, asset_id: int) -> Decimal:
    get_or_raise(session, Asset, asset_id, "asset")
    stmt = select(
        func.sum(PurchaseBatch.quantity * PurchaseBatch.purchase_price)
    ).where(PurchaseBatch.asset_id == asset_id)
    return _money(session.exec(stmt).one())


def _station_assigned(session: Session, asset_id: int) -> Decimal:
    stmt = (
        select(func.sum(BatchAllocation.quantity * PurchaseBatch.purchase_price))
        .select_from(BatchAllocation)
        .join(PurchaseBatch, PurchaseBatch.id == BatchAllocation.batch_id)
        .where(PurchaseBatch.asset_id == asset_id)
    )
    return _money(session.exec(stmt).one())


def _employee_assigned(session: Session, asset_id: int) -> Decimal:
    stmt = (
        select(func.sum(EmployeeAssignment.quantity * PurchaseBatch.purchase_price))
        .select_from(EmployeeAssignment)
        .join(PurchaseBatch, PurchaseBatch.id == EmployeeAssignment.batch_id)
        .where(PurchaseBatch.asset_id == asset_id)
    )
    return _money(session.exec(stmt).one())


def assigned_value(session: Session, asset_id: int, scope: Optional[str] = "*") -> Decimal:
    """
    Batch-costed value of the asset's allocation rows.

    scope: ``"station"``, ``"employee"`` or ``"*"`` / ``None`` for both.
    """
    get_or_raise(session, Asset, asset_id, "asset")
    if scope in (None, "*"):
        return _money(_station_assigned(session, asset_id) + _employee_assigned(session, asset_id))
    if scope not in SCOPES:
        raise ValidationError(f"unknown valuation scope {scope!r}", field="scope")
    if scope == "station":
        return _station_assigned(session, asset_id)
    return _employee_assigned(session, asset_id)


def remaining_value(session: Session, asset_id: int) -> Decimal:
    return _money(asset_total_value(session, asset_id) - assigned_value(session, asset_id, "*"))


def asset_valuation(session: Session, asset_id: int) -> dict:
    """Figures shown on an asset row: values and quantities, all scopes."""
    asset = get_or_raise(session, Asset, asset_id, "asset")
    total = asset_total_value(session, asset_id)
    station = assigned_value(session, asset_id, "station")
    employee = assigned_value(session, asset_id, "employee")
    qty_row = session.exec(
        select(
            func.coalesce(func.sum(PurchaseBatch.quantity), 0),
            func.coalesce(func.sum(PurchaseBatch.remaining_quantity), 0),
        ).where(PurchaseBatch.asset_id == asset_id)
    ).one()
    total_qty, remaining_qty = int(qty_row[0]), int(qty_row[1])
    return {
        "asset_id": asset.id,
        "asset_name": asset.asset_name,
        "total_value": total,
        "station_value": station,
        "employee_value": employee,
        "assigned_value": _money(station + employee),
        "remaining_value": _money(total - station - employee),
        "total_quantity": total_qty,
        "remaining_quantity": remaining_qty,
        "assigned_quantity": total_qty - remaining_qty,
    }


# --------------------------------------------------------------------------- #
# flattened projection                                                        #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class AllocationLine:
    kind: str
    allocation_id: int
    asset_id: int
    asset_name: str
    asset_number: Optional[str]
    category_id: Optional[int]
    category_name: Optional[str]
    batch_id: int
    batch_name: Optional[str]
    purchase_date: date
    unit_price: Decimal
    quantity: int
    value: Decimal
    destination_id: int
    destination_name: str
    station_id: Optional[int]
    employee_id: Optional[int]
    department_id: Optional[int]
    department_name: Optional[str]
    serial_number: Optional[str]
    barcode: Optional[str]
    assignment_date: Optional[date]


LINE_COLUMNS = [f.name for f in fields(AllocationLine)]


def flatten_allocations(
    session: Session,
    *,
    asset_id: Optional[int] = None,
    kind: Optional[str] = None,
    station_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    department_id: Optional[int] = None,
    category_id: Optional[int] = None,
) -> list[AllocationLine]:
    """
    Every allocation row (station batch allocations and employee assignments)
    as one flat line with its own batch price and value.
    """
    categories = {c.id: c.name for c in session.exec(select(Category)).all()}
    departments = {d.id: d.name for d in session.exec(select(Department)).all()}
    lines: list[AllocationLine] = []

    if kind in (None, "station"):
        stmt = (
            select(BatchAllocation, StationAllocation, PurchaseBatch, Asset, Station)
            .join(StationAllocation, StationAllocation.id == BatchAllocation.station_allocation_id)
            .join(PurchaseBatch, PurchaseBatch.id == BatchAllocation.batch_id)
            .join(Asset, Asset.id == PurchaseBatch.asset_id)
            .join(Station, Station.id == StationAllocation.station_id)
        )
        if asset_id is not None:
            stmt = stmt.where(Asset.id == asset_id)
        for ba, sa, batch, asset, station in session.exec(stmt.order_by(BatchAllocation.id)).all():
            lines.append(AllocationLine(
                kind="station",
                allocation_id=ba.id,
                asset_id=asset.id,
                asset_name=asset.asset_name,
                asset_number=asset.asset_number,
                category_id=asset.category_id,
                category_name=categories.get(asset.category_id),
                batch_id=batch.id,
                batch_name=batch.batch_name,
                purchase_date=batch.purchase_date,
                unit_price=batch.purchase_price,
                quantity=ba.quantity,
                value=_money(batch.purchase_price * ba.quantity),
                destination_id=station.id,
                destination_name=station.name,
                station_id=station.id,
                employee_id=None,
                department_id=station.department_id,
                department_name=departments.get(station.department_id),
                serial_number=ba.serial_number,
                barcode=ba.barcode,
                assignment_date=None,
            ))

    if kind in (None, "employee"):
        stmt = (
            select(EmployeeAssignment, PurchaseBatch, Asset, Employee)
            .join(PurchaseBatch, PurchaseBatch.id == EmployeeAssignment.batch_id)
            .join(Asset, Asset.id == PurchaseBatch.asset_id)
            .join(Employee, Employee.id == EmployeeAssignment.employee_id)
        )
        if asset_id is not None:
            stmt = stmt.where(Asset.id == asset_id)
        for ea, batch, asset, emp in session.exec(stmt.order_by(EmployeeAssignment.id)).all():
            lines.append(AllocationLine(
                kind="employee",
                allocation_id=ea.id,
                asset_id=asset.id,
                asset_name=asset.asset_name,
                asset_number=asset.asset_number,
                category_id=asset.category_id,
                category_name=categories.get(asset.category_id),
                batch_id=batch.id,
                batch_name=batch.batch_name,
                purchase_date=batch.purchase_date,
                unit_price=batch.purchase_price,
                quantity=ea.quantity,
                value=_money(batch.purchase_price * ea.quantity),
                destination_id=emp.id,
                destination_name=emp.name,
                station_id=None,
                employee_id=emp.id,
                department_id=emp.department_id,
                department_name=departments.get(emp.department_id),
                serial_number=ea.serial_number,
                barcode=ea.barcode,
                assignment_date=ea.assignment_date,
            ))

    def keep(line: AllocationLine) -> bool:
        return (
            (station_id is None or line.station_id == station_id)
            and (employee_id is None or line.employee_id == employee_id)
            and (department_id is None or line.department_id == department_id)
            and (category_id is None or line.category_id == category_id)
        )

    return [ln for ln in lines if keep(ln)]


def _decimal_sum(values) -> Decimal:
    return sum(values, Decimal("0"))


def allocation_frame(session: Session, **filters) -> pd.DataFrame:
    """
    :func:`flatten_allocations` as a DataFrame.  ``value`` and ``unit_price``
    stay :class:`~decimal.Decimal` (object dtype) so grouped sums are exact.
    """
    lines = flatten_allocations(session, **filters)
    return pd.DataFrame([asdict(ln) for ln in lines], columns=LINE_COLUMNS)


def grouped_value(session: Session, by: str, **filters) -> dict:
    """
    Σ batch-costed value per grouping key.

    ``by="department"`` composes department → employee → assignment (plus
    stations attached to a department).  ``by="category"`` reports assets
    without a category under the key ``None``.
    """
    col = GROUP_KEYS.get(by)
    if col is None:
        raise ValidationError(
            f"cannot group by {by!r}; expected one of {sorted(GROUP_KEYS)}", field="by"
        )
    df = allocation_frame(session, **filters)
    if df.empty:
        return {}

    result: dict = {}
    keyed = df.dropna(subset=[col])
    if not keyed.empty:
        sums = keyed.groupby(keyed[col].astype("int64"))["value"].agg(_decimal_sum)
        result = {int(k): _money(v) for k, v in sums.items()}
    if by == "category":
        loose = df[df[col].isna()]
        if not loose.empty:
            result[None] = _money(_decimal_sum(loose["value"]))
    logger.debug("grouped_value by=%s: %d group(s)", by, len(result))
    return result


def department_breakdown(session: Session, department_id: int) -> dict:
    """Department total composed from its employees' and stations' lines."""
    dept = get_or_raise(session, Department, department_id, "department")
    df = allocation_frame(session, department_id=department_id)
    employees: dict[int, Decimal] = {}
    stations: dict[int, Decimal] = {}
    if not df.empty:
        emp = df[df["kind"] == "employee"]
        if not emp.empty:
            sums = emp.groupby(emp["employee_id"].astype("int64"))["value"].agg(_decimal_sum)
            for k, v in sums.items():
                employees[int(k)] = _money(v)
        st = df[df["kind"] == "station"]
        if not st.empty:
            sums = st.groupby(st["station_id"].astype("int64"))["value"].agg(_decimal_sum)
            for k, v in sums.items():
                stations[int(k)] = _money(v)
    total = _money(sum(employees.values(), Decimal("0")) + sum(stations.values(), Decimal("0")))
    headcount = len(
        session.exec(select(Employee.id).where(Employee.department_id == department_id)).all()
    )
    return {
        "department_id": dept.id,
        "department_name": dept.name,
        "employee_count": headcount,
        "employees": employees,
        "stations": stations,
        "total_value": total,
    }
