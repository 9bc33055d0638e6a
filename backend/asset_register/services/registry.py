"""
Master data helpers: assets, categories, stations, departments, employees.

Only what the allocation engine needs to have something to allocate to; the
full CRUD screens live in the transport layer.  ``audit_batches`` checks the
ledger invariant across every batch.
"""

from __future__ import annotations

import logging
from typing import Optional, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from asset_register.core.database import session_scope
from asset_register.core.errors import NotFound, ValidationError
from asset_register.models import (
    Asset,
    BatchAllocation,
    Category,
    Department,
    Employee,
    EmployeeAssignment,
    PurchaseBatch,
    Station,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SQLModel)


def get_or_raise(session: Session, model: type[M], ident, entity: str | None = None) -> M:
    """``session.get`` that raises :class:`NotFound` instead of returning None."""
    obj = session.get(model, ident) if ident is not None else None
    if obj is None:
        raise NotFound(entity or model.__tablename__, ident)
    return obj


def _required_name(value: str | None, field: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{field} is required", field=field)
    return name


# --------------------------------------------------------------------------- #
# create helpers                                                              #
# --------------------------------------------------------------------------- #
def create_category(session: Session, name: str) -> Category:
    with session_scope(session):
        cat = Category(name=_required_name(name, "name"))
        session.add(cat)
        session.flush()
    return cat


def create_asset(
    session: Session,
    asset_name: str,
    *,
    asset_number: Optional[str] = None,
    category_id: Optional[int] = None,
    units: Optional[str] = None,
    target_quantity: Optional[int] = None,
    remarks: Optional[str] = None,
) -> Asset:
    if target_quantity is not None and target_quantity < 0:
        raise ValidationError("target_quantity must be >= 0", field="target_quantity")
    with session_scope(session):
        if category_id is not None:
            get_or_raise(session, Category, category_id, "category")
        asset = Asset(
            asset_name=_required_name(asset_name, "asset_name"),
            asset_number=asset_number,
            category_id=category_id,
            units=units,
            target_quantity=target_quantity,
            remarks=remarks,
        )
        session.add(asset)
        session.flush()
        logger.info("create_asset: id=%s name=%s", asset.id, asset.asset_name)
    return asset


def create_department(session: Session, name: str, manager: Optional[str] = None) -> Department:
    with session_scope(session):
        dept = Department(name=_required_name(name, "name"), manager=manager)
        session.add(dept)
        session.flush()
    return dept


def create_station(
    session: Session,
    name: str,
    *,
    location: Optional[str] = None,
    manager: Optional[str] = None,
    department_id: Optional[int] = None,
) -> Station:
    with session_scope(session):
        if department_id is not None:
            get_or_raise(session, Department, department_id, "department")
        station = Station(
            name=_required_name(name, "name"),
            location=location,
            manager=manager,
            department_id=department_id,
        )
        session.add(station)
        session.flush()
    return station


def create_employee(session: Session, name: str, department_id: Optional[int] = None) -> Employee:
    with session_scope(session):
        if department_id is not None:
            get_or_raise(session, Department, department_id, "department")
        emp = Employee(name=_required_name(name, "name"), department_id=department_id)
        session.add(emp)
        session.flush()
    return emp


def list_assets(session: Session, category_id: Optional[int] = None) -> list[Asset]:
    stmt = select(Asset)
    if category_id is not None:
        stmt = stmt.where(Asset.category_id == category_id)
    return list(session.exec(stmt.order_by(Asset.id)).all())


# --------------------------------------------------------------------------- #
# ledger audit                                                                #
# --------------------------------------------------------------------------- #
def audit_batches(session: Session, asset_id: Optional[int] = None) -> list[dict]:
    """
    Return one entry per batch violating
    ``remaining_quantity + Σ(allocations) == quantity``.  Empty list = healthy.
    """
    station_q = (
        select(BatchAllocation.batch_id, func.sum(BatchAllocation.quantity))
        .group_by(BatchAllocation.batch_id)
    )
    employee_q = (
        select(EmployeeAssignment.batch_id, func.sum(EmployeeAssignment.quantity))
        .group_by(EmployeeAssignment.batch_id)
    )
    station_used = {bid: int(q or 0) for bid, q in session.exec(station_q).all()}
    employee_used = {bid: int(q or 0) for bid, q in session.exec(employee_q).all()}

    stmt = select(PurchaseBatch)
    if asset_id is not None:
        stmt = stmt.where(PurchaseBatch.asset_id == asset_id)

    problems: list[dict] = []
    for batch in session.exec(stmt.order_by(PurchaseBatch.id)).all():
        allocated = station_used.get(batch.id, 0) + employee_used.get(batch.id, 0)
        if batch.remaining_quantity + allocated != batch.quantity:
            problems.append({
                "batch_id": batch.id,
                "quantity": batch.quantity,
                "remaining_quantity": batch.remaining_quantity,
                "allocated": allocated,
            })
    if problems:
        logger.warning("audit_batches: %d batch(es) out of balance", len(problems))
    return problems
