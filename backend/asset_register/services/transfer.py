"""
Ownership changes that do not move stock.

Transferring assignments between employees only rewrites
``EmployeeAssignment.employee_id``; batch, serial number, quantity and
assignment date stay as they are and no ``PurchaseBatch`` row is written.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlmodel import Session, select

from asset_register.core.database import session_scope
from asset_register.core.errors import NotFound, SameEntityTransfer, ValidationError
from asset_register.models import Department, Employee, EmployeeAssignment
from asset_register.services.registry import get_or_raise

logger = logging.getLogger(__name__)


def _check_pair(session: Session, source_employee_id: int, target_employee_id: int) -> None:
    if source_employee_id == target_employee_id:
        raise SameEntityTransfer(source_employee_id)
    get_or_raise(session, Employee, source_employee_id, "employee")
    get_or_raise(session, Employee, target_employee_id, "employee")


def _reassign(session: Session, rows: list[EmployeeAssignment], target_employee_id: int) -> None:
    for row in rows:
        row.employee_id = target_employee_id
        session.add(row)
    session.flush()


def transfer_all(
    session: Session, source_employee_id: int, target_employee_id: int
) -> list[EmployeeAssignment]:
    """Move every assignment of the source employee to the target employee."""
    with session_scope(session):
        _check_pair(session, source_employee_id, target_employee_id)
        rows = list(
            session.exec(
                select(EmployeeAssignment)
                .where(EmployeeAssignment.employee_id == source_employee_id)
                .order_by(EmployeeAssignment.id)
            ).all()
        )
        _reassign(session, rows, target_employee_id)
        logger.info(
            "transfer_all: %d assignment(s) %s -> %s",
            len(rows), source_employee_id, target_employee_id,
        )
    return rows


def transfer_selected(
    session: Session,
    source_employee_id: int,
    target_employee_id: int,
    assignment_ids: Iterable[int],
) -> list[EmployeeAssignment]:
    """
    Move only *assignment_ids*.  Every id must be an assignment currently held
    by the source employee, otherwise NotFound and nothing moves.
    """
    try:
        assignment_ids = list(assignment_ids)
        if any(isinstance(i, bool) for i in assignment_ids):
            raise TypeError("bool is not an assignment id")
        ids = sorted({int(i) for i in assignment_ids})
    except (TypeError, ValueError):
        raise ValidationError(
            "assignment ids must be integers", field="assignment_ids"
        ) from None
    if not ids:
        raise ValidationError("select at least one assignment to transfer", field="assignment_ids")

    with session_scope(session):
        _check_pair(session, source_employee_id, target_employee_id)
        found = {
            r.id: r
            for r in session.exec(
                select(EmployeeAssignment).where(EmployeeAssignment.id.in_(ids))
            ).all()
        }
        for aid in ids:
            row = found.get(aid)
            if row is None or row.employee_id != source_employee_id:
                raise NotFound("employee assignment", aid)
        rows = [found[aid] for aid in ids]
        _reassign(session, rows, target_employee_id)
        logger.info(
            "transfer_selected: %s %s -> %s", ids, source_employee_id, target_employee_id
        )
    return rows


def transfer_department(
    session: Session, employee_id: int, department_id: Optional[int]
) -> Employee:
    """Move an employee (and with them their assignments) to another department."""
    with session_scope(session):
        employee = get_or_raise(session, Employee, employee_id, "employee")
        if department_id is not None:
            get_or_raise(session, Department, department_id, "department")
        previous = employee.department_id
        employee.department_id = department_id
        session.add(employee)
        session.flush()
        logger.info("transfer_department: employee=%s %s -> %s", employee_id, previous, department_id)
    return employee
