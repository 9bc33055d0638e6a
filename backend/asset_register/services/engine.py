"""
Engine boundary.

Callers hand in either a service function plus arguments (:func:`run`) or a
raw JSON-like payload (:func:`dispatch`) and always get an
:class:`EngineResult` back.  Business failures arrive as ``ok=False`` with a
structured ``error``; nothing raised inside the services escapes except
programming errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pydantic
from pydantic_core import to_jsonable_python
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel

from asset_register.core import database
from asset_register.core.errors import AllocationError, InfrastructureFailure, ValidationError
from asset_register.schemas.requests import (
    REQUEST_ADAPTER,
    AddBatchRequest,
    AllocateRequest,
    DeallocateRequest,
    DeleteBatchRequest,
    DepartmentTransferRequest,
    EditRequest,
    TransferRequest,
    UpdateBatchRequest,
)
from asset_register.services import allocation, ledger, transfer

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    ok: bool
    data: Any = None
    error: Optional[dict] = field(default=None)

    @classmethod
    def failure(cls, exc: AllocationError) -> "EngineResult":
        return cls(ok=False, error=exc.to_dict())

    def to_dict(self) -> dict:
        return {"ok": self.ok, "data": self.data, "error": self.error}


def _row_dict(obj: SQLModel) -> dict:
    # column by column: relationships / lazy attributes are never touched
    return {col.name: getattr(obj, col.name) for col in obj.__table__.columns}


def _serialize(value: Any) -> Any:
    if isinstance(value, SQLModel) and hasattr(value, "__table__"):
        value = _row_dict(value)
    elif isinstance(value, (list, tuple)):
        value = [_serialize(v) for v in value]
    elif isinstance(value, dict):
        value = {k: _serialize(v) for k, v in value.items()}
    return to_jsonable_python(value)


def run(fn: Callable[..., Any], *args, session: Optional[Session] = None, **kwargs) -> EngineResult:
    """
    Call ``fn(session, *args, **kwargs)`` and wrap the outcome.

    Without *session* a short-lived one is opened; the result is serialised
    before it closes so detached ORM objects are never returned.
    """
    if session is None:
        with Session(database.engine) as ses:
            return run(fn, *args, session=ses, **kwargs)

    try:
        data = _serialize(fn(session, *args, **kwargs))
    except AllocationError as exc:
        logger.info("%s rejected: %s %s", getattr(fn, "__name__", fn), exc.code, exc.message)
        return EngineResult.failure(exc)
    except SQLAlchemyError as exc:
        logger.exception("%s failed in storage", getattr(fn, "__name__", fn))
        first_line = (str(exc).splitlines() or [""])[0]
        return EngineResult.failure(
            InfrastructureFailure(
                f"storage failure ({exc.__class__.__name__})", detail=first_line
            )
        )
    return EngineResult(ok=True, data=data)


def _pydantic_failure(exc: pydantic.ValidationError) -> EngineResult:
    errors = [
        {
            "loc": ".".join(str(p) for p in err.get("loc", ())),
            "msg": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"loc": None, "msg": "invalid request"}
    return EngineResult.failure(
        ValidationError(first["msg"], field=first["loc"] or None, errors=errors)
    )


def dispatch(payload: Any, session: Optional[Session] = None) -> EngineResult:
    """Validate a raw request (dict or JSON string) and run the matching operation."""
    try:
        if isinstance(payload, (str, bytes)):
            req = REQUEST_ADAPTER.validate_json(payload)
        else:
            req = REQUEST_ADAPTER.validate_python(payload)
    except pydantic.ValidationError as exc:
        return _pydantic_failure(exc)

    if isinstance(req, AddBatchRequest):
        return run(
            ledger.add_batch, req.asset_id, req.purchase_price, req.quantity,
            req.purchase_date, req.batch_name, req.remarks, session=session,
        )
    if isinstance(req, UpdateBatchRequest):
        return run(
            ledger.update_batch, req.batch_id, session=session,
            price=req.purchase_price, purchase_date=req.purchase_date,
            batch_name=req.batch_name, remarks=req.remarks, quantity=req.quantity,
        )
    if isinstance(req, DeleteBatchRequest):
        return run(ledger.delete_batch, req.batch_id, session=session)
    if isinstance(req, AllocateRequest):
        return run(
            allocation.allocate, req.destination, req.batch_id, req.quantity, req.identity,
            session=session,
        )
    if isinstance(req, DeallocateRequest):
        return run(allocation.deallocate, req.allocation_id, req.kind, session=session)
    if isinstance(req, EditRequest):
        return run(allocation.apply_edited_set, req.draft, session=session)
    if isinstance(req, TransferRequest):
        if not req.assignment_ids:
            return run(
                transfer.transfer_all, req.source_employee_id, req.target_employee_id,
                session=session,
            )
        return run(
            transfer.transfer_selected, req.source_employee_id, req.target_employee_id,
            req.assignment_ids, session=session,
        )
    if isinstance(req, DepartmentTransferRequest):
        return run(transfer.transfer_department, req.employee_id, req.department_id, session=session)

    raise TypeError(f"unhandled request type {type(req).__name__}")
