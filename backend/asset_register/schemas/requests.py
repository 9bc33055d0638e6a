"""
Request DTOs accepted at the engine boundary.

Each operation has its own model; together they form a discriminated union
on ``op`` so a raw JSON body can be validated in one step::

    req = REQUEST_ADAPTER.validate_python({"op": "allocate", ...})
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

AllocationKind = Literal["station", "employee"]


def _blank_to_none(value):
    # HTML number inputs post "" for an untouched field
    if isinstance(value, str) and not value.strip():
        return None
    return value


# --------------------------------------------------------------------------- #
# Destinations / identity                                                     #
# --------------------------------------------------------------------------- #
class StationDestination(BaseModel):
    kind: Literal["station"] = "station"
    station_id: int


class EmployeeDestination(BaseModel):
    kind: Literal["employee"] = "employee"
    employee_id: int
    assignment_date: Optional[date] = None


Destination = Annotated[
    Union[StationDestination, EmployeeDestination], Field(discriminator="kind")
]


class UnitIdentity(BaseModel):
    serial_number: Optional[str] = None
    barcode: Optional[str] = None


# --------------------------------------------------------------------------- #
# Draft allocation set (edit dialog state)                                    #
# --------------------------------------------------------------------------- #
class DraftRow(BaseModel):
    """One row of an edit form.  Every field may still be empty."""

    model_config = ConfigDict(frozen=True)

    allocation_id: Optional[int] = Field(default=None, description="Existing row being edited")
    destination_id: Optional[int] = Field(default=None, description="Station or employee id")
    batch_id: Optional[int] = None
    quantity: Optional[int] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    assignment_date: Optional[date] = None

    @field_validator(
        "allocation_id", "destination_id", "batch_id", "quantity", "assignment_date",
        mode="before",
    )
    @classmethod
    def _empty_is_none(cls, v):
        return _blank_to_none(v)


class DraftAllocationSet(BaseModel):
    """
    The complete desired allocation set of one owner.

    * ``kind="station"`` + ``owner_id=None`` – every station allocation of the
      asset (the asset's station edit dialog)
    * ``kind="station"`` + ``owner_id=S`` – only station *S*'s rows of the asset
    * ``kind="employee"`` – same, for employee assignments

    ``rows`` is keyed by form row index; a plain list is accepted and indexed
    from 0.
    """

    asset_id: int
    kind: AllocationKind = "station"
    owner_id: Optional[int] = None
    rows: dict[int, DraftRow] = Field(default_factory=dict)

    @field_validator("rows", mode="before")
    @classmethod
    def _index_rows(cls, v):
        if isinstance(v, (list, tuple)):
            return {i: row for i, row in enumerate(v)}
        return v


# --------------------------------------------------------------------------- #
# Operation requests (discriminated on ``op``)                                #
# --------------------------------------------------------------------------- #
class AddBatchRequest(BaseModel):
    op: Literal["add_batch"] = "add_batch"
    asset_id: int
    purchase_price: Decimal = Field(ge=0)
    quantity: int = Field(gt=0)
    purchase_date: Optional[date] = None
    batch_name: Optional[str] = None
    remarks: Optional[str] = None


class UpdateBatchRequest(BaseModel):
    op: Literal["update_batch"] = "update_batch"
    batch_id: int
    purchase_price: Optional[Decimal] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    batch_name: Optional[str] = None
    remarks: Optional[str] = None
    # only accepted when unchanged; present so the ledger can reject edits
    quantity: Optional[int] = None


class DeleteBatchRequest(BaseModel):
    op: Literal["delete_batch"] = "delete_batch"
    batch_id: int


class AllocateRequest(BaseModel):
    op: Literal["allocate"] = "allocate"
    destination: Destination
    batch_id: int
    quantity: int = Field(gt=0)
    identity: Optional[UnitIdentity] = None


class DeallocateRequest(BaseModel):
    op: Literal["deallocate"] = "deallocate"
    allocation_id: int
    kind: AllocationKind = "station"


class EditRequest(BaseModel):
    op: Literal["edit"] = "edit"
    draft: DraftAllocationSet


class TransferRequest(BaseModel):
    op: Literal["transfer"] = "transfer"
    source_employee_id: int
    target_employee_id: int
    # empty list = transfer everything the source holds
    assignment_ids: list[int] = Field(default_factory=list)


class DepartmentTransferRequest(BaseModel):
    op: Literal["transfer_department"] = "transfer_department"
    employee_id: int
    department_id: Optional[int] = None


EngineRequest = Annotated[
    Union[
        AddBatchRequest,
        UpdateBatchRequest,
        DeleteBatchRequest,
        AllocateRequest,
        DeallocateRequest,
        EditRequest,
        TransferRequest,
        DepartmentTransferRequest,
    ],
    Field(discriminator="op"),
]

REQUEST_ADAPTER: TypeAdapter[EngineRequest] = TypeAdapter(EngineRequest)
