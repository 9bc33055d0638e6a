"""Allocation rows drawing quantity from purchase batches.

Two kinds of owner draw from a batch:

* stations, through ``StationAllocation`` (one per asset × station) composed
  of ``BatchAllocation`` rows, each drawing from a single batch
* employees, through ``EmployeeAssignment`` rows, each drawing from a single
  batch

For every batch: remaining_quantity + Σ(BatchAllocation.quantity)
+ Σ(EmployeeAssignment.quantity) == quantity.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel


class StationAllocation(SQLModel, table=True):
    """Aggregate holding of one asset at one station."""

    __tablename__ = "station_allocation"
    __table_args__ = (
        UniqueConstraint("asset_id", "station_id", name="uq_station_allocation_asset_station"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="asset.id", index=True)
    station_id: int = Field(foreign_key="station.id", index=True)
    quantity: int = Field(default=0, description="Σ of the batch allocation rows")


class BatchAllocation(SQLModel, table=True):
    __tablename__ = "batch_allocation"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_batch_allocation_quantity_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    station_allocation_id: int = Field(foreign_key="station_allocation.id", index=True)
    batch_id: int = Field(foreign_key="purchase_batch.id", index=True)
    quantity: int
    serial_number: Optional[str] = Field(default=None)
    barcode: Optional[str] = Field(default=None)


class EmployeeAssignment(SQLModel, table=True):
    __tablename__ = "employee_assignment"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_employee_assignment_quantity_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: int = Field(foreign_key="employee.id", index=True)
    batch_id: int = Field(foreign_key="purchase_batch.id", index=True)
    quantity: int = Field(default=1, description="Unit-level quantity (usually 1)")
    serial_number: Optional[str] = Field(default=None)
    barcode: Optional[str] = Field(default=None)
    assignment_date: date = Field(default_factory=date.today)
