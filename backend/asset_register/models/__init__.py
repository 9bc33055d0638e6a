"""
Aggregate export for all SQLModel table classes.

Having each model re-exported here guarantees that
`import asset_register.models` will register every table in
`SQLModel.metadata`, so Alembic can discover them
during `--autogenerate`.
"""

# --- Asset master ----------------------------------------------------------
from .asset import Asset, Category  # noqa: F401

# --- Destinations ----------------------------------------------------------
from .directory import Department, Employee, Station  # noqa: F401

# --- Purchase batches ------------------------------------------------------
from .batch import PurchaseBatch  # noqa: F401

# --- Allocations -----------------------------------------------------------
from .allocation import BatchAllocation, EmployeeAssignment, StationAllocation  # noqa: F401

__all__ = [
    "Asset",
    "Category",
    "Department",
    "Employee",
    "Station",
    "PurchaseBatch",
    "StationAllocation",
    "BatchAllocation",
    "EmployeeAssignment",
]
