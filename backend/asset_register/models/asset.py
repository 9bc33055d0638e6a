from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class Category(SQLModel, table=True):
    __tablename__ = "category"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True, description="Category name")


class Asset(SQLModel, table=True):
    """An asset type.  Owned quantity and cost basis live in its batches."""

    __tablename__ = "asset"

    id: Optional[int] = Field(default=None, primary_key=True)
    asset_name: str = Field(index=True, description="Asset name")
    asset_number: Optional[str] = Field(default=None, index=True, description="Asset number / code")
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", index=True)
    units: Optional[str] = Field(default=None, description="Unit of measure")

    # Aggregate target for station allocations (None = not tracked)
    target_quantity: Optional[int] = Field(
        default=None, ge=0, description="Upper bound for the sum of station allocations"
    )
    remarks: Optional[str] = Field(default=None)
