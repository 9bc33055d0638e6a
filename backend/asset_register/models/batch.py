"""Purchase lots ("batches").

A batch is one purchase of an asset at a fixed unit price and date.  Its
``quantity`` never changes after creation; ``remaining_quantity`` is the part
not yet drawn by station batch allocations or employee assignments.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


class PurchaseBatch(SQLModel, table=True):
    __tablename__ = "purchase_batch"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_batch_quantity_positive"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_batch_remaining_bounds",
        ),
        CheckConstraint("purchase_price >= 0", name="ck_batch_price_non_negative"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="asset.id", index=True)

    # payload
    purchase_price: Decimal = Field(
        default=Decimal("0"), max_digits=14, decimal_places=2, description="Unit price"
    )
    quantity: int = Field(description="Purchased units (immutable)")
    remaining_quantity: int = Field(description="Units not allocated yet")
    purchase_date: date = Field(index=True, description="Purchase date")

    batch_name: Optional[str] = Field(default=None)
    remarks: Optional[str] = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), nullable=False
    )

    @property
    def used_quantity(self) -> int:
        return self.quantity - self.remaining_quantity

    @property
    def is_untouched(self) -> bool:
        return self.remaining_quantity == self.quantity
