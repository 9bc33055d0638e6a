"""
Purchase batch ledger.

Batches are the source of truth for how many units of an asset were bought
and at what price.  Quantity is fixed at purchase; only price, date, name and
remarks may be corrected afterwards.  A batch can be deleted only while none
of it has been allocated.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from asset_register.core.database import session_scope
from asset_register.core.errors import (
    BatchInUse,
    BatchQuantityImmutable,
    NotFound,
    ValidationError,
)
from asset_register.models import Asset, PurchaseBatch
from asset_register.services.registry import get_or_raise

logger = logging.getLogger(__name__)


def _clean_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"invalid purchase price: {value!r}", field="purchase_price") from exc
    if not price.is_finite() or price < 0:
        raise ValidationError("purchase price must be >= 0", field="purchase_price")
    return price.quantize(Decimal("0.01"))


def _clean_quantity(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"quantity must be an integer, got {value!r}", field="quantity")
    if value <= 0:
        raise ValidationError("quantity must be at least 1", field="quantity")
    return value


def get_batch(session: Session, batch_id: int, *, for_update: bool = False) -> PurchaseBatch:
    """Load one batch; with *for_update* the row is locked until commit."""
    if not for_update:
        return get_or_raise(session, PurchaseBatch, batch_id, "batch")
    stmt = (
        select(PurchaseBatch)
        .where(PurchaseBatch.id == batch_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    batch = session.exec(stmt).first()
    if batch is None:
        raise NotFound("batch", batch_id)
    return batch


def lock_batches(session: Session, batch_ids) -> dict[int, PurchaseBatch]:
    """
    Lock the given batches (ascending id order, so concurrent writers always
    queue in the same order) and return them keyed by id.

    Raises NotFound for the lowest missing id.
    """
    ids = sorted({int(b) for b in batch_ids})
    if not ids:
        return {}
    stmt = (
        select(PurchaseBatch)
        .where(PurchaseBatch.id.in_(ids))
        .order_by(PurchaseBatch.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    found = {b.id: b for b in session.exec(stmt).all()}
    for bid in ids:
        if bid not in found:
            raise NotFound("batch", bid)
    return found


def adjust_remaining(session: Session, batch: PurchaseBatch, delta: int) -> bool:
    """
    Draw (*delta* > 0) or return (*delta* < 0) units of *batch* in one
    conditional UPDATE evaluated against the stored row, never against the
    in-memory value.  Returns False, leaving the row untouched, when the
    result would fall outside ``0 <= remaining_quantity <= quantity``.
    """
    if delta == 0:
        return True
    stmt = (
        update(PurchaseBatch)
        .where(PurchaseBatch.id == batch.id)
        .values(remaining_quantity=PurchaseBatch.remaining_quantity - delta)
    )
    if delta > 0:
        stmt = stmt.where(PurchaseBatch.remaining_quantity >= delta)
    else:
        stmt = stmt.where(PurchaseBatch.remaining_quantity - delta <= PurchaseBatch.quantity)

    session.flush()
    result = session.connection().execute(stmt)
    session.expire(batch, ["remaining_quantity"])
    return result.rowcount == 1


def add_batch(
    session: Session,
    asset_id: int,
    price: Any,
    quantity: int,
    purchase_date: Optional[date] = None,
    batch_name: Optional[str] = None,
    remarks: Optional[str] = None,
) -> PurchaseBatch:
    """Record a purchase.  ``remaining_quantity`` starts equal to ``quantity``."""
    price_d = _clean_price(price)
    qty = _clean_quantity(quantity)
    with session_scope(session):
        get_or_raise(session, Asset, asset_id, "asset")
        batch = PurchaseBatch(
            asset_id=asset_id,
            purchase_price=price_d,
            quantity=qty,
            remaining_quantity=qty,
            purchase_date=purchase_date or date.today(),
            batch_name=(batch_name or "").strip() or None,
            remarks=remarks or None,
        )
        session.add(batch)
        session.flush()
        logger.info(
            "add_batch: asset=%s batch=%s qty=%s price=%s", asset_id, batch.id, qty, price_d
        )
    return batch


def update_batch(
    session: Session,
    batch_id: int,
    *,
    price: Any = None,
    purchase_date: Optional[date] = None,
    batch_name: Optional[str] = None,
    remarks: Optional[str] = None,
    quantity: Optional[int] = None,
) -> PurchaseBatch:
    """
    Correct price / date / name / remarks of a batch.

    ``quantity`` is accepted only when it equals the stored value; anything
    else raises :class:`BatchQuantityImmutable`.
    """
    with session_scope(session):
        batch = get_batch(session, batch_id, for_update=True)
        if quantity is not None and quantity != batch.quantity:
            raise BatchQuantityImmutable(batch_id)
        if price is not None:
            batch.purchase_price = _clean_price(price)
        if purchase_date is not None:
            batch.purchase_date = purchase_date
        if batch_name is not None:
            batch.batch_name = batch_name.strip() or None
        if remarks is not None:
            batch.remarks = remarks or None
        session.add(batch)
        session.flush()
    return batch


def delete_batch(session: Session, batch_id: int) -> dict:
    """Delete an untouched batch; raises :class:`BatchInUse` otherwise."""
    with session_scope(session):
        batch = get_batch(session, batch_id, for_update=True)
        if not batch.is_untouched:
            raise BatchInUse(batch_id, batch.remaining_quantity, batch.quantity)
        result = {"batch_id": batch.id, "asset_id": batch.asset_id, "quantity": batch.quantity}
        session.delete(batch)
        logger.info("delete_batch: batch=%s asset=%s", batch_id, result["asset_id"])
    return result


def list_batches(session: Session, asset_id: int) -> list[PurchaseBatch]:
    """Batches of an asset, oldest purchase first."""
    get_or_raise(session, Asset, asset_id, "asset")
    stmt = (
        select(PurchaseBatch)
        .where(PurchaseBatch.asset_id == asset_id)
        .order_by(PurchaseBatch.purchase_date, PurchaseBatch.id)
    )
    return list(session.exec(stmt).all())


def batch_summary(session: Session, asset_id: int) -> dict:
    """Per-batch usage and value figures plus totals for one asset."""
    rows = []
    total_qty = total_remaining = 0
    total_value = remaining_value = Decimal("0")
    for b in list_batches(session, asset_id):
        value = b.purchase_price * b.quantity
        rem_value = b.purchase_price * b.remaining_quantity
        rows.append({
            "id": b.id,
            "batch_name": b.batch_name,
            "purchase_date": b.purchase_date,
            "purchase_price": b.purchase_price,
            "quantity": b.quantity,
            "remaining_quantity": b.remaining_quantity,
            "used": b.used_quantity,
            "total_value": value,
            "remaining_value": rem_value,
            "can_delete": b.is_untouched,
        })
        total_qty += b.quantity
        total_remaining += b.remaining_quantity
        total_value += value
        remaining_value += rem_value
    return {
        "asset_id": asset_id,
        "batches": rows,
        "total_quantity": total_qty,
        "total_remaining": total_remaining,
        "total_used": total_qty - total_remaining,
        "total_value": total_value,
        "remaining_value": remaining_value,
    }
