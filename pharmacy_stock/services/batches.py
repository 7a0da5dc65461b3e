# FILE: pharmacy_stock/services/batches.py
from __future__ import annotations

import logging
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from pharmacy_stock.models.batch import Batch, BatchStatus
from pharmacy_stock.models.supplier import Supplier
from pharmacy_stock.services import batch_lifecycle
from pharmacy_stock.services.allocation import eligible_batches_query
from pharmacy_stock.services.errors import (
    DuplicateBatchNumberError,
    NotFoundError,
    ValidationError,
)
from pharmacy_stock.services.ledger import lock_product, lock_batch
from pharmacy_stock.utils.timezone import now_local

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _non_negative_money(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except Exception:
        raise ValidationError(f"{field} must be a number", field=field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", field=field, value=str(amount))
    return amount


def create_batch(
    db: Session,
    *,
    product_id: int,
    batch_number: str,
    expiration_date: date,
    initial_quantity: int,
    purchase_price: Decimal,
    sale_price: Decimal,
    supplier_id: Optional[int] = None,
    manufacturing_date: Optional[date] = None,
    location: Optional[str] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
    receipt_date: Optional[datetime] = None,
    as_of: date | datetime | None = None,
) -> Batch:
    """
    Receive a new lot and add its quantity to the product's stock.

    The stock increase is implicit: no movement row is written.
    """
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise ValidationError("batch_number is required", field="batch_number")
    if expiration_date is None:
        raise ValidationError("expiration_date is required", field="expiration_date")
    if (
        initial_quantity is None
        or isinstance(initial_quantity, bool)
        or int(initial_quantity) != initial_quantity
    ):
        raise ValidationError("initial_quantity must be an integer", field="initial_quantity")
    qty = int(initial_quantity)
    if qty < 0:
        raise ValidationError("initial_quantity must be >= 0", field="initial_quantity", value=qty)
    purchase = _non_negative_money(purchase_price, "purchase_price")
    sale = _non_negative_money(sale_price, "sale_price")
    if manufacturing_date is not None and expiration_date <= manufacturing_date:
        raise ValidationError(
            "expiration_date must be after manufacturing_date",
            expiration_date=expiration_date.isoformat(),
            manufacturing_date=manufacturing_date.isoformat(),
        )

    product = lock_product(db, product_id)
    if supplier_id is not None and db.get(Supplier, supplier_id) is None:
        raise NotFoundError("Supplier", supplier_id)

    # soft-deleted rows still hold the unique key
    exists = (
        db.query(Batch.id)
        .filter(Batch.product_id == product.id, Batch.batch_number == batch_number)
        .first()
    )
    if exists:
        raise DuplicateBatchNumberError(batch_number, product.id)

    batch = Batch(
        product_id=product.id,
        supplier_id=supplier_id,
        batch_number=batch_number,
        manufacturing_date=manufacturing_date,
        expiration_date=expiration_date,
        initial_quantity=qty,
        current_quantity=qty,
        purchase_price=purchase,
        sale_price=sale,
        location=location,
        invoice_number=invoice_number,
        notes=notes,
        receipt_date=receipt_date or now_local(),
        can_be_sold=True,
        status=BatchStatus.ACTIVE,
    )
    batch_lifecycle.recompute_status(batch, as_of, on_create=True)
    db.add(batch)

    product.stock = (product.stock or 0) + qty
    db.flush()
    logger.info(
        "Batch %s (%s) created for product %s: qty=%s status=%s",
        batch.id, batch_number, product.id, qty, batch.status.value,
    )
    return batch


def get_batch(db: Session, batch_id: int) -> Batch:
    batch = (
        db.query(Batch)
        .options(joinedload(Batch.product), joinedload(Batch.supplier))
        .filter(Batch.id == batch_id, Batch.deleted_at.is_(None))
        .first()
    )
    if not batch:
        raise NotFoundError("Batch", batch_id)
    return batch


def list_batches(
    db: Session,
    *,
    product_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    status: BatchStatus | str | None = None,
    can_be_sold: Optional[bool] = None,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 50), 1), 500)

    q = db.query(Batch).filter(Batch.deleted_at.is_(None))
    if product_id:
        q = q.filter(Batch.product_id == product_id)
    if supplier_id:
        q = q.filter(Batch.supplier_id == supplier_id)
    if status:
        try:
            q = q.filter(Batch.status == BatchStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown batch status: {status}", status=status)
    if can_be_sold is not None:
        q = q.filter(Batch.can_be_sold.is_(can_be_sold))

    total = q.count()
    rows = (
        q.options(joinedload(Batch.product), joinedload(Batch.supplier))
        .order_by(Batch.expiration_date.asc(), Batch.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def set_block(
    db: Session,
    batch_id: int,
    blocked: bool,
    reason: Optional[str] = None,
    as_of: date | datetime | None = None,
) -> Batch:
    batch = lock_batch(db, batch_id)
    if blocked and batch.status != BatchStatus.BLOCKED:
        batch_lifecycle.block_batch(batch, reason, as_of)
    elif not blocked and batch.status == BatchStatus.BLOCKED:
        batch_lifecycle.unblock_batch(batch, reason, as_of)
    db.flush()
    return batch


def toggle_batch_block(
    db: Session,
    batch_id: int,
    reason: Optional[str] = None,
    as_of: date | datetime | None = None,
) -> Batch:
    batch = lock_batch(db, batch_id)
    batch_lifecycle.toggle_block(batch, reason, as_of)
    db.flush()
    return batch


def update_batch(
    db: Session,
    batch_id: int,
    *,
    location: Any = _UNSET,
    notes: Any = _UNSET,
    status: BatchStatus | str | None = None,
    as_of: date | datetime | None = None,
) -> Batch:
    """
    Only descriptive fields are editable here. Quantities move through
    the ledger; status may only be switched between blocked and active.
    """
    batch = lock_batch(db, batch_id)
    if location is not _UNSET:
        batch.location = location
    if notes is not _UNSET:
        batch.notes = notes

    if status is not None:
        try:
            wanted = BatchStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown batch status: {status}", status=status)
        if wanted == BatchStatus.BLOCKED:
            if batch.status != BatchStatus.BLOCKED:
                batch_lifecycle.block_batch(batch, as_of=as_of)
        elif wanted == BatchStatus.ACTIVE:
            if batch.status == BatchStatus.BLOCKED:
                batch_lifecycle.unblock_batch(batch, as_of=as_of)
        else:
            raise ValidationError(
                "status can only be set to 'blocked' or 'active'",
                status=wanted.value,
            )

    db.flush()
    return batch


def delete_batch(db: Session, batch_id: int) -> None:
    """Soft delete. Only an empty batch can be removed."""
    batch = lock_batch(db, batch_id)
    if (batch.current_quantity or 0) > 0:
        raise ValidationError(
            f"Cannot delete a batch with stock. Current quantity: {batch.current_quantity}",
            batch_id=batch.id,
            current_quantity=batch.current_quantity,
        )
    batch.deleted_at = now_local()
    db.flush()
    logger.info("Batch %s soft-deleted", batch.id)


def available_batches(
    db: Session,
    product_id: int,
    *,
    as_of: date | datetime | None = None,
    include_near_expiry: bool = True,
) -> Dict[str, Any]:
    """Batches the FIFO allocator would draw from, in draw order."""
    rows: List[Batch] = eligible_batches_query(
        db, product_id, as_of=as_of, include_near_expiry=include_near_expiry
    ).all()
    return {
        "product_id": product_id,
        "available_batches": len(rows),
        "total_quantity": sum(b.current_quantity or 0 for b in rows),
        "batches": rows,
    }
