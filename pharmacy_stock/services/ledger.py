# FILE: pharmacy_stock/services/ledger.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, asdict
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from pharmacy_stock.models.product import Product
from pharmacy_stock.models.batch import Batch
from pharmacy_stock.models.inventory_movement import (
    InventoryMovement,
    MovementType,
    ReferenceType,
    INBOUND_TYPES,
)
from pharmacy_stock.services.batch_lifecycle import recompute_status
from pharmacy_stock.services.errors import (
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    AlreadyApprovedError,
)
from pharmacy_stock.utils.timezone import now_local

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _money(v) -> Decimal:
    return Decimal(str(v)).quantize(CENT, rounding=ROUND_HALF_UP)


def positive_quantity(value: Any, field: str = "quantity") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if qty != value and not isinstance(value, str):
        raise ValidationError(f"{field} must be a whole number", field=field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0", field=field, value=qty)
    return qty


def coerce_movement_type(value: MovementType | str) -> MovementType:
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType(str(value))
    except ValueError:
        raise ValidationError(f"Unknown movement type: {value}", movement_type=value)


def _coerce_reference_type(value: ReferenceType | str | None) -> Optional[ReferenceType]:
    if value is None or isinstance(value, ReferenceType):
        return value
    try:
        return ReferenceType(str(value))
    except ValueError:
        raise ValidationError(f"Unknown reference type: {value}", reference_type=value)


def signed_quantity(movement_type: MovementType, quantity: int) -> int:
    """Inbound types add stock, every other type removes it."""
    qty = abs(int(quantity))
    return qty if movement_type in INBOUND_TYPES else -qty


def lock_product(db: Session, product_id: int) -> Product:
    product = (
        db.query(Product)
        .filter(Product.id == product_id)
        .with_for_update()
        .first()
    )
    if not product:
        raise NotFoundError("Product", product_id)
    return product


def lock_batch(db: Session, batch_id: int) -> Batch:
    batch = (
        db.query(Batch)
        .filter(Batch.id == batch_id, Batch.deleted_at.is_(None))
        .with_for_update()
        .first()
    )
    if not batch:
        raise NotFoundError("Batch", batch_id)
    return batch


def check_batch_delta(batch: Batch, delta: int) -> int:
    """
    Validate `current_quantity + delta` against 0..initial_quantity
    without touching the batch. Returns the new quantity.
    """
    current = batch.current_quantity or 0
    new_qty = current + delta
    if new_qty < 0:
        raise InsufficientStockError(
            product_id=batch.product_id,
            batch_id=batch.id,
            available=current,
            requested=abs(delta),
            message=f"Insufficient quantity in batch {batch.batch_number}. "
                    f"Available {current}, requested {abs(delta)}.",
        )
    if new_qty > (batch.initial_quantity or 0):
        raise ValidationError(
            f"Batch {batch.batch_number} cannot exceed its initial quantity "
            f"({batch.initial_quantity}).",
            batch_id=batch.id,
            initial_quantity=batch.initial_quantity,
            resulting_quantity=new_qty,
        )
    return new_qty


def apply_batch_delta(batch: Batch, delta: int, as_of=None) -> None:
    batch.current_quantity = check_batch_delta(batch, delta)
    recompute_status(batch, as_of)


# ---------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------
def record_movement(
    db: Session,
    *,
    product_id: int,
    movement_type: MovementType | str,
    quantity: int,
    actor_id: int,
    batch_id: Optional[int] = None,
    unit_cost: Optional[Decimal] = None,
    reference_type: ReferenceType | str | None = None,
    reference_id: Optional[int] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
    location: Optional[str] = None,
    movement_date: Optional[datetime] = None,
    as_of: date | datetime | None = None,
) -> InventoryMovement:
    """
    Record one signed stock change and apply it to Product.stock (and
    the batch, when given) in the caller's transaction.

    Product and batch rows are locked FOR UPDATE so previous_stock is
    read and written by a single writer per product. All checks run
    before anything is mutated.
    """
    qty = positive_quantity(quantity)
    mtype = coerce_movement_type(movement_type)
    rtype = _coerce_reference_type(reference_type)
    if unit_cost is not None and Decimal(str(unit_cost)) < 0:
        raise ValidationError("unit_cost must be >= 0", unit_cost=str(unit_cost))

    product = lock_product(db, product_id)
    batch: Optional[Batch] = None
    if batch_id is not None:
        batch = lock_batch(db, batch_id)
        if batch.product_id != product.id:
            raise ValidationError(
                "Batch does not belong to this product.",
                batch_id=batch.id,
                product_id=product.id,
            )

    delta = signed_quantity(mtype, qty)
    previous_stock = product.stock or 0
    new_stock = previous_stock + delta
    if new_stock < 0:
        logger.warning(
            "Rejected %s of %s for product %s: stock %s",
            mtype.value, qty, product.id, previous_stock,
        )
        raise InsufficientStockError(
            product_id=product.id,
            available=previous_stock,
            requested=qty,
        )
    if batch is not None:
        check_batch_delta(batch, delta)

    movement = InventoryMovement(
        product_id=product.id,
        batch_id=batch.id if batch else None,
        movement_type=mtype,
        quantity=delta,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_cost=_money(unit_cost) if unit_cost is not None else None,
        total_value=_money(Decimal(str(unit_cost)) * qty) if unit_cost is not None else None,
        reference_type=rtype,
        reference_id=reference_id,
        reference_number=reference_number,
        notes=notes,
        location=location,
        user_id=actor_id,
        approved=False,
        movement_date=movement_date or now_local(),
    )
    db.add(movement)

    product.stock = new_stock
    if batch is not None:
        apply_batch_delta(batch, delta, as_of)

    db.flush()
    logger.info(
        "Movement %s recorded: %s %+d product=%s batch=%s stock %s->%s",
        movement.id, mtype.value, delta, product.id, movement.batch_id,
        previous_stock, new_stock,
    )
    return movement


def get_movement(db: Session, movement_id: int, *, lock: bool = False) -> InventoryMovement:
    q = db.query(InventoryMovement).filter(InventoryMovement.id == movement_id)
    if lock:
        q = q.with_for_update()
    movement = q.first()
    if not movement:
        raise NotFoundError("Movement", movement_id)
    return movement


def approve_movement(db: Session, movement_id: int, approver_id: int) -> InventoryMovement:
    """Audit gate only; stock was applied when the movement was recorded."""
    movement = get_movement(db, movement_id, lock=True)
    if movement.approved:
        raise AlreadyApprovedError(movement.id)

    movement.approved = True
    movement.approved_by = approver_id
    movement.approved_date = now_local()
    db.flush()
    logger.info("Movement %s approved by %s", movement.id, approver_id)
    return movement


def delete_movement(db: Session, movement_id: int, *, as_of=None) -> None:
    """
    Remove an unapproved movement and undo its stock effect.

    Product stock moves back by the signed quantity, which lands on
    previous_stock when this is the product's latest movement and keeps
    the stock equal to the batch total otherwise.
    """
    movement = get_movement(db, movement_id, lock=True)
    if movement.approved:
        raise AlreadyApprovedError(movement.id)

    product = lock_product(db, movement.product_id)
    # signed undo keeps stock == sum of live batch quantities even for older movements
    restored = (product.stock or 0) - movement.quantity
    if restored < 0:
        raise InsufficientStockError(
            product_id=product.id,
            available=product.stock or 0,
            requested=abs(movement.quantity),
            message="Reversal would make product stock negative.",
        )

    batch: Optional[Batch] = None
    if movement.batch_id is not None:
        batch = (
            db.query(Batch)
            .filter(Batch.id == movement.batch_id)
            .with_for_update()
            .first()
        )
        if batch is not None and batch.deleted_at is not None:
            raise ValidationError(
                f"Batch {batch.batch_number} was deleted; movement cannot be reversed.",
                movement_id=movement.id,
                batch_id=batch.id,
            )
        if batch is not None:
            check_batch_delta(batch, -movement.quantity)

    product.stock = restored
    if batch is not None:
        apply_batch_delta(batch, -movement.quantity, as_of)

    db.delete(movement)
    db.flush()
    logger.info(
        "Movement %s deleted, product %s stock restored to %s",
        movement_id, product.id, restored,
    )


# ---------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------
def list_movements(
    db: Session,
    *,
    product_id: Optional[int] = None,
    movement_type: MovementType | str | None = None,
    approved: Optional[bool] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 50), 1), 500)

    q = db.query(InventoryMovement)
    if product_id:
        q = q.filter(InventoryMovement.product_id == product_id)
    if movement_type:
        q = q.filter(InventoryMovement.movement_type == coerce_movement_type(movement_type))
    if approved is not None:
        q = q.filter(InventoryMovement.approved.is_(approved))
    if start and end:
        q = q.filter(InventoryMovement.movement_date.between(start, end))

    total = q.count()
    rows = (
        q.options(joinedload(InventoryMovement.product), joinedload(InventoryMovement.batch))
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
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


def movements_for_product(db: Session, product_id: int, limit: int = 20) -> List[InventoryMovement]:
    return (
        db.query(InventoryMovement)
        .options(joinedload(InventoryMovement.batch))
        .filter(InventoryMovement.product_id == product_id)
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def movement_stats(
    db: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[str, Any]:
    def _scoped(q):
        if start and end:
            q = q.filter(InventoryMovement.movement_date.between(start, end))
        return q

    total = _scoped(db.query(func.count(InventoryMovement.id))).scalar() or 0
    pending = (
        _scoped(db.query(func.count(InventoryMovement.id)))
        .filter(InventoryMovement.approved.is_(False))
        .scalar() or 0
    )
    total_value = _scoped(db.query(func.sum(InventoryMovement.total_value))).scalar()

    rows = (
        _scoped(
            db.query(
                InventoryMovement.movement_type,
                func.count(InventoryMovement.id),
                func.sum(InventoryMovement.total_value),
            )
        )
        .group_by(InventoryMovement.movement_type)
        .all()
    )
    by_type = [
        {
            "movement_type": mt.value if isinstance(mt, MovementType) else mt,
            "count": int(cnt or 0),
            "total_value": _money(val or 0),
        }
        for mt, cnt, val in rows
    ]
    return {
        "total_movements": int(total),
        "by_type": sorted(by_type, key=lambda r: r["movement_type"]),
        "pending_approval": int(pending),
        "total_value": _money(total_value or 0),
    }


# ---------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------
@dataclass
class StockReconciliation:
    product_id: int
    cached_stock: int
    batch_total: int
    drift: int
    repaired: bool

    @property
    def in_sync(self) -> bool:
        return self.drift == 0

    def as_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "in_sync": self.in_sync}


def reconcile_stock(db: Session, product_id: int, *, repair: bool = True) -> StockReconciliation:
    """
    Compare Product.stock with the sum of its live batch quantities.
    drift = cached - batch total. With repair=True the cached value is
    overwritten by the batch total.
    """
    product = lock_product(db, product_id)
    batch_total = (
        db.query(func.coalesce(func.sum(Batch.current_quantity), 0))
        .filter(Batch.product_id == product.id, Batch.deleted_at.is_(None))
        .scalar()
    )
    batch_total = int(batch_total or 0)
    cached = product.stock or 0
    drift = cached - batch_total

    repaired = False
    if drift and repair:
        product.stock = batch_total
        db.flush()
        repaired = True
        logger.info("Product %s stock repaired %s -> %s", product.id, cached, batch_total)
    elif drift:
        logger.warning("Product %s stock drift %s (cached %s, batches %s)",
                       product.id, drift, cached, batch_total)

    return StockReconciliation(
        product_id=product.id,
        cached_stock=cached,
        batch_total=batch_total,
        drift=drift,
        repaired=repaired,
    )
