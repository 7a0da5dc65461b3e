# FILE: pharmacy_stock/services/allocation.py
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, NamedTuple, Optional, Sequence

from sqlalchemy.orm import Session

from pharmacy_stock.models.batch import Batch, BatchStatus
from pharmacy_stock.models.inventory_movement import InventoryMovement, MovementType
from pharmacy_stock.services.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from pharmacy_stock.services.ledger import (
    coerce_movement_type,
    lock_product,
    positive_quantity,
    record_movement,
)
from pharmacy_stock.utils.timezone import as_date

logger = logging.getLogger(__name__)


class BatchAllocation(NamedTuple):
    batch_id: int
    quantity: int
    available: int  # current_quantity seen at selection time


def eligible_batches_query(
    db: Session,
    product_id: int,
    *,
    as_of: date | datetime | None = None,
    include_near_expiry: bool = True,
):
    """
    Saleable batches of a product, soonest expiry first.
    Ties: oldest receipt, then oldest row.
    """
    today = as_date(as_of)
    statuses = [BatchStatus.ACTIVE]
    if include_near_expiry:
        statuses.append(BatchStatus.NEAR_EXPIRY)

    return (
        db.query(Batch)
        .filter(
            Batch.product_id == product_id,
            Batch.deleted_at.is_(None),
            Batch.current_quantity > 0,
            Batch.can_be_sold.is_(True),
            Batch.expiration_date >= today,
            Batch.status.in_(statuses),
        )
        .order_by(
            Batch.expiration_date.asc(),
            Batch.receipt_date.asc(),
            Batch.created_at.asc(),
            Batch.id.asc(),
        )
    )


def select_batches_fifo(
    db: Session,
    product_id: int,
    quantity: int,
    *,
    as_of: date | datetime | None = None,
    include_near_expiry: bool = True,
    lock: bool = False,
) -> List[BatchAllocation]:
    """
    FIFO (soonest expiry first) plan for `quantity` units of a product.

    - Greedy: takes min(available, remaining) from each candidate
    - Read-only: nothing is mutated, commit with commit_allocations()
    - lock=True selects the rows FOR UPDATE (use inside the write txn)
    - Raises InsufficientStockError with the total available if the
      candidates run out
    """
    quantity = positive_quantity(quantity)

    q = eligible_batches_query(
        db, product_id, as_of=as_of, include_near_expiry=include_near_expiry
    )
    if lock:
        q = q.with_for_update()

    remaining = quantity
    total_available = 0
    plan: List[BatchAllocation] = []

    for batch in q.all():
        available = batch.current_quantity or 0
        total_available += available
        if remaining <= 0:
            continue
        use_qty = min(available, remaining)
        plan.append(BatchAllocation(batch.id, use_qty, available))
        remaining -= use_qty

    if remaining > 0:
        raise InsufficientStockError(
            product_id=product_id,
            available=total_available,
            requested=quantity,
            message=f"Insufficient stock for FIFO allocation. "
                    f"Available {total_available}, requested {quantity}.",
        )
    return plan


def commit_allocations(
    db: Session,
    *,
    product_id: int,
    allocations: Sequence[BatchAllocation],
    movement_type: MovementType | str,
    actor_id: int,
    unit_cost: Optional[Decimal] = None,
    reference_type=None,
    reference_id: Optional[int] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
    as_of: date | datetime | None = None,
) -> List[InventoryMovement]:
    """
    Record one ledger movement per allocation, in the caller's transaction.

    Each batch is re-read FOR UPDATE first. If any of them now holds less
    than the quantity seen at selection time the whole commit is refused
    with ConcurrencyConflictError; the caller rolls back and re-selects.
    """
    mtype = coerce_movement_type(movement_type)
    if mtype.is_inbound:
        raise ValidationError("FIFO allocation only applies to outbound movements",
                              movement_type=mtype.value)
    if not allocations:
        return []

    # product first, same lock order as record_movement
    lock_product(db, product_id)

    for alloc in allocations:
        batch = db.get(Batch, alloc.batch_id)
        if batch is None:
            raise NotFoundError("Batch", alloc.batch_id)
        db.refresh(batch, with_for_update=True)
        current = batch.current_quantity or 0
        if (
            batch.deleted_at is not None
            or batch.product_id != product_id
            or current < alloc.available
            or current < alloc.quantity
        ):
            logger.warning(
                "FIFO conflict on batch %s: selected with %s, now %s",
                batch.id, alloc.available, current,
            )
            raise ConcurrencyConflictError(
                "Batch quantity changed since allocation; retry the operation.",
                batch_id=batch.id,
                expected=alloc.available,
                actual=current,
            )

    movements = [
        record_movement(
            db,
            product_id=product_id,
            batch_id=alloc.batch_id,
            movement_type=mtype,
            quantity=alloc.quantity,
            actor_id=actor_id,
            unit_cost=unit_cost,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            notes=notes,
            as_of=as_of,
        )
        for alloc in allocations
    ]
    logger.info(
        "FIFO commit product=%s: %s",
        product_id, ", ".join(f"{a.batch_id}x{a.quantity}" for a in allocations),
    )
    return movements


def consume_fifo(
    db: Session,
    *,
    product_id: int,
    quantity: int,
    actor_id: int,
    movement_type: MovementType | str = MovementType.SALE,
    include_near_expiry: bool = True,
    as_of: date | datetime | None = None,
    **movement_fields,
) -> List[InventoryMovement]:
    """Select with row locks and commit, inside the caller's transaction."""
    lock_product(db, product_id)
    plan = select_batches_fifo(
        db, product_id, quantity,
        as_of=as_of, include_near_expiry=include_near_expiry, lock=True,
    )
    return commit_allocations(
        db,
        product_id=product_id,
        allocations=plan,
        movement_type=movement_type,
        actor_id=actor_id,
        as_of=as_of,
        **movement_fields,
    )
