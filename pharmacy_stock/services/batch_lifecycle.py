# FILE: pharmacy_stock/services/batch_lifecycle.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from pharmacy_stock.core.config import settings
from pharmacy_stock.models.batch import Batch, BatchStatus
from pharmacy_stock.utils.timezone import as_date, now_local

logger = logging.getLogger(__name__)


def days_until_expiry(expiration_date: date, as_of: date | datetime | None = None) -> int:
    """
    Whole calendar days from `as_of` (default: today) to expiry.
    0 on the expiration day itself, negative once it has passed.
    """
    return (as_date(expiration_date) - as_date(as_of)).days


def recompute_status(
    batch: Batch,
    as_of: date | datetime | None = None,
    *,
    on_create: bool = False,
    near_expiry_days: Optional[int] = None,
) -> Batch:
    """
    Derive status / can_be_sold from quantity and expiry.

    First match wins:
      1. current_quantity == 0      -> DEPLETED (not applied on create)
      2. expired                    -> EXPIRED, not saleable
      3. within near-expiry window  -> NEAR_EXPIRY, saleable flag untouched
      4. otherwise                  -> ACTIVE, saleable

    A BLOCKED batch is left alone until it is unblocked.
    """
    if batch.status == BatchStatus.BLOCKED:
        return batch

    window = settings.NEAR_EXPIRY_DAYS if near_expiry_days is None else near_expiry_days
    qty = batch.current_quantity or 0
    days = days_until_expiry(batch.expiration_date, as_of)

    if qty == 0 and not on_create:
        batch.status = BatchStatus.DEPLETED
    elif days < 0:
        batch.status = BatchStatus.EXPIRED
        batch.can_be_sold = False
    elif days <= window:
        batch.status = BatchStatus.NEAR_EXPIRY
        if batch.can_be_sold is None:
            batch.can_be_sold = True
    else:
        batch.status = BatchStatus.ACTIVE
        batch.can_be_sold = True
    return batch


def _append_note(batch: Batch, text: str) -> None:
    stamp = now_local().strftime("%Y-%m-%d %H:%M")
    line = f"[{stamp}] {text}"
    batch.notes = f"{batch.notes}\n{line}" if batch.notes else line


def block_batch(batch: Batch, reason: Optional[str] = None, as_of=None) -> Batch:
    batch.status = BatchStatus.BLOCKED
    batch.can_be_sold = False
    if reason:
        _append_note(batch, f"Blocked: {reason}")
    logger.info("Batch %s blocked", batch.id)
    return batch


def unblock_batch(batch: Batch, reason: Optional[str] = None, as_of=None) -> Batch:
    # leave BLOCKED first, otherwise recompute is a no-op
    batch.status = BatchStatus.ACTIVE
    batch.can_be_sold = True
    if reason:
        _append_note(batch, f"Unblocked: {reason}")
    recompute_status(batch, as_of)
    logger.info("Batch %s unblocked -> %s", batch.id, batch.status.value)
    return batch


def toggle_block(batch: Batch, reason: Optional[str] = None, as_of=None) -> Batch:
    if batch.status == BatchStatus.BLOCKED:
        return unblock_batch(batch, reason, as_of)
    return block_batch(batch, reason, as_of)


def refresh_batch_statuses(db: Session, as_of: date | datetime | None = None) -> int:
    """
    Recompute every live, non-blocked batch. Returns how many changed.
    Runs inside the caller's transaction.
    """
    changed = 0
    rows = (
        db.query(Batch)
        .filter(
            Batch.deleted_at.is_(None),
            Batch.status != BatchStatus.BLOCKED,
        )
        .all()
    )
    for b in rows:
        before = (b.status, b.can_be_sold)
        recompute_status(b, as_of)
        if (b.status, b.can_be_sold) != before:
            changed += 1
    if changed:
        db.flush()
        logger.info("Batch status sweep: %s batch(es) changed", changed)
    return changed
