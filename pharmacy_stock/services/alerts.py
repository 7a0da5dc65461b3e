# FILE: pharmacy_stock/services/alerts.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from pharmacy_stock.core.config import settings
from pharmacy_stock.models.product import Product
from pharmacy_stock.models.batch import Batch, BatchStatus, SALEABLE_STATUSES
from pharmacy_stock.models.inventory_movement import InventoryMovement
from pharmacy_stock.schemas.alerts import (
    AlertBundleOut,
    AlertSummaryOut,
    BatchStatsOut,
    ExpiredAlertOut,
    ExpiredBatchOut,
    ExpiringAlertOut,
    ExpiringBatchOut,
    LowStockAlertOut,
    LowStockProductOut,
    PendingApprovalAlertOut,
    PendingMovementOut,
    ProductRefOut,
)
from pharmacy_stock.services.batch_lifecycle import days_until_expiry
from pharmacy_stock.utils.timezone import as_date, now_local

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def _d(v) -> Decimal:
    if v is None:
        return ZERO
    try:
        return Decimal(str(v))
    except Exception:
        return ZERO


def _money(v) -> Decimal:
    return _d(v).quantize(CENT, rounding=ROUND_HALF_UP)


def _plural_days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


def _estimated_loss(b: Batch) -> Decimal:
    return _d(b.purchase_price) * (b.current_quantity or 0)


# ---------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------
def low_stock_alerts(db: Session, threshold: Optional[int] = None) -> LowStockAlertOut:
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else int(threshold)
    rows = (
        db.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
    products = [
        LowStockProductOut(
            id=p.id,
            name=p.name,
            current_stock=p.stock or 0,
            price=_money(p.price),
            message=f"Low stock: {p.stock or 0} units available",
        )
        for p in rows
    ]
    return LowStockAlertOut(threshold=threshold, count=len(products), products=products)


def expiring_alerts(
    db: Session,
    days: Optional[int] = None,
    as_of: date | datetime | None = None,
) -> ExpiringAlertOut:
    days = settings.EXPIRING_ALERT_DAYS if days is None else int(days)
    today = as_date(as_of)
    horizon = today + timedelta(days=days)

    rows = (
        db.query(Batch)
        .options(joinedload(Batch.product))
        .filter(
            Batch.deleted_at.is_(None),
            Batch.expiration_date >= today,
            Batch.expiration_date <= horizon,
            Batch.current_quantity > 0,
            Batch.status.in_(SALEABLE_STATUSES),
        )
        .order_by(Batch.expiration_date.asc(), Batch.id.asc())
        .all()
    )

    batches: List[ExpiringBatchOut] = []
    for b in rows:
        left = days_until_expiry(b.expiration_date, today)
        batches.append(
            ExpiringBatchOut(
                id=b.id,
                batch_number=b.batch_number,
                product=ProductRefOut(id=b.product.id, name=b.product.name),
                expiration_date=b.expiration_date,
                days_until_expiry=left,
                quantity=b.current_quantity,
                estimated_loss=_money(_estimated_loss(b)),
                message=f"Expires in {_plural_days(left)}",
            )
        )
    return ExpiringAlertOut(days=days, count=len(batches), batches=batches)


def expired_alerts(db: Session, as_of: date | datetime | None = None) -> ExpiredAlertOut:
    today = as_date(as_of)
    rows = (
        db.query(Batch)
        .options(joinedload(Batch.product))
        .filter(
            Batch.deleted_at.is_(None),
            Batch.expiration_date < today,
            Batch.current_quantity > 0,
        )
        .order_by(Batch.expiration_date.desc(), Batch.id.asc())
        .all()
    )

    total_loss = ZERO
    batches: List[ExpiredBatchOut] = []
    for b in rows:
        gone = -days_until_expiry(b.expiration_date, today)
        loss = _estimated_loss(b)
        total_loss += loss
        batches.append(
            ExpiredBatchOut(
                id=b.id,
                batch_number=b.batch_number,
                product=ProductRefOut(id=b.product.id, name=b.product.name),
                expiration_date=b.expiration_date,
                days_expired=gone,
                quantity=b.current_quantity,
                estimated_loss=_money(loss),
                message=f"Expired {_plural_days(gone)} ago",
            )
        )
    return ExpiredAlertOut(count=len(batches), total_loss=_money(total_loss), batches=batches)


def pending_approval_alerts(db: Session, limit: Optional[int] = None) -> PendingApprovalAlertOut:
    q = db.query(InventoryMovement).filter(InventoryMovement.approved.is_(False))
    count = q.count()

    q = q.options(joinedload(InventoryMovement.product)).order_by(
        InventoryMovement.movement_date.desc(), InventoryMovement.id.desc()
    )
    if limit:
        q = q.limit(limit)

    movements = [
        PendingMovementOut(
            id=m.id,
            product=ProductRefOut(id=m.product.id, name=m.product.name),
            batch_id=m.batch_id,
            movement_type=m.movement_type.value,
            quantity=m.quantity,
            user_id=m.user_id,
            movement_date=m.movement_date,
            message=f"{m.movement_type.value} of {abs(m.quantity)} awaiting approval",
        )
        for m in q.all()
    ]
    return PendingApprovalAlertOut(count=count, movements=movements)


# ---------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------
def _summarize(low, expiring, expired, pending) -> AlertSummaryOut:
    # fixed weighting, not configurable
    return AlertSummaryOut(
        total=low.count + expiring.count + expired.count + pending.count,
        critical=expired.count,
        high=expiring.count + low.count,
        medium=pending.count,
    )


def get_alerts_summary(
    db: Session,
    *,
    threshold: Optional[int] = None,
    days: Optional[int] = None,
    as_of: date | datetime | None = None,
) -> AlertBundleOut:
    """
    All four alert sections plus the severity summary.

    Sections are computed independently. A section that fails is logged,
    returned empty with its `error` set, and listed in `failed_sections`
    (with `partial=True`); the other sections are still returned.
    """
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else int(threshold)
    days = settings.EXPIRING_ALERT_DAYS if days is None else int(days)

    plan: List[Tuple[str, Callable, Callable]] = [
        ("low_stock",
         lambda: low_stock_alerts(db, threshold),
         lambda e: LowStockAlertOut(threshold=threshold, error=e)),
        ("expiring",
         lambda: expiring_alerts(db, days, as_of),
         lambda e: ExpiringAlertOut(days=days, error=e)),
        ("expired",
         lambda: expired_alerts(db, as_of),
         lambda e: ExpiredAlertOut(error=e)),
        ("pending_approvals",
         lambda: pending_approval_alerts(db),
         lambda e: PendingApprovalAlertOut(error=e)),
    ]

    sections: Dict[str, object] = {}
    failed: List[str] = []
    for name, compute, empty in plan:
        try:
            # a failed statement only rolls back its own savepoint
            with db.begin_nested():
                sections[name] = compute()
        except Exception as e:
            logger.exception("Alert section %s failed", name)
            sections[name] = empty(str(e) or type(e).__name__)
            failed.append(name)

    return AlertBundleOut(
        **sections,
        summary=_summarize(
            sections["low_stock"],
            sections["expiring"],
            sections["expired"],
            sections["pending_approvals"],
        ),
        partial=bool(failed),
        failed_sections=failed,
        generated_at=now_local(),
    )


def batch_stats(db: Session) -> BatchStatsOut:
    live = db.query(Batch).filter(Batch.deleted_at.is_(None))
    counts = dict(
        live.with_entities(Batch.status, func.count(Batch.id))
        .group_by(Batch.status)
        .all()
    )

    value, qty = (
        db.query(
            func.coalesce(func.sum(Batch.purchase_price * Batch.current_quantity), 0),
            func.coalesce(func.sum(Batch.current_quantity), 0),
        )
        .filter(
            Batch.deleted_at.is_(None),
            Batch.current_quantity > 0,
            Batch.status.in_(SALEABLE_STATUSES),
        )
        .one()
    )

    return BatchStatsOut(
        total=sum(counts.values()),
        active=counts.get(BatchStatus.ACTIVE, 0),
        near_expiry=counts.get(BatchStatus.NEAR_EXPIRY, 0),
        expired=counts.get(BatchStatus.EXPIRED, 0),
        depleted=counts.get(BatchStatus.DEPLETED, 0),
        blocked=counts.get(BatchStatus.BLOCKED, 0),
        total_value=_money(value),
        total_quantity=int(qty or 0),
    )
