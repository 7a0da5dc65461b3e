# FILE: pharmacy_stock/api/routes_alerts.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy_stock.api.deps import get_db, current_actor, Actor
from pharmacy_stock.services import alerts as svc
from pharmacy_stock.services.batch_lifecycle import refresh_batch_statuses
from pharmacy_stock.utils.resp import ok, err

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Stock Alerts"])


@router.get("")
def alerts_summary_api(
    threshold: Optional[int] = Query(None, ge=0),
    days: Optional[int] = Query(None, ge=0),
    as_of: Optional[date] = Query(None),
    refresh: bool = Query(False, description="recompute batch statuses first"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        if refresh:
            with db.begin():
                refresh_batch_statuses(db, as_of)
        bundle = svc.get_alerts_summary(db, threshold=threshold, days=days, as_of=as_of)
        return ok(bundle.model_dump())
    except Exception:
        logger.exception("alerts summary failed")
        return err("Failed to load alerts", 500)


@router.get("/low-stock")
def low_stock_api(
    threshold: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(svc.low_stock_alerts(db, threshold).model_dump())
    except Exception:
        logger.exception("low stock alerts failed")
        return err("Failed to load low stock alerts", 500)


@router.get("/expiring")
def expiring_api(
    days: Optional[int] = Query(None, ge=0),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(svc.expiring_alerts(db, days, as_of).model_dump())
    except Exception:
        logger.exception("expiring alerts failed")
        return err("Failed to load expiring alerts", 500)


@router.get("/expired")
def expired_api(
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(svc.expired_alerts(db, as_of).model_dump())
    except Exception:
        logger.exception("expired alerts failed")
        return err("Failed to load expired alerts", 500)


@router.get("/pending-approvals")
def pending_approvals_api(
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(svc.pending_approval_alerts(db, limit).model_dump())
    except Exception:
        logger.exception("pending approval alerts failed")
        return err("Failed to load pending approvals", 500)
