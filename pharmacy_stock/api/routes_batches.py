# FILE: pharmacy_stock/api/routes_batches.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmacy_stock.api.deps import get_db, current_actor, Actor
from pharmacy_stock.models.batch import BatchStatus
from pharmacy_stock.schemas.batch import (
    AvailableBatchesOut,
    BatchBlockIn,
    BatchCreate,
    BatchDetailOut,
    BatchOut,
    BatchUpdate,
)
from pharmacy_stock.services import alerts as alert_svc
from pharmacy_stock.services import batches as batch_svc
from pharmacy_stock.services.errors import StockError
from pharmacy_stock.utils.resp import ok, err

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/batches", tags=["Batches"])


def _safe_err(e: Exception):
    # Make SQL errors readable instead of full trace
    if isinstance(e, IntegrityError):
        return err("Database constraint error (duplicate/invalid reference).", 400)
    return err(str(getattr(e, "detail", e)), getattr(e, "status_code", 500))


def _stock_err(e: StockError):
    return err(e.message, e.status_code, details=e.context)


@router.post("")
def create_batch_api(
    payload: BatchCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            batch = batch_svc.create_batch(db, **payload.model_dump())
        return ok(BatchOut.model_validate(batch).model_dump(), status_code=201)
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("create batch failed")
        return _safe_err(e)


@router.get("")
def list_batches_api(
    product_id: Optional[int] = Query(None),
    supplier_id: Optional[int] = Query(None),
    status: Optional[BatchStatus] = Query(None),
    can_be_sold: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        res = batch_svc.list_batches(
            db,
            product_id=product_id,
            supplier_id=supplier_id,
            status=status,
            can_be_sold=can_be_sold,
            page=page,
            limit=limit,
        )
        res["items"] = [BatchDetailOut.model_validate(b).model_dump() for b in res["items"]]
        return ok(res)
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("list batches failed")
        return _safe_err(e)


@router.get("/expiring")
def expiring_batches_api(
    days: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(alert_svc.expiring_alerts(db, days).model_dump())
    except Exception as e:
        logger.exception("expiring batches failed")
        return _safe_err(e)


@router.get("/expired")
def expired_batches_api(
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(alert_svc.expired_alerts(db).model_dump())
    except Exception as e:
        logger.exception("expired batches failed")
        return _safe_err(e)


@router.get("/stats")
def batch_stats_api(
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(alert_svc.batch_stats(db).model_dump())
    except Exception as e:
        logger.exception("batch stats failed")
        return _safe_err(e)


@router.get("/product/{product_id}")
def available_batches_api(
    product_id: int,
    include_near_expiry: bool = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        res = batch_svc.available_batches(db, product_id, include_near_expiry=include_near_expiry)
        return ok(AvailableBatchesOut.model_validate(res, from_attributes=True).model_dump())
    except Exception as e:
        logger.exception("available batches failed")
        return _safe_err(e)


@router.get("/{batch_id}")
def get_batch_api(
    batch_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        batch = batch_svc.get_batch(db, batch_id)
        return ok(BatchDetailOut.model_validate(batch).model_dump())
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("get batch failed")
        return _safe_err(e)


@router.put("/{batch_id}")
def update_batch_api(
    batch_id: int,
    payload: BatchUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            batch = batch_svc.update_batch(db, batch_id, **payload.model_dump(exclude_unset=True))
        return ok(BatchOut.model_validate(batch).model_dump())
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("update batch failed")
        return _safe_err(e)


@router.post("/{batch_id}/toggle-block")
def toggle_block_api(
    batch_id: int,
    payload: Optional[BatchBlockIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        reason = payload.reason if payload else None
        with db.begin():
            batch = batch_svc.toggle_batch_block(db, batch_id, reason)
        return ok(BatchOut.model_validate(batch).model_dump())
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("toggle block failed")
        return _safe_err(e)


@router.delete("/{batch_id}")
def delete_batch_api(
    batch_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            batch_svc.delete_batch(db, batch_id)
        return ok({"id": batch_id, "deleted": True})
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("delete batch failed")
        return _safe_err(e)
