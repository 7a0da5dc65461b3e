# FILE: pharmacy_stock/api/routes_inventory_movements.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmacy_stock.api.deps import get_db, current_actor, Actor
from pharmacy_stock.models.inventory_movement import MovementType
from pharmacy_stock.schemas.inventory_movement import (
    AllocationPlanOut,
    AllocationRequest,
    ConsumeRequest,
    MovementCreate,
    MovementOut,
    StockReconciliationOut,
)
from pharmacy_stock.services import allocation, ledger
from pharmacy_stock.services.errors import StockError
from pharmacy_stock.utils.resp import ok, err

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory Ledger"])


def _safe_err(e: Exception):
    # Make SQL errors readable instead of full trace
    if isinstance(e, IntegrityError):
        return err("Database constraint error (duplicate/invalid reference).", 400)
    return err(str(getattr(e, "detail", e)), getattr(e, "status_code", 500))


def _stock_err(e: StockError):
    return err(e.message, e.status_code, details=e.context)


def _movement_out(m) -> dict:
    return MovementOut.model_validate(m).model_dump()


# =========================
# MOVEMENTS
# =========================
@router.post("/movements")
def create_movement_api(
    payload: MovementCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            mv = ledger.record_movement(db, actor_id=actor.id, **payload.model_dump())
        return ok(_movement_out(mv), status_code=201)
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("record movement failed")
        return _safe_err(e)


@router.get("/movements")
def list_movements_api(
    product_id: Optional[int] = Query(None),
    movement_type: Optional[MovementType] = Query(None),
    approved: Optional[bool] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        res = ledger.list_movements(
            db,
            product_id=product_id,
            movement_type=movement_type,
            approved=approved,
            start=start_date,
            end=end_date,
            page=page,
            limit=limit,
        )
        res["items"] = [_movement_out(m) for m in res["items"]]
        return ok(res)
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("list movements failed")
        return _safe_err(e)


@router.get("/movements/stats")
def movement_stats_api(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        return ok(ledger.movement_stats(db, start_date, end_date))
    except Exception as e:
        logger.exception("movement stats failed")
        return _safe_err(e)


@router.get("/movements/product/{product_id}")
def product_movements_api(
    product_id: int,
    limit: int = Query(20, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        rows = ledger.movements_for_product(db, product_id, limit=limit)
        return ok([_movement_out(m) for m in rows])
    except Exception as e:
        logger.exception("product movements failed")
        return _safe_err(e)


@router.put("/movements/{movement_id}/approve")
def approve_movement_api(
    movement_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            mv = ledger.approve_movement(db, movement_id, actor.id)
        return ok(_movement_out(mv))
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("approve movement failed")
        return _safe_err(e)


@router.delete("/movements/{movement_id}")
def delete_movement_api(
    movement_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            ledger.delete_movement(db, movement_id)
        return ok({"id": movement_id, "deleted": True})
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("delete movement failed")
        return _safe_err(e)


# =========================
# FIFO ALLOCATION
# =========================
@router.post("/allocations/preview")
def preview_allocation_api(
    payload: AllocationRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        plan = allocation.select_batches_fifo(
            db,
            payload.product_id,
            payload.quantity,
            include_near_expiry=payload.include_near_expiry,
        )
        out = AllocationPlanOut(
            product_id=payload.product_id,
            requested=payload.quantity,
            allocations=[a._asdict() for a in plan],
        )
        return ok(out.model_dump())
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("allocation preview failed")
        return _safe_err(e)


@router.post("/allocations/consume")
def consume_allocation_api(
    payload: ConsumeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            movements = allocation.consume_fifo(db, actor_id=actor.id, **payload.model_dump())
        return ok([_movement_out(m) for m in movements], status_code=201)
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("FIFO consume failed")
        return _safe_err(e)


# =========================
# RECONCILIATION
# =========================
@router.post("/products/{product_id}/reconcile")
def reconcile_stock_api(
    product_id: int,
    repair: bool = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        with db.begin():
            rec = ledger.reconcile_stock(db, product_id, repair=repair)
        return ok(StockReconciliationOut(**rec.as_dict()).model_dump())
    except StockError as e:
        return _stock_err(e)
    except Exception as e:
        logger.exception("reconcile stock failed")
        return _safe_err(e)
