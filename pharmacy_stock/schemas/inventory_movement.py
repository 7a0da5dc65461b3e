# FILE: pharmacy_stock/schemas/inventory_movement.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal

from pharmacy_stock.models.inventory_movement import MovementType, ReferenceType


class MovementCreate(BaseModel):
    product_id: int
    batch_id: Optional[int] = None
    movement_type: MovementType
    quantity: int = Field(gt=0)
    unit_cost: Optional[condecimal(ge=0, max_digits=10, decimal_places=2)] = None
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = None


class MovementOut(BaseModel):
    id: int
    product_id: int
    batch_id: Optional[int] = None
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    unit_cost: Optional[Decimal] = None
    total_value: Optional[Decimal] = None
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = None
    user_id: int
    approved: bool
    approved_by: Optional[int] = None
    approved_date: Optional[datetime] = None
    movement_date: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- FIFO allocation ----------
class AllocationRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    include_near_expiry: bool = True


class ConsumeRequest(AllocationRequest):
    movement_type: MovementType = MovementType.SALE
    unit_cost: Optional[condecimal(ge=0, max_digits=10, decimal_places=2)] = None
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class AllocationLineOut(BaseModel):
    batch_id: int
    quantity: int
    available: int


class AllocationPlanOut(BaseModel):
    product_id: int
    requested: int
    allocations: List[AllocationLineOut]


class StockReconciliationOut(BaseModel):
    product_id: int
    cached_stock: int
    batch_total: int
    drift: int
    repaired: bool
    in_sync: bool
