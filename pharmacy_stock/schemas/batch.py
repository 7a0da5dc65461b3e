# FILE: pharmacy_stock/schemas/batch.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal, model_validator

from pharmacy_stock.models.batch import BatchStatus


class BatchCreate(BaseModel):
    product_id: int
    supplier_id: Optional[int] = None
    batch_number: str = Field(min_length=1, max_length=100)
    manufacturing_date: Optional[date] = None
    expiration_date: date
    initial_quantity: int = Field(ge=0)
    purchase_price: condecimal(ge=0, max_digits=10, decimal_places=2)
    sale_price: condecimal(ge=0, max_digits=10, decimal_places=2)
    location: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.manufacturing_date and self.expiration_date <= self.manufacturing_date:
            raise ValueError("expiration_date must be after manufacturing_date")
        return self


class BatchUpdate(BaseModel):
    location: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[Literal["blocked", "active"]] = None


class BatchBlockIn(BaseModel):
    reason: Optional[str] = None


class ProductMini(BaseModel):
    id: int
    name: str
    sku: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SupplierMini(BaseModel):
    id: int
    code: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class BatchOut(BaseModel):
    id: int
    product_id: int
    supplier_id: Optional[int] = None
    batch_number: str
    manufacturing_date: Optional[date] = None
    expiration_date: date
    initial_quantity: int
    current_quantity: int
    purchase_price: Decimal
    sale_price: Decimal
    location: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None
    status: BatchStatus
    can_be_sold: bool
    receipt_date: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BatchDetailOut(BatchOut):
    product: Optional[ProductMini] = None
    supplier: Optional[SupplierMini] = None


class AvailableBatchesOut(BaseModel):
    product_id: int
    available_batches: int
    total_quantity: int
    batches: List[BatchOut]
