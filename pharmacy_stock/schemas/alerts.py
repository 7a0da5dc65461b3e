# FILE: pharmacy_stock/schemas/alerts.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

Money = Decimal


class AlertType(str, Enum):
    LOW_STOCK = "low_stock"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    PENDING_APPROVALS = "pending_approvals"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


# -------------------------
# Rows
# -------------------------
class ProductRefOut(BaseModel):
    id: int
    name: str


class LowStockProductOut(BaseModel):
    id: int
    name: str
    current_stock: int
    price: Money
    message: str


class ExpiringBatchOut(BaseModel):
    id: int
    batch_number: str
    product: ProductRefOut
    expiration_date: date
    days_until_expiry: int
    quantity: int
    estimated_loss: Money
    message: str


class ExpiredBatchOut(BaseModel):
    id: int
    batch_number: str
    product: ProductRefOut
    expiration_date: date
    days_expired: int
    quantity: int
    estimated_loss: Money
    message: str


class PendingMovementOut(BaseModel):
    id: int
    product: ProductRefOut
    batch_id: Optional[int] = None
    movement_type: str
    quantity: int
    user_id: int
    movement_date: datetime
    message: str


# -------------------------
# Sections
# -------------------------
class _AlertSection(BaseModel):
    count: int = 0
    error: Optional[str] = None  # set when the section could not be computed


class LowStockAlertOut(_AlertSection):
    type: AlertType = AlertType.LOW_STOCK
    severity: AlertSeverity = AlertSeverity.HIGH
    threshold: int
    products: List[LowStockProductOut] = Field(default_factory=list)


class ExpiringAlertOut(_AlertSection):
    type: AlertType = AlertType.EXPIRING_SOON
    severity: AlertSeverity = AlertSeverity.HIGH
    days: int
    batches: List[ExpiringBatchOut] = Field(default_factory=list)


class ExpiredAlertOut(_AlertSection):
    type: AlertType = AlertType.EXPIRED
    severity: AlertSeverity = AlertSeverity.CRITICAL
    total_loss: Money = Decimal("0.00")
    batches: List[ExpiredBatchOut] = Field(default_factory=list)


class PendingApprovalAlertOut(_AlertSection):
    type: AlertType = AlertType.PENDING_APPROVALS
    severity: AlertSeverity = AlertSeverity.MEDIUM
    movements: List[PendingMovementOut] = Field(default_factory=list)


class AlertSummaryOut(BaseModel):
    total: int
    critical: int
    high: int
    medium: int


class AlertBundleOut(BaseModel):
    low_stock: LowStockAlertOut
    expiring: ExpiringAlertOut
    expired: ExpiredAlertOut
    pending_approvals: PendingApprovalAlertOut
    summary: AlertSummaryOut

    partial: bool = False
    failed_sections: List[str] = Field(default_factory=list)
    generated_at: datetime


class BatchStatsOut(BaseModel):
    total: int
    active: int
    near_expiry: int
    expired: int
    depleted: int
    blocked: int
    total_value: Money      # purchase value of saleable stock
    total_quantity: int
