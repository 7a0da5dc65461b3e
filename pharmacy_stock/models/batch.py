# FILE: pharmacy_stock/models/batch.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, Text,
    ForeignKey, Enum, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from pharmacy_stock.db.base import Base, enum_values

Money = Numeric(10, 2)


class BatchStatus(str, enum.Enum):
    ACTIVE = "active"
    NEAR_EXPIRY = "near_expiry"
    EXPIRED = "expired"
    DEPLETED = "depleted"
    BLOCKED = "blocked"  # manual only, never computed


SALEABLE_STATUSES = (BatchStatus.ACTIVE, BatchStatus.NEAR_EXPIRY)


class Batch(Base):
    """
    A received lot of one product.
    status / can_be_sold are derived from current_quantity and
    expiration_date by services.batch_lifecycle.recompute_status,
    except BLOCKED which is set by hand.
    """
    __tablename__ = "batches"
    __table_args__ = (
        UniqueConstraint("product_id", "batch_number", name="uq_batches_product_batch_number"),
        CheckConstraint("current_quantity >= 0", name="ck_batches_current_qty_nonneg"),
        CheckConstraint("current_quantity <= initial_quantity", name="ck_batches_current_le_initial"),
        Index("ix_batches_product_expiry", "product_id", "expiration_date"),
        Index("ix_batches_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True, index=True)

    batch_number = Column(String(100), nullable=False)
    manufacturing_date = Column(Date, nullable=True)
    expiration_date = Column(Date, nullable=False, index=True)

    initial_quantity = Column(Integer, nullable=False)
    current_quantity = Column(Integer, nullable=False, default=0)

    purchase_price = Column(Money, nullable=False, default=Decimal("0.00"))
    sale_price = Column(Money, nullable=False, default=Decimal("0.00"))

    location = Column(String(255), nullable=True)
    invoice_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(
        Enum(BatchStatus, name="batch_status", values_callable=enum_values),
        nullable=False,
        default=BatchStatus.ACTIVE,
    )
    can_be_sold = Column(Boolean, nullable=False, default=True)

    receipt_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)  # soft delete, only at zero quantity

    product = relationship("Product", back_populates="batches")
    supplier = relationship("Supplier", back_populates="batches")
    movements = relationship("InventoryMovement", back_populates="batch")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return (f"<Batch {self.id} {self.batch_number} product={self.product_id} "
                f"qty={self.current_quantity}/{self.initial_quantity} {self.status}>")
