# FILE: pharmacy_stock/models/inventory_movement.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, Text,
    ForeignKey, Enum, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from pharmacy_stock.db.base import Base, enum_values


class MovementType(str, enum.Enum):
    PURCHASE = "purchase"                # supplier purchase
    SALE = "sale"                        # customer sale
    ADJUSTMENT = "adjustment"            # legacy manual adjustment (inbound)
    ADJUSTMENT_IN = "adjustment_in"
    ADJUSTMENT_OUT = "adjustment_out"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    RETURN = "return"                    # customer return
    SUPPLIER_RETURN = "supplier_return"
    DAMAGE = "damage"
    EXPIRY = "expiry"                    # expired write-off
    DONATION = "donation"
    SAMPLE = "sample"                    # medical sample

    @property
    def is_inbound(self) -> bool:
        return self in INBOUND_TYPES


INBOUND_TYPES = frozenset({
    MovementType.PURCHASE,
    MovementType.RETURN,
    MovementType.TRANSFER_IN,
    MovementType.ADJUSTMENT,
    MovementType.ADJUSTMENT_IN,
})


class ReferenceType(str, enum.Enum):
    INVOICE = "invoice"
    PURCHASE_ORDER = "purchase_order"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    OTHER = "other"


class InventoryMovement(Base):
    """
    One signed stock change (+IN / -OUT).
    Stock is applied at creation; `approved` is an audit gate only.
    Approved rows are permanent.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        Index("ix_inv_mov_product_date", "product_id", "movement_date"),
        Index("ix_inv_mov_type", "movement_type"),
        Index("ix_inv_mov_approved", "approved"),
        CheckConstraint("new_stock >= 0", name="ck_inv_mov_new_stock_nonneg"),
        CheckConstraint("new_stock = previous_stock + quantity", name="ck_inv_mov_running_total"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=True, index=True)

    movement_type = Column(
        Enum(MovementType, name="movement_type", values_callable=enum_values),
        nullable=False,
    )
    quantity = Column(Integer, nullable=False)  # signed
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    unit_cost = Column(Numeric(10, 2), nullable=True)
    total_value = Column(Numeric(12, 2), nullable=True)

    reference_type = Column(
        Enum(ReferenceType, name="movement_reference_type", values_callable=enum_values),
        nullable=True,
    )
    reference_id = Column(Integer, nullable=True)
    reference_number = Column(String(100), nullable=True)

    notes = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)

    # users live in the identity service (no FK)
    user_id = Column(Integer, nullable=False, index=True)

    approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(Integer, nullable=True)
    approved_date = Column(DateTime, nullable=True)

    movement_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="movements")
    batch = relationship("Batch", back_populates="movements")

    def __repr__(self) -> str:
        return (f"<InventoryMovement {self.id} {self.movement_type} product={self.product_id} "
                f"qty={self.quantity} {self.previous_stock}->{self.new_stock}>")
