# FILE: pharmacy_stock/models/product.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import relationship

from pharmacy_stock.db.base import Base

Money = Numeric(10, 2)


class Product(Base):
    """
    Sellable product.
    `stock` is a cached running total of its batches; only the ledger
    writes it (see services.ledger.reconcile_stock for repair).
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), unique=True, nullable=True, index=True)

    price = Column(Money, nullable=False, default=Decimal("0.00"))
    stock = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    batches = relationship("Batch", back_populates="product")
    movements = relationship("InventoryMovement", back_populates="product")

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name} stock={self.stock}>"
