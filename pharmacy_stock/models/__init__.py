# pharmacy_stock/models/__init__.py
from .product import Product
from .supplier import Supplier
from .batch import Batch, BatchStatus, SALEABLE_STATUSES
from .inventory_movement import InventoryMovement, MovementType, ReferenceType, INBOUND_TYPES

__all__ = [
    "Product",
    "Supplier",
    "Batch",
    "BatchStatus",
    "SALEABLE_STATUSES",
    "InventoryMovement",
    "MovementType",
    "ReferenceType",
    "INBOUND_TYPES",
]
