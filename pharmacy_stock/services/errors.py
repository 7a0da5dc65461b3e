# FILE: pharmacy_stock/services/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class StockError(RuntimeError):
    """
    Base for every inventory rule violation.
    Carries an HTTP status and a context dict (ids, quantities) so the
    caller can render a precise message.
    """
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "msg": self.message, **self.context}


class ValidationError(StockError):
    status_code = 400


class NotFoundError(StockError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found.", entity=entity, id=entity_id)


class DuplicateBatchNumberError(StockError):
    status_code = 409

    def __init__(self, batch_number: str, product_id: int) -> None:
        super().__init__(
            f"Batch number {batch_number!r} already exists for this product.",
            batch_number=batch_number,
            product_id=product_id,
        )


class InsufficientStockError(StockError):
    status_code = 400

    def __init__(
        self,
        *,
        product_id: int,
        available: int,
        requested: int,
        batch_id: Optional[int] = None,
        message: Optional[str] = None,
    ) -> None:
        super().__init__(
            message or f"Insufficient stock. Available {available}, requested {requested}.",
            product_id=product_id,
            batch_id=batch_id,
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class AlreadyApprovedError(StockError):
    status_code = 409

    def __init__(self, movement_id: int) -> None:
        super().__init__("Movement is already approved.", movement_id=movement_id)


class ConcurrencyConflictError(StockError):
    status_code = 409
