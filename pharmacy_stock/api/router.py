# pharmacy_stock/api/router.py
from fastapi import APIRouter
from pharmacy_stock.api import (
    routes_batches,
    routes_inventory_movements,
    routes_alerts,
)

api_router = APIRouter()

api_router.include_router(routes_batches.router)
api_router.include_router(routes_inventory_movements.router)
api_router.include_router(routes_alerts.router)
