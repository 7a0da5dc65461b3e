# pharmacy_stock/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pharmacy_stock.core.config import settings
from pharmacy_stock.core.logging_config import setup_logging
from pharmacy_stock.api.router import api_router
from pharmacy_stock.api.exception_handlers import register_exception_handlers

setup_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"status": "ok", "service": settings.PROJECT_NAME}
