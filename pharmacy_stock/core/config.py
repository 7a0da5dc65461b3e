# pharmacy_stock/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Pharmacy Stock API")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    DATABASE_URL: str = os.getenv("DATABASE_URL",
                                  "sqlite:///./pharmacy_stock.db")
    DB_ECHO: bool = _flag("DB_ECHO")

    # ---------- Security (tokens are issued by the identity service) ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

    # ---------- Inventory rules ----------
    LOW_STOCK_THRESHOLD: int = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))
    NEAR_EXPIRY_DAYS: int = int(os.getenv("NEAR_EXPIRY_DAYS", "30"))
    EXPIRING_ALERT_DAYS: int = int(os.getenv("EXPIRING_ALERT_DAYS", "30"))

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR: str = os.getenv("LOG_DIR", "")

    # Calendar used for "today" in expiry arithmetic
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")


settings = Settings()
