# pharmacy_stock/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Header, HTTPException
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from pharmacy_stock.core.config import settings
from pharmacy_stock.db.session import SessionLocal


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as asserted by the identity service token."""
    id: int
    role: Optional[str] = None


# =========================================================
# DB
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def actor_from_token(raw_token: str) -> Actor:
    payload = _decode_token(raw_token)
    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return Actor(id=user_id, role=payload.get("role"))


def current_actor(authorization: Optional[str] = Header(None)) -> Actor:
    raw = _extract_bearer(authorization)
    if not raw:
        raise HTTPException(status_code=401, detail="Missing token")
    return actor_from_token(raw)

