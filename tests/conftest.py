"""
Fixtures for service and API tests.
Every test gets a fresh in-memory SQLite schema; the API client shares
it through a get_db override and authenticates with a real signed token.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool

from pharmacy_stock.api.deps import get_db
from pharmacy_stock.core.config import settings
from pharmacy_stock.db.base import Base
from pharmacy_stock.db.session import make_engine, make_session_factory
from pharmacy_stock.main import app
from pharmacy_stock.models import Product, Supplier
from pharmacy_stock.services.batches import create_batch
from pharmacy_stock.utils.timezone import today_local


def make_token(user_id: int = 7, role: str = "pharmacist") -> str:
    return jwt.encode(
        {"sub": str(user_id), "role": role},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALG,
    )


@pytest.fixture
def today():
    return today_local()


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_product(db):
    def _make(name="Paracetamol 500mg", stock=0, price="2.50", **kw):
        p = Product(name=name, stock=stock, price=Decimal(price), **kw)
        db.add(p)
        db.flush()
        return p

    return _make


@pytest.fixture
def supplier(db):
    s = Supplier(code="SUP-001", name="Distribuidora Central")
    db.add(s)
    db.flush()
    return s


@pytest.fixture
def make_batch(db, today):
    def _make(
        product,
        batch_number="B1",
        days=400,
        qty=100,
        purchase_price="1.00",
        sale_price="2.00",
        **kw,
    ):
        return create_batch(
            db,
            product_id=product.id,
            batch_number=batch_number,
            expiration_date=today + timedelta(days=days),
            initial_quantity=qty,
            purchase_price=Decimal(purchase_price),
            sale_price=Decimal(sale_price),
            **kw,
        )

    return _make


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        c.headers["Authorization"] = f"Bearer {make_token()}"
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: int = 7, role: str = "pharmacist") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers
