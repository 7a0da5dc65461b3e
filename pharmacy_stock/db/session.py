# pharmacy_stock/db/session.py
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from pharmacy_stock.core.config import settings


def make_engine(db_uri: str, **kwargs: Any) -> Engine:
    opts: Dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "future": True,
    }
    if db_uri.startswith("sqlite"):
        # FastAPI runs sync routes in a threadpool
        opts["connect_args"] = {"check_same_thread": False}
    else:
        opts.update(
            pool_pre_ping=True,
            pool_recycle=280,
            pool_size=10,
            max_overflow=20,
        )
    opts.update(kwargs)
    return create_engine(db_uri, **opts)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        future=True,
    )


engine: Engine = make_engine(settings.DATABASE_URL)

SessionLocal = make_session_factory(engine)
