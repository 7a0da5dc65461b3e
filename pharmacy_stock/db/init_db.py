# pharmacy_stock/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pharmacy_stock.db.session import engine as default_engine
from pharmacy_stock.db.base import Base

# Import all models so metadata is complete
from pharmacy_stock import models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind: Engine | None = None, *, drop: bool = False) -> list[str]:
    eng = bind or default_engine
    if drop:
        Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    names = sorted(inspect(eng).get_table_names())
    logger.info("Tables ready: %s", names)
    return names


def main() -> None:
    parser = argparse.ArgumentParser(description="Create pharmacy stock tables")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    try:
        names = init_db(drop=args.drop)
    except SQLAlchemyError:
        logger.exception("Table creation failed")
        raise SystemExit(1)
    print("Existing tables:", names)


if __name__ == "__main__":
    main()
