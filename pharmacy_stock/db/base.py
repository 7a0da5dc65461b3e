# pharmacy_stock/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All inventory tables inherit from this."""
    pass


def enum_values(enum_cls):
    """Persist str-enums by value ("near_expiry"), not by member name."""
    return [m.value for m in enum_cls]
