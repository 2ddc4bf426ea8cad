"""SQLAlchemy declarative base for the catalog tables."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all catalog models."""
    pass
