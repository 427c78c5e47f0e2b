# app/db/__init__.py
from app.db.base import Base
from app.db.session import get_db, engine

__all__ = [
    "Base",
    "get_db",
    "engine",
]
