# app/crud/__init__.py
from app.crud.user import crud_user
from app.crud.cache import crud_cache
from app.crud.conversation import crud_conversation

__all__ = [
    "crud_user",
    "crud_cache",
    "crud_conversation",
]
