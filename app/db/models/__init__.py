# app/db/models/__init__.py
"""Database models"""
from app.db.base import Base
from app.db.models.user import User
from app.db.models.conversation import ConversationSession, ConversationMessage
from app.db.models.cache import ChatCache
from app.db.models.funnel import PaidSession, PaidMessage, UnpaidSession, UnpaidMessage
from app.db.models.statistics import SessionStatistic


# Export all models
__all__ = [
    "Base",
    "User",
    "ConversationSession",
    "ConversationMessage",
    "ChatCache",
    "PaidSession",
    "PaidMessage",
    "UnpaidSession",
    "UnpaidMessage",
    "SessionStatistic",
]
