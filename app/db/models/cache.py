# app/db/models/cache.py
from sqlalchemy import Column, String, DateTime, Integer, Text
from datetime import datetime

from app.db.base import Base


class ChatCache(Base):
    __tablename__ = "chat_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_hash = Column(String(64), unique=True, nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    answer_text = Column(Text, nullable=False)
    hit_count = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    @property
    def is_expired(self) -> bool:
        return datetime.utcnow() >= self.expires_at
