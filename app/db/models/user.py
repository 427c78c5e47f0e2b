# app/db/models/user.py
from sqlalchemy import Column, String, DateTime, Integer, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    registered_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    subscription_status = Column(String(20), default="free", nullable=False)  # free, premium
    questions_used = Column(Integer, default=0, nullable=False)
    last_question_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    conversation_sessions = relationship(
        "ConversationSession", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True
    )
