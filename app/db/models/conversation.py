# app/db/models/conversation.py
from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Integer, Text, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime

from app.db.base import Base


class ConversationSession(Base):
    """Free-tier chat thread, owned by a user or by an anonymous cookie id."""
    __tablename__ = "conversation_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    anonymous_identifier = Column(String(64), nullable=True, index=True)
    ip_address = Column(String(64))
    user_agent = Column(Text)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    title = Column(String(255))
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_message_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    message_count = Column(Integer, default=0, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="conversation_sessions")
    messages = relationship(
        "ConversationMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ConversationMessage.id",
    )


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversation_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    tokens_used = Column(Integer)
    response_time_ms = Column(Integer)
    was_cached = Column(Boolean, default=False, nullable=False)

    session = relationship("ConversationSession", back_populates="messages")
