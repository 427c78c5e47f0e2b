# app/db/models/funnel.py
"""
Funnel session tables.

A funnel session lives in paid_sessions from creation. When an email is
captured before payment, the row and its messages are copied into
unpaid_sessions_with_email and the paid row is flagged moved_to_unpaid.
Completing payment from the unpaid side copies it back and flags the unpaid
row moved_to_paid. The authoritative row for a session_uuid is the one whose
moved flag is false.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Integer, Text, JSON, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime

from app.db.base import Base


class PaidSession(Base):
    __tablename__ = "paid_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_uuid = Column(String(36), unique=True, nullable=False, index=True)
    email = Column(String(255))
    expertise = Column(String(20))  # classique, premium
    amount = Column(Integer)  # cents
    paid = Column(Boolean, default=False, nullable=False)
    payment_intent_id = Column(String(255))
    thread_id = Column(String(255), nullable=False)
    questionnaire_data = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime)
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime)
    first_message_sent = Column(Boolean, default=False, nullable=False)
    moved_to_unpaid = Column(Boolean, default=False, nullable=False)
    moved_at = Column(DateTime)

    messages = relationship(
        "PaidMessage", back_populates="session", cascade="all, delete-orphan", passive_deletes=True,
        order_by="PaidMessage.id"
    )


class PaidMessage(Base):
    __tablename__ = "paid_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("paid_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("PaidSession", back_populates="messages")


class UnpaidSession(Base):
    __tablename__ = "unpaid_sessions_with_email"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_uuid = Column(String(36), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    expertise = Column(String(20))
    amount = Column(Integer)
    payment_intent_id = Column(String(255))
    thread_id = Column(String(255), nullable=False)
    questionnaire_data = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    email_collected_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    payment_attempts = Column(Integer, default=0, nullable=False)
    last_payment_attempt_at = Column(DateTime)
    first_message_sent = Column(Boolean, default=False, nullable=False)
    moved_to_paid = Column(Boolean, default=False, nullable=False)
    moved_at = Column(DateTime)

    messages = relationship(
        "UnpaidMessage", back_populates="session", cascade="all, delete-orphan", passive_deletes=True,
        order_by="UnpaidMessage.id"
    )


class UnpaidMessage(Base):
    __tablename__ = "unpaid_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Uuid(as_uuid=True), ForeignKey("unpaid_sessions_with_email.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("UnpaidSession", back_populates="messages")
