# app/db/models/statistics.py
from sqlalchemy import Column, Date, DateTime, Integer
from datetime import datetime

from app.db.base import Base


class SessionStatistic(Base):
    __tablename__ = "session_statistics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stat_date = Column(Date, unique=True, nullable=False, index=True)
    first_messages_count = Column(Integer, default=0, nullable=False)
    emails_collected_count = Column(Integer, default=0, nullable=False)
    payments_completed_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
