# app/schemas/admin.py
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ConversionRates(BaseModel):
    first_messages: int
    emails_collected: int
    payments_completed: int
    email_rate: float
    payment_rate: float
    total_conversion_rate: float


class DailyConversion(ConversionRates):
    date: str


class WindowConversion(ConversionRates):
    days: int


class StatisticsResponse(BaseModel):
    global_: ConversionRates = Field(..., alias="global")
    last_7_days: WindowConversion
    daily: List[DailyConversion]

    class Config:
        populate_by_name = True


class FunnelSessionSummary(BaseModel):
    session_uuid: str
    email: Optional[str] = None
    expertise: Optional[str] = None
    amount: Optional[int] = None
    payment_intent_id: Optional[str] = None
    created_at: datetime
    first_message_sent: bool
    message_count: int = 0

    class Config:
        from_attributes = True


class PaidSessionSummary(FunnelSessionSummary):
    paid: bool
    paid_at: Optional[datetime] = None
    email_sent: bool


class UnpaidSessionSummary(FunnelSessionSummary):
    email_collected_at: datetime
    last_activity_at: datetime
    payment_attempts: int
    moved_to_paid: bool
    moved_at: Optional[datetime] = None


class TranscriptMessage(BaseModel):
    role: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class UnpaidSessionDetail(BaseModel):
    session: UnpaidSessionSummary
    messages: List[TranscriptMessage]


class PaymentsResponse(BaseModel):
    sessions: List[PaidSessionSummary]
    stats: Dict[str, Any]


class UnpaidSessionsResponse(BaseModel):
    sessions: List[UnpaidSessionSummary]
    stats: Dict[str, Any]


class ConversationSummary(BaseModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    anonymous_identifier: Optional[str] = None
    is_anonymous: bool
    title: Optional[str] = None
    started_at: datetime
    last_message_at: datetime
    message_count: int

    class Config:
        from_attributes = True


class ConversationMessageOut(BaseModel):
    id: int
    role: str
    content: str
    created_at: datetime
    tokens_used: Optional[int] = None
    response_time_ms: Optional[int] = None
    was_cached: bool

    class Config:
        from_attributes = True


class ConversationList(BaseModel):
    conversations: List[ConversationSummary]
    total: int
