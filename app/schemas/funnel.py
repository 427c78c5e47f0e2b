# app/schemas/funnel.py
from typing import Optional
from pydantic import BaseModel, Field


class FunnelSessionCreated(BaseModel):
    success: bool = True
    session_id: str


class FunnelMessage(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)


class OfferChoice(BaseModel):
    tier: str = Field(..., pattern=r"^(classique|premium)$")


class CommentsIn(BaseModel):
    comments: Optional[str] = Field(None, max_length=4000)
    skip: bool = False


class FunnelReplyResponse(BaseModel):
    session_id: str
    reply: str
    stage: str
    phase: str
    step: int
    email_captured: bool = False
    questionnaire_complete: bool = False
    ready_for_payment: bool = False

    class Config:
        from_attributes = True


class FunnelStatus(BaseModel):
    session_id: str
    stage: str
    phase: str
    step: int
    paid: bool
    tier: Optional[str] = None
    amount: Optional[int] = None
    email: Optional[str] = None  # masked
