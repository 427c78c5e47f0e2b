# app/schemas/chat.py
import uuid
from typing import Optional
from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    session_id: Optional[uuid.UUID] = None


class ChatResponse(BaseModel):
    success: bool
    response: Optional[str] = None
    cached: bool = False
    need_signup: bool = False
    message: Optional[str] = None
    q_used: int
    remaining: Optional[int] = None
    session_id: Optional[uuid.UUID] = None
