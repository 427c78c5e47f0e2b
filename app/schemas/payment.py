# app/schemas/payment.py
from typing import Optional
from pydantic import BaseModel, Field


class PaymentIntentCreate(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=36)
    tier: str = Field(..., min_length=1, max_length=20)
    amount: int = Field(..., gt=0)


class PaymentIntentResponse(BaseModel):
    success: bool = True
    client_secret: str
    payment_intent_id: str
    tier: str
    amount: int

    class Config:
        from_attributes = True


class PaymentVerify(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=36)
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class PaymentVerifyResponse(BaseModel):
    success: bool = True
    status: str
    already_paid: bool
    tier: Optional[str] = None
    amount: Optional[int] = None
    email_sent: bool

    class Config:
        from_attributes = True
