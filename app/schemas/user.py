# app/schemas/user.py
import uuid
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr


class UserCreate(UserBase):
    password: str = Field(..., min_length=1, max_length=200)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)


class UserResponse(UserBase):
    id: uuid.UUID
    registered_at: datetime
    subscription_status: str
    questions_used: int

    class Config:
        from_attributes = True


class AdminUserResponse(UserResponse):
    last_question_at: Optional[datetime] = None
