# app/schemas/auth.py
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from app.schemas.user import UserResponse


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., max_length=200)


class AuthResponse(BaseModel):
    success: bool = True
    user: UserResponse
    access_token: str
    token_type: str = "bearer"


class SessionCheck(BaseModel):
    registered: bool
    user: Optional[UserResponse] = None
