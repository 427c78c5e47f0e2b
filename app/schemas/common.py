# app/schemas/common.py
from pydantic import BaseModel


class SuccessResponse(BaseModel):
    success: bool = True
    message: str


class PurgeResponse(BaseModel):
    success: bool = True
    deleted: int
