# app/api/v1/router.py
from fastapi import APIRouter

from app.api.v1.endpoints import (
    admin,
    auth,
    chat,
    funnel,
    payments
)

api_router = APIRouter()

# Include all routers
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(chat.router, prefix="/chat", tags=["Chat"])
api_router.include_router(funnel.router, prefix="/funnel", tags=["Funnel"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
