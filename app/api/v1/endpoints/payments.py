# app/api/v1/endpoints/payments.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_services
from app.db.session import get_db
from app.schemas import PaymentIntentCreate, PaymentIntentResponse, PaymentVerify, PaymentVerifyResponse
from app.services.container import ServiceContainer

router = APIRouter()


@router.post("/intents", response_model=PaymentIntentResponse)
async def create_payment_intent(
        payment_in: PaymentIntentCreate,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    """Create a Stripe PaymentIntent for the chosen offer"""
    setup = await services.payment_service.create_intent(
        db, session_uuid=payment_in.session_id, tier=payment_in.tier, amount=payment_in.amount
    )
    return PaymentIntentResponse.model_validate(setup)


@router.post("/verify", response_model=PaymentVerifyResponse)
async def verify_payment(
        verify_in: PaymentVerify,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    """
    Confirm a payment against Stripe, then send the analysis to the reviewer.
    Safe to call repeatedly.
    """
    verification = await services.payment_service.verify(
        db, session_uuid=verify_in.session_id, payment_intent_id=verify_in.payment_intent_id
    )
    return PaymentVerifyResponse.model_validate(verification)
