"""
Payment gateway webhooks and public pricing.
Endpoint: /payments/...

Webhooks are verified against their signature header before the
payload reaches the billing core; unverifiable requests get 400.
"""

from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from core.config import settings
from core.dependencies import get_catalog, get_gateways, get_onboarding
from core.pricing import PlanCode
from core.security import WebhookSignatureError, verify_btcpay_signature, verify_stripe_signature
from database import get_db
from schemas.billing import PricingResponse
from schemas.webhooks import BTCPayWebhook, StripeEvent
from services.payments import PaymentService

router = APIRouter(tags=["Payments"])


def get_payment_service(
    db: Session = Depends(get_db),
    gateways=Depends(get_gateways),
    onboarding=Depends(get_onboarding),
) -> PaymentService:
    return PaymentService(db, gateways, onboarding)


def _parse(model, payload: dict):
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        raise HTTPException(422, f"Malformed webhook payload: {e.errors()}")


# ==================== WEBHOOKS ====================

@router.post("/stripe_events")
async def handle_stripe_events(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    body = await request.body()
    try:
        payload = verify_stripe_signature(
            body, request.headers.get("stripe-signature"), settings.stripe_events_secret
        )
    except WebhookSignatureError as e:
        raise HTTPException(400, str(e))

    _parse(StripeEvent, payload)
    payment = await run_in_threadpool(service.from_stripe_event, payload)
    return {"received": True, "payment_id": payment.id if payment else None}


@router.post("/btcpay_webhooks")
async def handle_btcpay_webhooks(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    body = await request.body()
    try:
        payload = verify_btcpay_signature(
            body, request.headers.get("btcpay-sig"), settings.btcpay_webhooks_secret
        )
    except WebhookSignatureError as e:
        raise HTTPException(400, str(e))

    _parse(BTCPayWebhook, payload)
    payment = await run_in_threadpool(service.from_btcpay_webhook, payload)
    return {"received": True, "payment_id": payment.id if payment else None}


# ==================== PRICING ====================

@router.get("/pricing", response_model=PricingResponse)
async def get_pricing(
    country: Optional[str] = Query(None, description="ISO alpha-2 country code"),
    catalog=Depends(get_catalog),
):
    plan = catalog.plan_for_country(country)
    return {
        "country": country.upper() if country else None,
        **plan.to_dict(),
        "global_plan": catalog.by_code(PlanCode.GLOBAL).to_dict(),
    }
