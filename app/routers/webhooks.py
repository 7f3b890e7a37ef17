# =============================================================================
# app/routers/webhooks.py - Stripe Webhook Endpoint
# =============================================================================
# Stripe calls this with signed events. Only payment_intent.succeeded
# changes state (escrow -> held); other events are acknowledged and logged.
#
# Stripe retries until it gets a 2xx, so confirm_payment must stay
# idempotent.
# =============================================================================

import logging

from fastapi import APIRouter, Header, Request

from app.exceptions import InvalidInputError
from core.services.payment_service import PaymentService
from lib.stripe_client import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
):
    """
    Receive a Stripe event.

    Returns 400 when the signature doesn't verify.
    """
    if not stripe_signature:
        raise InvalidInputError("Missing Stripe-Signature header")

    payload = await request.body()
    event = StripeGateway.construct_webhook_event(payload, stripe_signature)

    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info(f"Stripe webhook {event['id']}: {event_type}")

    if event_type == "payment_intent.succeeded":
        result = PaymentService.confirm_payment(obj["id"])
        return {"received": True, **result}

    if event_type == "payment_intent.payment_failed":
        error = (obj.get("last_payment_error") or {}).get("message")
        logger.warning(f"Payment failed for intent {obj['id']}: {error}")

    return {"received": True}
