from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from app.api.v1.dependencies import get_billing_client, get_subscription_service
from app.core.errors import AppError, InvalidSignature, WebhookProcessingFailed
from app.schemas.webhook import WebhookAck, parse_event
from app.services.billing_client import BillingClient
from app.services.subscription_service import IGNORED, SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


def _process_event(payload: bytes, stripe_signature: str, billing: BillingClient, ledger: SubscriptionService) -> WebhookAck:
    # Only a bad signature is a 400; anything after it must be retried by Stripe
    raw_event = billing.construct_event(payload, stripe_signature)
    event_type = str(raw_event.get("type") or "unknown")
    logger.info(f"Webhook received: {event_type} ({raw_event.get('id')})")

    try:
        event = parse_event(raw_event)
        if event is None:
            logger.info(f"Unhandled event type: {event_type}")
            return WebhookAck(event_type=event_type, outcome=IGNORED)
        outcome = ledger.ingest(event)
    except AppError as e:
        logger.error(f"Webhook {event_type} ({raw_event.get('id')}) processing failed: {e.detail}")
        raise WebhookProcessingFailed() from e
    return WebhookAck(event_type=event_type, outcome=outcome)


@router.post("", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    billing: BillingClient = Depends(get_billing_client),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    """Stripe webhook. The raw body is needed for signature verification."""
    if not stripe_signature:
        logger.warning("Webhook received without Stripe-Signature header")
        raise InvalidSignature("Missing Stripe-Signature header")

    payload = await request.body()
    # Stripe and database calls are blocking
    return await run_in_threadpool(_process_event, payload, stripe_signature, billing, ledger)


@router.get("/verify")
def verify_webhook():
    """Liveness probe for the webhook endpoint."""
    return {
        "success": True,
        "message": "Webhook endpoint is reachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
