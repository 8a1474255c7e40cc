# storefront/api/routers/payments.py
import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import get_reconciliation_service, get_stripe_client
from storefront.api.errors import http_error
from storefront.domain.errors import InvalidTransition, StorefrontError
from storefront.domain.schemas import WebhookAck
from storefront.services.reconciliation_service import ReconciliationService, outcome_for_stripe_event
from storefront.services.stripe_client import StripeClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


@router.post("/provider/webhook", response_model=WebhookAck)
async def provider_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    client: StripeClient = Depends(get_stripe_client),
    svc: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Stripe webhook. Anything but a bad signature or an outage is answered
    with 200 so Stripe stops redelivering.
    """
    payload = await request.body()
    if not stripe_signature:
        raise HTTPException(status_code=400, detail={"code": "INVALID_SIGNATURE", "message": "Missing signature"})

    try:
        event = client.parse_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=400, detail={"code": "INVALID_SIGNATURE", "message": "Invalid signature"})

    mapped = outcome_for_stripe_event(event)
    if mapped is None:
        logger.info(f"Ignoring Stripe event {event['id']} of type {event['type']}")
        return WebhookAck()

    outcome, session_id = mapped
    try:
        result = await run_in_threadpool(svc.handle_callback, event["id"], session_id, outcome)
    except InvalidTransition as e:
        return WebhookAck(code=e.code)
    except StorefrontError as e:
        raise http_error(e)

    return WebhookAck(duplicate=result.duplicate, order_number=result.order_number)
