"""
Stripe webhook endpoint
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from golfapp.api.deps import get_db
from golfapp.application.stripe_webhooks import (
    construct_event, handle_stripe_event, WebhookSignatureError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    payload = await request.body()
    try:
        event = construct_event(payload, request.headers.get("stripe-signature"))
    except WebhookSignatureError as e:
        logger.error("Stripe webhook rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    # Sync ORM work stays off the event loop
    await run_in_threadpool(handle_stripe_event, db, event)
    return {"received": True}
