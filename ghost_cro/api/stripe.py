"""
Stripe webhook

Billing moved to Shopify subscriptions; the endpoint stays so Stripe's
retries get a 200 instead of piling up.
"""
from fastapi import APIRouter

from ghost_cro.utils.logger import log

router = APIRouter(prefix="/api/stripe", tags=["stripe"])


@router.post("/webhook")
async def stripe_webhook():
    log.info("Stripe webhook received while Stripe billing is disabled")
    return {"received": True, "disabled": True}
