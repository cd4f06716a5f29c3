"""
Billing API routes.

- POST /api/stripe/create-checkout-session: upgrade to plus or pro
- POST /api/stripe/create-portal-session: manage an existing subscription
- POST /api/stripe/webhook: Stripe webhook deliveries (raw body, signed)
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from wavscan.core.auth import get_current_user
from wavscan.features.billing.reconciler import SubscriptionReconciler, get_reconciler
from wavscan.features.billing.service import start_checkout, start_portal
from wavscan.models.user import User

router = APIRouter(prefix="/api/stripe", tags=["billing"])


class CheckoutIn(BaseModel):
    """Request to create checkout session."""
    plan: str = "pro"


class SessionUrlOut(BaseModel):
    url: str


@router.post("/create-checkout-session", response_model=SessionUrlOut)
def create_checkout_session(data: CheckoutIn, user: User = Depends(get_current_user)):
    """
    Create Stripe checkout session.

    Errors:
        400: Unknown plan or not an upgrade
        503: Billing disabled (STRIPE_SECRET_KEY not set)
        502: Stripe API error
    """
    return {"url": start_checkout(user, data.plan)}


@router.post("/create-portal-session", response_model=SessionUrlOut)
def create_portal_session(user: User = Depends(get_current_user)):
    return {"url": start_portal(user)}


@router.post("/webhook")
async def stripe_webhook(request: Request, reconciler: SubscriptionReconciler = Depends(get_reconciler)):
    """
    Handle Stripe webhook events.

    The body is read as raw bytes before anything else; the signature covers
    the exact byte stream.

    Returns:
        200 once the signature is valid, even when processing fails
        400 on a missing or invalid signature
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")
    ack = await run_in_threadpool(reconciler.handle, body, signature)
    return ack.to_dict()
