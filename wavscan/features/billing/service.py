"""
Billing service orchestrator.

Coordinates checkout and portal sessions for the plus and pro plans.
All Stripe-specific code is in stripe_provider.py; plan changes are only
ever applied by the subscription reconciler when Stripe reports them.
"""
from typing import Optional

from wavscan.core.config import settings
from wavscan.core.errors import BillingDisabledError, ValidationError
from wavscan.core.logging import log_event
from wavscan.features.billing.provider import BillingProvider, CheckoutRequest
from wavscan.features.billing.stripe_provider import StripeProvider
from wavscan.models.user import PAID_PLANS, Plan, User


def billing_enabled() -> bool:
    """Check if billing is enabled (Stripe configured)."""
    return bool(settings.STRIPE_SECRET_KEY)


def get_provider() -> BillingProvider:
    """Get billing provider, raising when billing is disabled."""
    if not billing_enabled():
        raise BillingDisabledError()
    return StripeProvider()


def price_for_plan(plan: Plan) -> Optional[str]:
    return {
        Plan.PLUS: settings.STRIPE_PRICE_PLUS,
        Plan.PRO: settings.STRIPE_PRICE_PRO,
    }.get(plan)


def plan_for_price(price_id: Optional[str]) -> Optional[Plan]:
    """Map a Stripe price id back to the paid plan it sells."""
    if not price_id:
        return None
    for plan in PAID_PLANS:
        if price_for_plan(plan) == price_id:
            return plan
    return None


def parse_plan(value: Optional[str]) -> Plan:
    try:
        return Plan((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"plan: unknown plan '{value}'")


def start_checkout(user: User, plan_name: str, provider: Optional[BillingProvider] = None) -> str:
    """
    Start a subscription checkout for an upgrade.

    Args:
        user: Authenticated user
        plan_name: Target plan ("plus" or "pro")
        provider: Billing provider override

    Returns:
        Checkout URL

    Raises:
        ValidationError: If the plan is unknown or not an upgrade
        BillingDisabledError: If Stripe is not configured
        BillingProviderError: If checkout creation fails
    """
    plan = parse_plan(plan_name)
    if not plan.is_paid:
        raise ValidationError("plan: only paid plans can be purchased")
    if plan.level <= user.plan.level:
        raise ValidationError(f"plan: already on {user.plan.value}, choose a higher plan")

    provider = provider or get_provider()
    price_id = price_for_plan(plan)
    if not price_id:
        raise BillingDisabledError(f"No Stripe price configured for plan: {plan.value}")

    base = settings.FRONTEND_URL.rstrip("/")
    url = provider.create_checkout_session(
        CheckoutRequest(
            customer_email=user.email,
            customer_id=user.stripe_customer_id,
            price_id=price_id,
            success_url=f"{base}/upgrade?upgrade=success&plan={plan.value}",
            cancel_url=f"{base}/upgrade?upgrade=cancelled",
            metadata={"user_id": str(user.id), "user_email": user.email, "plan": plan.value},
        )
    )
    log_event("info", "billing.checkout_started", user_id=user.id, event_type="checkout", extra={"plan": plan.value})
    return url


def start_portal(user: User, provider: Optional[BillingProvider] = None) -> str:
    """Open the Stripe customer portal for a paying user."""
    if not user.plan.is_paid or not user.stripe_customer_id:
        raise ValidationError("No active subscription to manage")

    provider = provider or get_provider()
    url = provider.create_portal_session(
        customer_id=user.stripe_customer_id,
        return_url=f"{settings.FRONTEND_URL.rstrip('/')}/upgrade",
    )
    log_event("info", "billing.portal_opened", user_id=user.id, event_type="portal")
    return url
