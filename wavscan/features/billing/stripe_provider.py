"""
Stripe billing provider implementation.

Implements BillingProvider using the Stripe API.
Webhook authenticity is checked with Stripe's signed-header scheme
(HMAC-SHA256 over "<timestamp>.<raw body>") before the body is parsed.
"""
import json
from typing import Optional

import stripe

from wavscan.core.config import settings
from wavscan.core.errors import BillingDisabledError, BillingProviderError, WebhookSignatureError
from wavscan.features.billing.provider import CheckoutRequest, WebhookEvent

SIGNATURE_TOLERANCE_SECONDS = 300


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY)
            webhook_secret: Stripe webhook secret (defaults to STRIPE_WEBHOOK_SECRET)
        """
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if self.secret_key:
            stripe.api_key = self.secret_key

    def _require_api_key(self) -> None:
        if not self.secret_key:
            raise BillingDisabledError("STRIPE_SECRET_KEY not configured")

    def create_checkout_session(self, request: CheckoutRequest) -> str:
        """Create Stripe subscription checkout session."""
        self._require_api_key()
        params = {
            "payment_method_types": ["card"],
            "line_items": [{"price": request.price_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
        }
        if request.customer_id:
            params["customer"] = request.customer_id
        else:
            params["customer_email"] = request.customer_email
        try:
            session = stripe.checkout.Session.create(**params)
            return session.url
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create Stripe billing portal session."""
        self._require_api_key()
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
            return session.url
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe portal session creation failed: {e}")

    def construct_event(self, body: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """Verify Stripe webhook signature and parse the event."""
        if not self.webhook_secret:
            raise WebhookSignatureError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature_header:
            raise WebhookSignatureError("Missing stripe-signature header")

        try:
            payload = body.decode("utf-8") if isinstance(body, bytes) else body
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.webhook_secret, SIGNATURE_TOLERANCE_SECONDS
            )
        except UnicodeDecodeError as e:
            raise WebhookSignatureError(f"Invalid payload encoding: {e}")
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid signature: {e}")

        try:
            event = json.loads(payload)
            return WebhookEvent(
                event_id=event["id"],
                event_type=event["type"],
                data=event.get("data", {}).get("object", {}) or {},
                created=event.get("created"),
                livemode=bool(event.get("livemode", False)),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise WebhookSignatureError(f"Invalid payload: {e}")
