"""
Billing provider protocol.

Defines the interface the billing service and the subscription reconciler
rely on, so tests can swap Stripe for a fake.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class WebhookEvent:
    """Authenticated provider event, not yet applied."""
    event_id: str
    event_type: str
    data: Dict[str, Any]
    created: Optional[int] = None
    livemode: bool = False


@dataclass
class WebhookAck:
    """Body returned to the provider; the HTTP status is always 200."""
    received: bool = True
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"received": self.received}
        if self.event_id:
            body["event_id"] = self.event_id
        if self.error:
            body["error"] = self.error
        return body


@dataclass
class CheckoutRequest:
    customer_email: str
    price_id: str
    success_url: str
    cancel_url: str
    metadata: Dict[str, str] = field(default_factory=dict)
    customer_id: Optional[str] = None


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Checkout session creation
    - Portal session creation
    - Webhook signature verification and parsing
    """

    def create_checkout_session(self, request: CheckoutRequest) -> str:
        """
        Create a subscription checkout session.

        Returns:
            Checkout session URL

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """
        Create a billing portal session for customer self-service.

        Returns:
            Portal session URL

        Raises:
            BillingProviderError: If portal session creation fails
        """
        ...

    def construct_event(self, body: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """
        Verify the webhook signature over the raw body and parse the event.

        Raises:
            WebhookSignatureError: If the signature or payload is invalid
        """
        ...
