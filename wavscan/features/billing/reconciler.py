"""
Subscription reconciler.

Applies authenticated Stripe webhook events to the locally cached billing
state of a user (plan, subscription status, customer and subscription ids).

Every transition is an absolute write of the target state, so a redelivered
event leaves the row exactly as the first delivery did. Events that match no
user are logged and acknowledged. Once the signature has been verified the
provider always gets a 200; processing failures are logged with the event id
and type instead of being retried by Stripe forever.
"""
from typing import Any, Callable, Dict, Optional

from fastapi import Request
from sqlalchemy import select, update

from wavscan.core.database import get_db_session, users
from wavscan.core.logging import log_event
from wavscan.features.billing.provider import BillingProvider, WebhookAck
from wavscan.features.billing.service import plan_for_price
from wavscan.features.billing.stripe_provider import StripeProvider
from wavscan.models.user import Plan, SubscriptionStatus

PROCESSING_ERROR = "processing_error_logged"

# Provider statuses that revoke paid features
DOWNGRADE_STATUSES = frozenset({"canceled", "unpaid", "past_due"})


def _paid_plan(value: Optional[str]) -> Optional[Plan]:
    try:
        plan = Plan(value)
    except ValueError:
        return None
    return plan if plan.is_paid else None


def resolve_paid_plan(price_id: Optional[str], subscribed_plan: Optional[str]) -> Plan:
    """Price mapping first, then the plan bought at checkout, then pro."""
    return plan_for_price(price_id) or _paid_plan(subscribed_plan) or Plan.PRO


def subscription_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


def invoice_price_id(invoice: Dict[str, Any]) -> Optional[str]:
    lines = (invoice.get("lines") or {}).get("data") or []
    if not lines:
        return None
    price = lines[0].get("price")
    if isinstance(price, dict):
        return price.get("id")
    details = (lines[0].get("pricing") or {}).get("price_details") or {}
    return details.get("price")


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Subscription id of an invoice, on both old and new API versions."""
    subscription = invoice.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    if subscription:
        return subscription
    parent = invoice.get("parent") or {}
    return (parent.get("subscription_details") or {}).get("subscription")


class SubscriptionReconciler:
    """Verifies webhook deliveries and applies them to the users table."""

    def __init__(self, provider: BillingProvider):
        self.provider = provider
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "checkout.session.completed": self.on_checkout_completed,
            "customer.subscription.created": self.on_subscription_created,
            "customer.subscription.updated": self.on_subscription_updated,
            "customer.subscription.deleted": self.on_subscription_deleted,
            "invoice.payment_succeeded": self.on_invoice_paid,
            "invoice.payment_failed": self.on_invoice_payment_failed,
            "invoice.marked_uncollectible": self.on_invoice_uncollectible,
        }

    def handle(self, raw_payload: bytes, signature_header: Optional[str]) -> WebhookAck:
        """
        Verify and apply one webhook delivery.

        Raises:
            WebhookSignatureError: If the delivery is not authentic; nothing is applied
        """
        event = self.provider.construct_event(raw_payload, signature_header)
        ack = WebhookAck(event_id=event.event_id, event_type=event.event_type)

        handler = self._handlers.get(event.event_type)
        if handler is None:
            log_event("info", "billing.webhook_ignored", event_type=event.event_type, extra={"stripe_event_id": event.event_id})
            return ack

        try:
            handler(event.data)
        except Exception:
            log_event(
                "error",
                "billing.webhook_processing_failed",
                event_type=event.event_type,
                error_code=PROCESSING_ERROR,
                extra={"stripe_event_id": event.event_id},
                exc_info=True,
            )
            ack.error = PROCESSING_ERROR
            return ack

        log_event("info", "billing.webhook_applied", event_type=event.event_type, extra={"stripe_event_id": event.event_id})
        return ack

    def _apply(self, where, values: Dict[str, Any], event_type: str, ref: Optional[str]) -> int:
        with get_db_session() as session:
            result = session.execute(update(users).where(where).values(**values))
            matched = result.rowcount
        if not matched:
            log_event("warning", "billing.webhook_no_user", event_type=event_type, extra={"ref": ref})
        return matched

    def on_checkout_completed(self, checkout: Dict[str, Any]) -> None:
        subscription_id = checkout.get("subscription")
        if not subscription_id:
            log_event("info", "billing.checkout_without_subscription", event_type="checkout.session.completed")
            return

        metadata = checkout.get("metadata") or {}
        try:
            user_id = int(metadata.get("user_id"))
        except (TypeError, ValueError):
            log_event("warning", "billing.checkout_without_user", event_type="checkout.session.completed")
            return

        plan = _paid_plan(metadata.get("plan")) or Plan.PRO
        self._apply(
            users.c.id == user_id,
            {
                "plan": plan.value,
                "subscribed_plan": plan.value,
                "subscription_status": SubscriptionStatus.ACTIVE.value,
                "stripe_customer_id": checkout.get("customer"),
                "stripe_subscription_id": subscription_id,
            },
            "checkout.session.completed",
            str(user_id),
        )

    def on_subscription_created(self, subscription: Dict[str, Any]) -> None:
        customer_id = subscription.get("customer")
        if not customer_id:
            return
        self._apply(
            users.c.stripe_customer_id == customer_id,
            {
                "stripe_subscription_id": subscription["id"],
                "subscription_status": subscription.get("status") or SubscriptionStatus.NONE.value,
            },
            "customer.subscription.created",
            customer_id,
        )

    def on_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription["id"]
        status = subscription.get("status")

        with get_db_session() as session:
            row = session.execute(
                select(users.c.id, users.c.subscribed_plan).where(
                    users.c.stripe_subscription_id == subscription_id
                )
            ).first()
            if row is None:
                log_event("warning", "billing.webhook_no_user", event_type="customer.subscription.updated", extra={"ref": subscription_id})
                return

            values: Dict[str, Any] = {"subscription_status": status}
            if status == SubscriptionStatus.ACTIVE.value:
                values["plan"] = resolve_paid_plan(subscription_price_id(subscription), row.subscribed_plan).value
            elif status in DOWNGRADE_STATUSES:
                values["plan"] = Plan.FREE.value

            session.execute(update(users).where(users.c.id == row.id).values(**values))

    def on_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        self._apply(
            users.c.stripe_subscription_id == subscription["id"],
            {"plan": Plan.FREE.value, "subscription_status": SubscriptionStatus.CANCELED.value},
            "customer.subscription.deleted",
            subscription["id"],
        )

    def on_invoice_paid(self, invoice: Dict[str, Any]) -> None:
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            # One-off invoice, nothing to reconcile
            return

        with get_db_session() as session:
            row = session.execute(
                select(users.c.id, users.c.subscribed_plan).where(
                    users.c.stripe_subscription_id == subscription_id
                )
            ).first()
            if row is None:
                log_event("warning", "billing.webhook_no_user", event_type="invoice.payment_succeeded", extra={"ref": subscription_id})
                return

            plan = resolve_paid_plan(invoice_price_id(invoice), row.subscribed_plan)
            session.execute(
                update(users)
                .where(users.c.id == row.id)
                .values(plan=plan.value, subscription_status=SubscriptionStatus.ACTIVE.value)
            )

    def on_invoice_payment_failed(self, invoice: Dict[str, Any]) -> None:
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return
        self._apply(
            users.c.stripe_subscription_id == subscription_id,
            {"subscription_status": SubscriptionStatus.PAST_DUE.value},
            "invoice.payment_failed",
            subscription_id,
        )

    def on_invoice_uncollectible(self, invoice: Dict[str, Any]) -> None:
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return
        self._apply(
            users.c.stripe_subscription_id == subscription_id,
            {"plan": Plan.FREE.value, "subscription_status": SubscriptionStatus.UNCOLLECTIBLE.value},
            "invoice.marked_uncollectible",
            subscription_id,
        )


def get_reconciler(request: Request) -> SubscriptionReconciler:
    """FastAPI dependency returning the process reconciler."""
    reconciler = getattr(request.app.state, "reconciler", None)
    if reconciler is None:
        reconciler = SubscriptionReconciler(StripeProvider())
        request.app.state.reconciler = reconciler
    return reconciler
