from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class Plan(str, Enum):
    FREE = "free"
    PLUS = "plus"
    PRO = "pro"

    @property
    def level(self) -> int:
        return PLAN_LEVELS[self]

    @property
    def is_paid(self) -> bool:
        return self is not Plan.FREE


PLAN_LEVELS = {Plan.FREE: 0, Plan.PLUS: 1, Plan.PRO: 2}
PAID_PLANS = (Plan.PLUS, Plan.PRO)


class SubscriptionStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNCOLLECTIBLE = "uncollectible"


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    username: str
    plan: Plan = Plan.FREE
    subscription_status: str = SubscriptionStatus.NONE.value
    subscribed_plan: Optional[Plan] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    email_verified: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(
            id=row.id,
            email=row.email,
            username=row.username,
            plan=row.plan,
            subscription_status=row.subscription_status,
            subscribed_plan=row.subscribed_plan,
            stripe_customer_id=row.stripe_customer_id,
            stripe_subscription_id=row.stripe_subscription_id,
            email_verified=bool(row.email_verified),
            created_at=row.created_at,
        )

    def public_dict(self) -> dict:
        """Fields safe to return to the account owner."""
        return {
            "username": self.username,
            "email": self.email,
            "plan": self.plan.value,
            "subscription_status": self.subscription_status,
            "email_verified": self.email_verified,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
