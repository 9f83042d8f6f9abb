"""Subscription domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...schemas import CamelModel


class SubscriptionView(CamelModel):
    """Derived subscription state, returned by GET /subscriptions/status/{barberId}"""

    subscription_status: str
    subscription_expires: datetime
    trial_ends_at: Optional[datetime] = None
    days_until_expiry: int
    is_active: bool
    needs_renewal: bool
    is_trial: bool = False
    message: str
    badge: str  # ACTIVA | EXPIRA PRONTO | EXPIRADA


class MonitorSummary(BaseModel):
    checked: int = 0
    notified: int = 0
    expired: int = 0
    errors: int = 0


class ActivateSubscriptionRequest(CamelModel):
    barber_id: str
    paypal_subscription_id: str

    @field_validator("barber_id", "paypal_subscription_id")
    @classmethod
    def required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("barberId y paypalSubscriptionId son requeridos")
        return v


class ActivateSubscriptionResponse(CamelModel):
    success: bool = True
    message: str = "Suscripción activada correctamente"
    subscription_id: str
    subscription_expires: datetime


class ExpiringSubscription(CamelModel):
    barber_id: str
    email: str
    shop_name: str
    subscription_expires: datetime
    days_left: int


class ExpiringSubscriptions(CamelModel):
    count: int
    subscriptions: list[ExpiringSubscription]
