"""Records shared by both storage backends and the API layer

Attributes are snake_case in Python and camelCase on the wire and in Firestore documents.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .shared.dates import ensure_utc

SubscriptionStatus = Literal["trial", "active", "cancelled", "expired", "pending"]
AppointmentStatus = Literal["confirmed", "cancelled"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class BarberAccount(CamelModel):
    barber_id: str
    firebase_uid: Optional[str] = None
    name: str
    shop_name: str
    email: str
    subscription_status: SubscriptionStatus = "trial"
    subscription_expires: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    paypal_customer_id: Optional[str] = None
    paypal_subscription_id: Optional[str] = None
    is_active: bool = True
    start_time: str = "09:00"
    end_time: str = "18:00"
    break_start: str = "14:00"
    break_end: str = "15:00"
    has_break: bool = False
    price_haircut: float = 15.00
    price_beard: float = 10.00
    price_complete: float = 20.00
    price_shave: float = 8.00
    last_notification_sent: Optional[datetime] = None
    last_notification_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "subscription_expires",
        "trial_ends_at",
        "last_notification_sent",
        "created_at",
        "updated_at",
    )
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class ServiceRecord(CamelModel):
    id: Optional[str] = None
    barber_id: str
    name: str
    price: float
    duration: int = 30
    description: Optional[str] = None
    is_active: bool = True
    order: int = 0
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class AppointmentRecord(CamelModel):
    id: Optional[str] = None
    barber_id: str
    client_name: str
    client_phone: str
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    service: str
    service_id: Optional[str] = None
    price: float
    status: AppointmentStatus = "confirmed"
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class PaymentRecord(CamelModel):
    """An applied PayPal order; order_id is the idempotency key"""

    order_id: str
    barber_id: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    payer_email: Optional[str] = None
    confirmed_at: datetime

    @field_validator("confirmed_at")
    @classmethod
    def normalize_confirmed_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class MessageResponse(BaseModel):
    message: str
