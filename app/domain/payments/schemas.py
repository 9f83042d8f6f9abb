"""Payments domain schemas"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...schemas import BarberAccount, CamelModel
from ...shared.validators import validate_email

REASON_NOT_FOUND = "NotFound"
REASON_PROVIDER_ERROR = "ProviderError"
REASON_ALREADY_PROCESSED = "AlreadyProcessed"


class VerificationResult(BaseModel):
    """Outcome of a payment verification; AlreadyProcessed is a success"""

    success: bool
    account: Optional[BarberAccount] = None
    error_reason: Optional[str] = None  # NotFound | ProviderError | AlreadyProcessed
    error: Optional[str] = None
    retryable: bool = False

    @property
    def already_processed(self) -> bool:
        return self.error_reason == REASON_ALREADY_PROCESSED


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderID")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")

    @field_validator("order_id")
    @classmethod
    def validate_order_id(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("orderID is required")
        return v

    @field_validator("customer_email")
    @classmethod
    def validate_customer_email(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v) if v else None


class VerifyPaymentResponse(CamelModel):
    success: bool
    error: Optional[str] = None
    error_reason: Optional[str] = None
    already_processed: bool = False
    barber_id: Optional[str] = None
    subscription_expires: Optional[datetime] = None


class SubscriptionConfigResponse(CamelModel):
    plan_id: str
    button_id: Optional[str] = None


class SyncResponse(CamelModel):
    barber_id: str
    synced: bool
    subscription_status: Optional[str] = None


class SyncAllResponse(CamelModel):
    checked: int
    synced: int
    failed: int


class WebhookResponse(BaseModel):
    status: str
    event_type: Optional[str] = None


class CreateOrderRequest(BaseModel):
    amount: str
    currency: str = "EUR"
    intent: Literal["CAPTURE", "AUTHORIZE"] = "CAPTURE"

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v) -> str:
        try:
            value = Decimal(str(v).strip())
        except InvalidOperation as e:
            raise ValueError("Invalid amount. Amount must be a positive number.") from e
        if not value.is_finite() or value <= 0:
            raise ValueError("Invalid amount. Amount must be a positive number.")
        return f"{value.quantize(Decimal('0.01'))}"

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Invalid currency. Use a 3-letter ISO code.")
        return v


class CaptureOrderResponse(CamelModel):
    order_id: str
    status: Optional[str] = None
    subscription_activated: bool = False
    barber_id: Optional[str] = None
    subscription_expires: Optional[datetime] = None


class PayPalSetupResponse(CamelModel):
    client_token: str


class JobQueuedResponse(CamelModel):
    status: str = "queued"
    job_id: Optional[str] = None
