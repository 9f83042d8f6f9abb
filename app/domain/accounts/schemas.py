"""Accounts domain schemas"""

from typing import Optional

from pydantic import field_validator

from ...schemas import BarberAccount, CamelModel, ServiceRecord
from ...shared.validators import validate_email, validate_time


class Identity(CamelModel):
    """A signed-in identity-provider user; id_token doubles as the API bearer token"""

    uid: str
    email: str
    display_name: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return validate_email(v)


class RegisterRequest(CamelModel):
    name: str
    shop_name: str
    email: str
    password: str

    @field_validator("name", "shop_name")
    @classmethod
    def validate_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("This field is required")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v or "") < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class SessionResult(CamelModel):
    identity: Identity
    account: BarberAccount
    created: bool = False


class SettingsUpdate(CamelModel):
    """Schedule and legacy price settings; omitted fields are left unchanged"""

    name: Optional[str] = None
    shop_name: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None
    has_break: Optional[bool] = None
    price_haircut: Optional[float] = None
    price_beard: Optional[float] = None
    price_complete: Optional[float] = None
    price_shave: Optional[float] = None

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def validate_times(cls, v: Optional[str]) -> Optional[str]:
        return validate_time(v) if v is not None else None

    @field_validator("price_haircut", "price_beard", "price_complete", "price_shave")
    @classmethod
    def validate_prices(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("Price cannot be negative")
        return v


class PublicBarberProfile(CamelModel):
    barber_id: str
    name: str
    shop_name: str
    start_time: str
    end_time: str
    break_start: str
    break_end: str
    has_break: bool
    accepting_bookings: bool
    services: list[ServiceRecord] = []
