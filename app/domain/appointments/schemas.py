"""Appointments domain schemas"""

from typing import Optional

from pydantic import field_validator

from ...schemas import CamelModel
from ...shared.validators import validate_date, validate_phone, validate_time


class AppointmentCreate(CamelModel):
    """Public booking request"""

    barber_id: str
    client_name: str
    client_phone: str
    date: str
    time: str
    service_id: Optional[str] = None
    # Legacy clients send the service name and price directly
    service: Optional[str] = None
    price: Optional[float] = None

    @field_validator("client_name")
    @classmethod
    def validate_client_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("clientName is required")
        return v

    @field_validator("client_phone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        return validate_phone(v)

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return validate_date(v)

    @field_validator("time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return validate_time(v)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("price cannot be negative")
        return v


class TakenSlots(CamelModel):
    barber_id: str
    date: str
    taken_times: list[str]
