"""Catalog domain schemas"""

from typing import Optional

from pydantic import field_validator

from ...schemas import CamelModel


class ServiceCreate(CamelModel):
    name: str
    price: float
    duration: int = 30
    description: Optional[str] = None
    order: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if v < 0:
            raise ValueError("price cannot be negative")
        return v

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if v < 5 or v > 480:
            raise ValueError("duration must be between 5 and 480 minutes")
        return v


class ServiceUpdate(CamelModel):
    name: Optional[str] = None
    price: Optional[float] = None
    duration: Optional[int] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    order: Optional[int] = None

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("price cannot be negative")
        return v

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 5 or v > 480):
            raise ValueError("duration must be between 5 and 480 minutes")
        return v
