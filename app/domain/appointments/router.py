"""Appointments router - public booking and the barber's agenda"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth import get_current_barber_with_subscription
from ...config import RATE_LIMIT_PER_MINUTE
from ...dependencies import get_storage
from ...rate_limiter import create_rate_limiter
from ...schemas import AppointmentRecord, BarberAccount, MessageResponse
from ...storage.base import StorageBackend
from .schemas import AppointmentCreate, TakenSlots
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])
client_router = APIRouter(prefix="/client-appointments", tags=["Appointments"])

rate_limit_booking = create_rate_limiter(limit=20, window_seconds=60, key_prefix="booking")
rate_limit_lookup = create_rate_limiter(
    limit=RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="client_lookup"
)


def get_appointment_service(storage: StorageBackend = Depends(get_storage)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(storage)


@router.post("", response_model=AppointmentRecord, status_code=201)
async def book_appointment(
    body: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(rate_limit_booking),
):
    """Public booking from a barber's page"""
    return service.book(body)


@router.get("/me", response_model=list[AppointmentRecord])
async def list_my_appointments(
    date: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_for_barber(barber.barber_id, date=date)


@router.get("/{barber_id}/slots", response_model=TakenSlots)
async def get_taken_slots(
    barber_id: str,
    date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(rate_limit_lookup),
):
    """Booked times for a day so the booking page can hide them; no client details"""
    return TakenSlots(barber_id=barber_id, date=date, taken_times=service.taken_times(barber_id, date))


@router.put("/{appointment_id}/cancel", response_model=AppointmentRecord)
async def cancel_appointment(
    appointment_id: str,
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.cancel(barber.barber_id, appointment_id)


@router.delete("/{appointment_id}", response_model=MessageResponse)
async def delete_appointment(
    appointment_id: str,
    barber: BarberAccount = Depends(get_current_barber_with_subscription),
    service: AppointmentService = Depends(get_appointment_service),
):
    service.delete(barber.barber_id, appointment_id)
    return MessageResponse(message="Cita eliminada")


@client_router.get("/{client_phone}", response_model=list[AppointmentRecord])
async def list_client_appointments(
    client_phone: str,
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(rate_limit_lookup),
):
    """Confirmed appointments booked with a phone number, ordered by date then time"""
    return service.list_for_client(client_phone)
