"""Appointment service - public bookings and the barber's agenda"""

import logging
from datetime import date as date_type
from datetime import datetime
from typing import Optional

from dateutil import tz
from dateutil.relativedelta import relativedelta

from ...config import APPOINTMENT_RETENTION_MONTHS, BOOKING_TIMEZONE
from ...errors import BookingRejected, NotFound, SlotUnavailable, SubscriptionRequired
from ...schemas import AppointmentRecord, BarberAccount
from ...shared.dates import utcnow
from ...shared.validators import time_to_minutes, validate_phone
from ...storage.base import StorageBackend
from ..subscriptions.evaluator import evaluate
from .schemas import AppointmentCreate

logger = logging.getLogger(__name__)


def within_working_hours(account: BarberAccount, time: str) -> bool:
    minutes = time_to_minutes(time)
    if not time_to_minutes(account.start_time) <= minutes < time_to_minutes(account.end_time):
        return False
    if account.has_break:
        if time_to_minutes(account.break_start) <= minutes < time_to_minutes(account.break_end):
            return False
    return True


class AppointmentService:
    def __init__(self, storage: StorageBackend, timezone: str = BOOKING_TIMEZONE):
        self.storage = storage
        self.tz = tz.gettz(timezone) or tz.UTC

    def _owned(self, barber_id: str, appointment_id: str) -> AppointmentRecord:
        appointment = self.storage.get_appointment(appointment_id)
        if not appointment or appointment.barber_id != barber_id:
            raise NotFound("Cita no encontrada")
        return appointment

    def _resolve_service(self, barber_id: str, body: AppointmentCreate) -> tuple[str, float, Optional[str]]:
        if body.service_id:
            service = self.storage.get_service(body.service_id)
            if not service or service.barber_id != barber_id or not service.is_active:
                raise NotFound("Servicio no encontrado")
            return service.name, service.price, service.id
        if body.service and body.price is not None:
            return body.service, body.price, None
        raise BookingRejected("Selecciona un servicio")

    def book(self, body: AppointmentCreate, now: Optional[datetime] = None) -> AppointmentRecord:
        """
        Create a confirmed appointment from the public booking page.

        The barber must exist and hold an active subscription, the slot must fall inside working
        hours (outside the break) and must not already be taken.
        """
        now = now or utcnow()
        account = self.storage.get_account(body.barber_id)
        if not account:
            raise NotFound("Barbero no encontrado")
        if not evaluate(account, now).is_active:
            logger.warning(f"⚠️ Booking refused for {body.barber_id}: subscription expired")
            raise SubscriptionRequired("Este barbero no acepta reservas en este momento")

        local_now = now.astimezone(self.tz)
        today = local_now.date().isoformat()
        if body.date < today:
            raise BookingRejected("No se pueden reservar fechas pasadas")
        if body.date == today and body.time <= local_now.strftime("%H:%M"):
            raise BookingRejected("Ese horario ya ha pasado")
        if not within_working_hours(account, body.time):
            raise BookingRejected("Horario fuera del horario de atención")

        service_name, price, service_id = self._resolve_service(account.barber_id, body)

        if not self.storage.is_slot_available(account.barber_id, body.date, body.time):
            raise SlotUnavailable()

        appointment = self.storage.create_appointment(
            AppointmentRecord(
                barber_id=account.barber_id,
                client_name=body.client_name,
                client_phone=body.client_phone,
                date=body.date,
                time=body.time,
                service=service_name,
                service_id=service_id,
                price=price,
                status="confirmed",
            )
        )
        logger.info(
            f"🆕 Appointment {appointment.id} booked for {account.barber_id} on {body.date} {body.time}"
        )
        return appointment

    def list_for_barber(self, barber_id: str, date: Optional[str] = None) -> list[AppointmentRecord]:
        return self.storage.list_appointments(barber_id, date=date)

    def taken_times(self, barber_id: str, date: str) -> list[str]:
        """Times already booked on a date, for the public booking page"""
        if not self.storage.get_account(barber_id):
            raise NotFound("Barbero no encontrado")
        appointments = self.storage.list_appointments(barber_id, date=date)
        return [a.time for a in appointments if a.status == "confirmed"]

    def list_for_client(self, client_phone: str) -> list[AppointmentRecord]:
        try:
            phone = validate_phone(client_phone)
        except ValueError:
            return []
        return self.storage.list_appointments_by_phone(phone)

    def cancel(self, barber_id: str, appointment_id: str) -> AppointmentRecord:
        self._owned(barber_id, appointment_id)
        logger.info(f"Appointment {appointment_id} cancelled by {barber_id}")
        return self.storage.update_appointment_status(appointment_id, "cancelled")

    def delete(self, barber_id: str, appointment_id: str) -> None:
        self._owned(barber_id, appointment_id)
        self.storage.delete_appointment(appointment_id)
        logger.info(f"🗑️ Appointment {appointment_id} deleted by {barber_id}")

    def cleanup(
        self, months: int = APPOINTMENT_RETENTION_MONTHS, today: Optional[date_type] = None
    ) -> int:
        """Delete appointments older than `months` months"""
        cutoff = ((today or utcnow().date()) - relativedelta(months=months)).isoformat()
        deleted = self.storage.cleanup_appointments_before(cutoff)
        logger.info(f"🧹 Deleted {deleted} appointments dated before {cutoff}")
        return deleted
