"""Relational backend - SQLAlchemy sessions behind the storage capability"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import AlreadyProcessed, EmailInUse, NotFound
from ..models import Appointment, Barber, ProcessedPayment, Service, generate_public_id
from ..schemas import AppointmentRecord, BarberAccount, PaymentRecord, ServiceRecord
from ..shared.dates import ensure_utc, utcnow
from .base import StorageBackend

logger = logging.getLogger(__name__)

ACCOUNT_FIELDS = tuple(BarberAccount.model_fields)
SERVICE_FIELDS = tuple(ServiceRecord.model_fields)
APPOINTMENT_FIELDS = tuple(AppointmentRecord.model_fields)


def _db_value(value):
    # SQLite stores datetimes without an offset, so everything is written as UTC
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def _apply_fields(row, fields: dict, allowed: tuple) -> None:
    for key, value in fields.items():
        if key not in allowed:
            raise ValueError(f"Unknown field: {key}")
        setattr(row, key, _db_value(value))


def _to_account(row: Barber) -> BarberAccount:
    return BarberAccount.model_validate(row)


class SqlStorage(StorageBackend):
    """Storage backed by any SQLAlchemy-supported database"""

    name = "sql"

    def __init__(self, session_factory: sessionmaker, engine: Optional[Engine] = None):
        self.session_factory = session_factory
        self.engine = engine

    @contextmanager
    def _session(self):
        db: Session = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    @staticmethod
    def _find_by_barber_id(db: Session, barber_id: str) -> Optional[Barber]:
        return db.query(Barber).filter(Barber.barber_id == barber_id).first()

    @staticmethod
    def _find_by_uid(db: Session, firebase_uid: str) -> Optional[Barber]:
        return db.query(Barber).filter(Barber.firebase_uid == firebase_uid).first()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, barber_id: str) -> Optional[BarberAccount]:
        with self._session() as db:
            row = self._find_by_barber_id(db, barber_id)
            return _to_account(row) if row else None

    def get_account_by_uid(self, firebase_uid: str) -> Optional[BarberAccount]:
        with self._session() as db:
            row = self._find_by_uid(db, firebase_uid)
            return _to_account(row) if row else None

    def get_account_by_email(self, email: str) -> Optional[BarberAccount]:
        with self._session() as db:
            row = db.query(Barber).filter(Barber.email == email.strip().lower()).first()
            return _to_account(row) if row else None

    def list_accounts(self) -> list[BarberAccount]:
        with self._session() as db:
            return [_to_account(row) for row in db.query(Barber).order_by(Barber.id).all()]

    def put_account(self, account: BarberAccount) -> BarberAccount:
        with self._session() as db:
            row = self._find_by_barber_id(db, account.barber_id)
            if row is None:
                row = Barber()
                db.add(row)
            data = account.model_dump()
            if data.get("created_at") is None:
                data.pop("created_at")
            _apply_fields(row, data, ACCOUNT_FIELDS)
            db.commit()
            db.refresh(row)
            return _to_account(row)

    def update_account(self, barber_id: str, **fields) -> BarberAccount:
        with self._session() as db:
            row = self._find_by_barber_id(db, barber_id)
            if row is None:
                raise NotFound(f"Barbero {barber_id} no encontrado")
            fields.setdefault("updated_at", utcnow())
            _apply_fields(row, fields, ACCOUNT_FIELDS)
            db.commit()
            db.refresh(row)
            return _to_account(row)

    def get_or_create_account(
        self, firebase_uid: str, defaults: BarberAccount
    ) -> tuple[BarberAccount, bool]:
        with self._session() as db:
            row = self._find_by_uid(db, firebase_uid)
            if row:
                return _to_account(row), False

            existing = None
            if defaults.email:
                existing = db.query(Barber).filter(Barber.email == defaults.email).first()
            if existing:
                if existing.firebase_uid is not None:
                    logger.warning(
                        f"⚠️ Email {defaults.email} already belongs to barber {existing.barber_id} "
                        f"with another Firebase UID"
                    )
                    raise EmailInUse()

                # Imported account without a uid: claim it only while it is still unlinked
                claimed = (
                    db.query(Barber)
                    .filter(Barber.id == existing.id, Barber.firebase_uid.is_(None))
                    .update(
                        {Barber.firebase_uid: firebase_uid, Barber.updated_at: utcnow()},
                        synchronize_session=False,
                    )
                )
                db.commit()
                if not claimed:
                    db.expire_all()
                    winner = self._find_by_uid(db, firebase_uid)
                    if winner:
                        return _to_account(winner), False
                    raise EmailInUse()
                logger.info(
                    f"🔄 Linking barber {existing.barber_id} ({defaults.email}) to Firebase UID {firebase_uid}"
                )
                db.expire_all()
                return _to_account(self._find_by_barber_id(db, existing.barber_id)), False

            row = Barber()
            data = defaults.model_dump()
            data["firebase_uid"] = firebase_uid
            if data.get("created_at") is None:
                data["created_at"] = utcnow()
            _apply_fields(row, data, ACCOUNT_FIELDS)
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                # Another request provisioned the same identity first
                winner = self._find_by_uid(db, firebase_uid)
                if winner:
                    logger.info(f"🔄 Barber for UID {firebase_uid} was created concurrently")
                    return _to_account(winner), False
                logger.error(f"❌ Email {defaults.email} was taken by another account (race condition)")
                raise EmailInUse() from e
            db.refresh(row)
            logger.info(f"🆕 Barber created: {row.barber_id} ({row.email})")
            return _to_account(row), True

    def list_expiring_accounts(self, start: datetime, end: datetime) -> list[BarberAccount]:
        with self._session() as db:
            rows = (
                db.query(Barber)
                .filter(
                    Barber.subscription_status.in_(("trial", "active")),
                    Barber.subscription_expires >= ensure_utc(start),
                    Barber.subscription_expires <= ensure_utc(end),
                )
                .all()
            )
            return [_to_account(row) for row in rows]

    def list_expired_accounts(self, now: datetime) -> list[BarberAccount]:
        with self._session() as db:
            rows = (
                db.query(Barber)
                .filter(
                    Barber.subscription_status.notin_(("expired", "cancelled")),
                    Barber.subscription_expires < ensure_utc(now),
                )
                .all()
            )
            return [_to_account(row) for row in rows]

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def list_services(self, barber_id: str, active_only: bool = False) -> list[ServiceRecord]:
        with self._session() as db:
            query = db.query(Service).filter(Service.barber_id == barber_id)
            if active_only:
                query = query.filter(Service.is_active.is_(True))
            rows = query.order_by(Service.order, Service.created_at).all()
            return [ServiceRecord.model_validate(row) for row in rows]

    def get_service(self, service_id: str) -> Optional[ServiceRecord]:
        with self._session() as db:
            row = db.get(Service, service_id)
            return ServiceRecord.model_validate(row) if row else None

    def create_service(self, service: ServiceRecord) -> ServiceRecord:
        data = service.model_dump()
        data["id"] = data.get("id") or generate_public_id()
        data["created_at"] = data.get("created_at") or utcnow()
        with self._session() as db:
            row = Service()
            _apply_fields(row, data, SERVICE_FIELDS)
            db.add(row)
            db.commit()
            db.refresh(row)
            return ServiceRecord.model_validate(row)

    def update_service(self, service_id: str, **fields) -> ServiceRecord:
        with self._session() as db:
            row = db.get(Service, service_id)
            if row is None:
                raise NotFound("Servicio no encontrado")
            _apply_fields(row, fields, SERVICE_FIELDS)
            db.commit()
            db.refresh(row)
            return ServiceRecord.model_validate(row)

    def delete_service(self, service_id: str) -> None:
        with self._session() as db:
            row = db.get(Service, service_id)
            if row is None:
                raise NotFound("Servicio no encontrado")
            db.delete(row)
            db.commit()

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    def list_appointments(
        self, barber_id: str, date: Optional[str] = None
    ) -> list[AppointmentRecord]:
        with self._session() as db:
            query = db.query(Appointment).filter(Appointment.barber_id == barber_id)
            if date:
                query = query.filter(Appointment.date == date)
            rows = query.order_by(Appointment.date, Appointment.time).all()
            return [AppointmentRecord.model_validate(row) for row in rows]

    def list_appointments_by_phone(self, client_phone: str) -> list[AppointmentRecord]:
        with self._session() as db:
            rows = (
                db.query(Appointment)
                .filter(
                    Appointment.client_phone == client_phone,
                    Appointment.status == "confirmed",
                )
                .order_by(Appointment.date, Appointment.time)
                .all()
            )
            return [AppointmentRecord.model_validate(row) for row in rows]

    def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        with self._session() as db:
            row = db.get(Appointment, appointment_id)
            return AppointmentRecord.model_validate(row) if row else None

    def create_appointment(self, appointment: AppointmentRecord) -> AppointmentRecord:
        data = appointment.model_dump()
        data["id"] = data.get("id") or generate_public_id()
        data["created_at"] = data.get("created_at") or utcnow()
        with self._session() as db:
            row = Appointment()
            _apply_fields(row, data, APPOINTMENT_FIELDS)
            db.add(row)
            db.commit()
            db.refresh(row)
            return AppointmentRecord.model_validate(row)

    def update_appointment_status(self, appointment_id: str, status: str) -> AppointmentRecord:
        with self._session() as db:
            row = db.get(Appointment, appointment_id)
            if row is None:
                raise NotFound("Cita no encontrada")
            row.status = status
            db.commit()
            db.refresh(row)
            return AppointmentRecord.model_validate(row)

    def delete_appointment(self, appointment_id: str) -> None:
        with self._session() as db:
            row = db.get(Appointment, appointment_id)
            if row is None:
                raise NotFound("Cita no encontrada")
            db.delete(row)
            db.commit()

    def is_slot_available(self, barber_id: str, date: str, time: str) -> bool:
        with self._session() as db:
            taken = (
                db.query(Appointment.id)
                .filter(
                    Appointment.barber_id == barber_id,
                    Appointment.date == date,
                    Appointment.time == time,
                    Appointment.status == "confirmed",
                )
                .first()
            )
            return taken is None

    def cleanup_appointments_before(self, cutoff_date: str) -> int:
        with self._session() as db:
            deleted = (
                db.query(Appointment)
                .filter(Appointment.date < cutoff_date)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_payment(self, order_id: str) -> Optional[PaymentRecord]:
        with self._session() as db:
            row = db.query(ProcessedPayment).filter(ProcessedPayment.order_id == order_id).first()
            return PaymentRecord.model_validate(row) if row else None

    def apply_payment(self, record: PaymentRecord, **account_fields) -> BarberAccount:
        with self._session() as db:
            row = self._find_by_barber_id(db, record.barber_id)
            if row is None:
                raise NotFound(f"Barbero {record.barber_id} no encontrado")

            already = (
                db.query(ProcessedPayment.id)
                .filter(ProcessedPayment.order_id == record.order_id)
                .first()
            )
            if already:
                raise AlreadyProcessed()

            db.add(
                ProcessedPayment(
                    order_id=record.order_id,
                    barber_id=record.barber_id,
                    amount=record.amount,
                    currency=record.currency,
                    payer_email=record.payer_email,
                    confirmed_at=_db_value(record.confirmed_at),
                )
            )
            account_fields.setdefault("updated_at", utcnow())
            _apply_fields(row, account_fields, ACCOUNT_FIELDS)
            try:
                db.commit()
            except IntegrityError as e:
                # Unique order_id: a concurrent request applied the same order
                db.rollback()
                raise AlreadyProcessed() from e
            db.refresh(row)
            return _to_account(row)

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    def import_accounts(self, accounts: Iterable[BarberAccount]) -> int:
        count = 0
        with self._session() as db:
            try:
                for account in accounts:
                    row = self._find_by_barber_id(db, account.barber_id)
                    if row is None:
                        row = Barber()
                        db.add(row)
                    _apply_fields(row, account.model_dump(), ACCOUNT_FIELDS)
                    count += 1
                db.commit()
            except Exception:
                db.rollback()
                raise
        return count

    def import_services(self, services: Iterable[ServiceRecord]) -> int:
        return self._merge_all(Service, SERVICE_FIELDS, services)

    def import_appointments(self, appointments: Iterable[AppointmentRecord]) -> int:
        return self._merge_all(Appointment, APPOINTMENT_FIELDS, appointments)

    def _merge_all(self, model, allowed: tuple, records: Iterable) -> int:
        count = 0
        with self._session() as db:
            try:
                for record in records:
                    row = model()
                    _apply_fields(row, record.model_dump(), allowed)
                    db.merge(row)
                    count += 1
                db.commit()
            except Exception:
                db.rollback()
                raise
        return count

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
