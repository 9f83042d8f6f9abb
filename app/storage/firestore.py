"""Firestore backend - documents keyed by barberId, service id, appointment id and order id"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import BaseModel, ValidationError

from ..errors import AlreadyProcessed, EmailInUse, InvalidAccount, NotFound
from ..models import generate_public_id
from ..schemas import AppointmentRecord, BarberAccount, PaymentRecord, ServiceRecord
from ..shared.dates import ensure_utc, utcnow
from .base import StorageBackend

logger = logging.getLogger(__name__)

BARBERS = "barbers"
BARBER_UIDS = "barber_uids"
SERVICES = "services"
APPOINTMENTS = "appointments"
PROCESSED_PAYMENTS = "processed_payments"

# Firestore rejects batches with more than 500 writes
MAX_BATCH_WRITES = 500


def to_document(record: BaseModel, exclude: Optional[set] = None) -> dict:
    """Serialize a record with camelCase keys, datetimes stay native for Firestore Timestamps"""
    return record.model_dump(by_alias=True, exclude=exclude)


def to_document_fields(model_cls: type[BaseModel], fields: dict) -> dict:
    """Map snake_case update kwargs onto the camelCase document keys"""
    document = {}
    for key, value in fields.items():
        field = model_cls.model_fields.get(key)
        if field is None:
            raise ValueError(f"Unknown field: {key}")
        if isinstance(value, datetime):
            value = ensure_utc(value)
        document[field.alias or key] = value
    return document


def account_from_document(data: dict) -> BarberAccount:
    try:
        return BarberAccount.model_validate(data)
    except ValidationError as e:
        barber_id = data.get("barberId", "?")
        logger.error(f"❌ Malformed barber document {barber_id}: {e}")
        raise InvalidAccount(f"Datos de barbero inválidos: {barber_id}") from e


def service_from_snapshot(snapshot) -> ServiceRecord:
    return ServiceRecord.model_validate({**snapshot.to_dict(), "id": snapshot.id})


def appointment_from_snapshot(snapshot) -> AppointmentRecord:
    return AppointmentRecord.model_validate({**snapshot.to_dict(), "id": snapshot.id})


def _by_date_and_time(appointment: AppointmentRecord):
    return appointment.date, appointment.time


@firestore.transactional
def _claim_identity(transaction, claim_ref, barber_ref, data: dict) -> tuple[str, bool]:
    """Create the uid claim and the barber in one transaction; an existing claim wins"""
    claim = claim_ref.get(transaction=transaction)
    if claim.exists:
        return claim.get("barberId"), False
    transaction.create(claim_ref, {"barberId": data["barberId"], "createdAt": utcnow()})
    transaction.create(barber_ref, data)
    return data["barberId"], True


@firestore.transactional
def _link_identity(transaction, claim_ref, barber_ref, firebase_uid: str) -> str:
    """Bind an unlinked barber to firebase_uid; a barber owned by another uid is never taken over"""
    claim = claim_ref.get(transaction=transaction)
    if claim.exists:
        return claim.get("barberId")
    barber = barber_ref.get(transaction=transaction)
    if not barber.exists:
        raise NotFound("Barbero no encontrado")
    if (barber.to_dict() or {}).get("firebaseUid"):
        raise EmailInUse()
    transaction.create(claim_ref, {"barberId": barber_ref.id, "createdAt": utcnow()})
    transaction.update(barber_ref, {"firebaseUid": firebase_uid, "updatedAt": utcnow()})
    return barber_ref.id


@firestore.transactional
def _apply_payment(transaction, ledger_ref, barber_ref, ledger_data: dict, updates: dict) -> None:
    if ledger_ref.get(transaction=transaction).exists:
        raise AlreadyProcessed()
    if not barber_ref.get(transaction=transaction).exists:
        raise NotFound(f"Barbero {ledger_data['barberId']} no encontrado")
    transaction.create(ledger_ref, ledger_data)
    transaction.update(barber_ref, updates)


class FirestoreStorage(StorageBackend):
    """Storage backed by Cloud Firestore"""

    name = "firestore"

    def __init__(self, client: firestore.Client):
        self.db = client

    def _barber_ref(self, barber_id: str):
        return self.db.collection(BARBERS).document(barber_id)

    def _commit_in_batches(self, writes: Iterable[tuple]) -> int:
        """Write (reference, data) pairs, committing every MAX_BATCH_WRITES operations"""
        batch = self.db.batch()
        pending = 0
        total = 0
        for ref, data in writes:
            batch.set(ref, data)
            pending += 1
            total += 1
            if pending == MAX_BATCH_WRITES:
                batch.commit()
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()
        return total

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, barber_id: str) -> Optional[BarberAccount]:
        snapshot = self._barber_ref(barber_id).get()
        if not snapshot.exists:
            return None
        return account_from_document(snapshot.to_dict())

    def get_account_by_uid(self, firebase_uid: str) -> Optional[BarberAccount]:
        claim = self.db.collection(BARBER_UIDS).document(firebase_uid).get()
        if claim.exists:
            return self.get_account(claim.get("barberId"))

        # Documents imported without a uid claim
        query = (
            self.db.collection(BARBERS)
            .where(filter=FieldFilter("firebaseUid", "==", firebase_uid))
            .limit(1)
        )
        for snapshot in query.stream():
            return account_from_document(snapshot.to_dict())
        return None

    def get_account_by_email(self, email: str) -> Optional[BarberAccount]:
        query = (
            self.db.collection(BARBERS)
            .where(filter=FieldFilter("email", "==", email.strip().lower()))
            .limit(1)
        )
        for snapshot in query.stream():
            return account_from_document(snapshot.to_dict())
        return None

    def list_accounts(self) -> list[BarberAccount]:
        return [
            account_from_document(snapshot.to_dict())
            for snapshot in self.db.collection(BARBERS).stream()
        ]

    def put_account(self, account: BarberAccount) -> BarberAccount:
        data = to_document(account)
        if data.get("createdAt") is None:
            data["createdAt"] = utcnow()
        self._barber_ref(account.barber_id).set(data)
        return account_from_document(data)

    def update_account(self, barber_id: str, **fields) -> BarberAccount:
        fields.setdefault("updated_at", utcnow())
        try:
            self._barber_ref(barber_id).update(to_document_fields(BarberAccount, fields))
        except google_exceptions.NotFound as e:
            raise NotFound(f"Barbero {barber_id} no encontrado") from e
        return self.get_account(barber_id)

    def get_or_create_account(
        self, firebase_uid: str, defaults: BarberAccount
    ) -> tuple[BarberAccount, bool]:
        existing = self.get_account_by_uid(firebase_uid)
        if existing:
            return existing, False

        claim_ref = self.db.collection(BARBER_UIDS).document(firebase_uid)

        by_email = self.get_account_by_email(defaults.email) if defaults.email else None
        if by_email:
            if by_email.firebase_uid:
                logger.warning(
                    f"⚠️ Email {defaults.email} already belongs to barber {by_email.barber_id} "
                    f"with another Firebase UID"
                )
                raise EmailInUse()
            try:
                barber_id = _link_identity(
                    self.db.transaction(), claim_ref, self._barber_ref(by_email.barber_id), firebase_uid
                )
            except google_exceptions.AlreadyExists as e:
                winner = self.get_account_by_uid(firebase_uid)
                if winner:
                    return winner, False
                raise EmailInUse() from e
            logger.info(
                f"🔄 Linking barber {barber_id} ({defaults.email}) to Firebase UID {firebase_uid}"
            )
            return self.get_account(barber_id), False

        data = to_document(defaults)
        data["firebaseUid"] = firebase_uid
        data["createdAt"] = data.get("createdAt") or utcnow()

        try:
            barber_id, created = _claim_identity(
                self.db.transaction(), claim_ref, self._barber_ref(defaults.barber_id), data
            )
        except google_exceptions.AlreadyExists as e:
            # Lost the race on the claim document itself
            winner = self.get_account_by_uid(firebase_uid)
            if winner:
                return winner, False
            raise EmailInUse() from e

        if created:
            logger.info(f"🆕 Barber created: {barber_id} ({defaults.email})")
        else:
            logger.info(f"🔄 Barber for UID {firebase_uid} was created concurrently")
        return self.get_account(barber_id), created

    def list_expiring_accounts(self, start: datetime, end: datetime) -> list[BarberAccount]:
        query = (
            self.db.collection(BARBERS)
            .where(filter=FieldFilter("subscriptionExpires", ">=", ensure_utc(start)))
            .where(filter=FieldFilter("subscriptionExpires", "<=", ensure_utc(end)))
        )
        accounts = [account_from_document(s.to_dict()) for s in query.stream()]
        return [a for a in accounts if a.subscription_status in ("trial", "active")]

    def list_expired_accounts(self, now: datetime) -> list[BarberAccount]:
        query = self.db.collection(BARBERS).where(
            filter=FieldFilter("subscriptionExpires", "<", ensure_utc(now))
        )
        accounts = [account_from_document(s.to_dict()) for s in query.stream()]
        return [a for a in accounts if a.subscription_status not in ("expired", "cancelled")]

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def list_services(self, barber_id: str, active_only: bool = False) -> list[ServiceRecord]:
        query = self.db.collection(SERVICES).where(filter=FieldFilter("barberId", "==", barber_id))
        services = [service_from_snapshot(s) for s in query.stream()]
        if active_only:
            services = [s for s in services if s.is_active]
        return sorted(services, key=lambda s: s.order)

    def get_service(self, service_id: str) -> Optional[ServiceRecord]:
        snapshot = self.db.collection(SERVICES).document(service_id).get()
        return service_from_snapshot(snapshot) if snapshot.exists else None

    def create_service(self, service: ServiceRecord) -> ServiceRecord:
        service_id = service.id or generate_public_id()
        data = to_document(service, exclude={"id"})
        data["createdAt"] = data.get("createdAt") or utcnow()
        self.db.collection(SERVICES).document(service_id).set(data)
        return ServiceRecord.model_validate({**data, "id": service_id})

    def update_service(self, service_id: str, **fields) -> ServiceRecord:
        ref = self.db.collection(SERVICES).document(service_id)
        try:
            ref.update(to_document_fields(ServiceRecord, fields))
        except google_exceptions.NotFound as e:
            raise NotFound("Servicio no encontrado") from e
        return service_from_snapshot(ref.get())

    def delete_service(self, service_id: str) -> None:
        ref = self.db.collection(SERVICES).document(service_id)
        if not ref.get().exists:
            raise NotFound("Servicio no encontrado")
        ref.delete()

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    def list_appointments(
        self, barber_id: str, date: Optional[str] = None
    ) -> list[AppointmentRecord]:
        query = self.db.collection(APPOINTMENTS).where(
            filter=FieldFilter("barberId", "==", barber_id)
        )
        if date:
            query = query.where(filter=FieldFilter("date", "==", date))
        appointments = [appointment_from_snapshot(s) for s in query.stream()]
        return sorted(appointments, key=_by_date_and_time)

    def list_appointments_by_phone(self, client_phone: str) -> list[AppointmentRecord]:
        query = self.db.collection(APPOINTMENTS).where(
            filter=FieldFilter("clientPhone", "==", client_phone)
        )
        appointments = [appointment_from_snapshot(s) for s in query.stream()]
        confirmed = [a for a in appointments if a.status == "confirmed"]
        return sorted(confirmed, key=_by_date_and_time)

    def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        snapshot = self.db.collection(APPOINTMENTS).document(appointment_id).get()
        return appointment_from_snapshot(snapshot) if snapshot.exists else None

    def create_appointment(self, appointment: AppointmentRecord) -> AppointmentRecord:
        appointment_id = appointment.id or generate_public_id()
        data = to_document(appointment, exclude={"id"})
        data["createdAt"] = data.get("createdAt") or utcnow()
        self.db.collection(APPOINTMENTS).document(appointment_id).set(data)
        return AppointmentRecord.model_validate({**data, "id": appointment_id})

    def update_appointment_status(self, appointment_id: str, status: str) -> AppointmentRecord:
        ref = self.db.collection(APPOINTMENTS).document(appointment_id)
        try:
            ref.update({"status": status})
        except google_exceptions.NotFound as e:
            raise NotFound("Cita no encontrada") from e
        return appointment_from_snapshot(ref.get())

    def delete_appointment(self, appointment_id: str) -> None:
        ref = self.db.collection(APPOINTMENTS).document(appointment_id)
        if not ref.get().exists:
            raise NotFound("Cita no encontrada")
        ref.delete()

    def is_slot_available(self, barber_id: str, date: str, time: str) -> bool:
        query = (
            self.db.collection(APPOINTMENTS)
            .where(filter=FieldFilter("barberId", "==", barber_id))
            .where(filter=FieldFilter("date", "==", date))
            .where(filter=FieldFilter("time", "==", time))
            .where(filter=FieldFilter("status", "==", "confirmed"))
            .limit(1)
        )
        return not any(True for _ in query.stream())

    def cleanup_appointments_before(self, cutoff_date: str) -> int:
        query = self.db.collection(APPOINTMENTS).where(
            filter=FieldFilter("date", "<", cutoff_date)
        )
        batch = self.db.batch()
        pending = 0
        deleted = 0
        for snapshot in query.stream():
            batch.delete(snapshot.reference)
            pending += 1
            deleted += 1
            if pending == MAX_BATCH_WRITES:
                batch.commit()
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()
        return deleted

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_payment(self, order_id: str) -> Optional[PaymentRecord]:
        snapshot = self.db.collection(PROCESSED_PAYMENTS).document(order_id).get()
        return PaymentRecord.model_validate(snapshot.to_dict()) if snapshot.exists else None

    def apply_payment(self, record: PaymentRecord, **account_fields) -> BarberAccount:
        account_fields.setdefault("updated_at", utcnow())
        _apply_payment(
            self.db.transaction(),
            self.db.collection(PROCESSED_PAYMENTS).document(record.order_id),
            self._barber_ref(record.barber_id),
            to_document(record),
            to_document_fields(BarberAccount, account_fields),
        )
        return self.get_account(record.barber_id)

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    def import_accounts(self, accounts: Iterable[BarberAccount]) -> int:
        writes = []
        count = 0
        for account in accounts:
            count += 1
            writes.append((self._barber_ref(account.barber_id), to_document(account)))
            if account.firebase_uid:
                writes.append(
                    (
                        self.db.collection(BARBER_UIDS).document(account.firebase_uid),
                        {"barberId": account.barber_id, "createdAt": utcnow()},
                    )
                )
        self._commit_in_batches(writes)
        return count

    def import_services(self, services: Iterable[ServiceRecord]) -> int:
        return self._commit_in_batches(
            (self.db.collection(SERVICES).document(s.id), to_document(s, exclude={"id"}))
            for s in services
        )

    def import_appointments(self, appointments: Iterable[AppointmentRecord]) -> int:
        return self._commit_in_batches(
            (self.db.collection(APPOINTMENTS).document(a.id), to_document(a, exclude={"id"}))
            for a in appointments
        )
