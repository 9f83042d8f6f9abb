"""Storage capability shared by the relational and Firestore backends"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from ..schemas import AppointmentRecord, BarberAccount, PaymentRecord, ServiceRecord


class StorageBackend(ABC):
    """
    CRUD for barbers, services and appointments plus the payment ledger.

    Implementations return detached pydantic records, never ORM rows or raw documents.
    Account writes are last-writer-wins; the only operations that must be atomic are
    get_or_create_account and apply_payment.
    """

    name = "base"

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @abstractmethod
    def get_account(self, barber_id: str) -> Optional[BarberAccount]: ...

    @abstractmethod
    def get_account_by_uid(self, firebase_uid: str) -> Optional[BarberAccount]: ...

    @abstractmethod
    def get_account_by_email(self, email: str) -> Optional[BarberAccount]: ...

    @abstractmethod
    def list_accounts(self) -> list[BarberAccount]: ...

    @abstractmethod
    def put_account(self, account: BarberAccount) -> BarberAccount:
        """Write the full record, replacing whatever is stored"""

    @abstractmethod
    def update_account(self, barber_id: str, **fields) -> BarberAccount:
        """Set the given fields; raises NotFound for an unknown barber"""

    @abstractmethod
    def get_or_create_account(
        self, firebase_uid: str, defaults: BarberAccount
    ) -> tuple[BarberAccount, bool]:
        """
        Return the account linked to firebase_uid, creating it from defaults if needed.

        Must be safe under concurrent calls for the same uid: exactly one account is
        created and every caller gets it back. An unlinked account with the same email
        is linked to the uid instead of creating a duplicate; an account with the same
        email that is linked to another uid raises EmailInUse.
        """

    @abstractmethod
    def list_expiring_accounts(self, start: datetime, end: datetime) -> list[BarberAccount]:
        """Trial or active accounts whose subscription_expires falls in [start, end]"""

    @abstractmethod
    def list_expired_accounts(self, now: datetime) -> list[BarberAccount]:
        """Accounts past subscription_expires not yet marked expired or cancelled"""

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    @abstractmethod
    def list_services(self, barber_id: str, active_only: bool = False) -> list[ServiceRecord]: ...

    @abstractmethod
    def get_service(self, service_id: str) -> Optional[ServiceRecord]: ...

    @abstractmethod
    def create_service(self, service: ServiceRecord) -> ServiceRecord: ...

    @abstractmethod
    def update_service(self, service_id: str, **fields) -> ServiceRecord: ...

    @abstractmethod
    def delete_service(self, service_id: str) -> None: ...

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    @abstractmethod
    def list_appointments(
        self, barber_id: str, date: Optional[str] = None
    ) -> list[AppointmentRecord]:
        """Appointments of a barber ordered by date then time"""

    @abstractmethod
    def list_appointments_by_phone(self, client_phone: str) -> list[AppointmentRecord]:
        """Confirmed appointments of a client ordered by date then time"""

    @abstractmethod
    def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]: ...

    @abstractmethod
    def create_appointment(self, appointment: AppointmentRecord) -> AppointmentRecord: ...

    @abstractmethod
    def update_appointment_status(self, appointment_id: str, status: str) -> AppointmentRecord: ...

    @abstractmethod
    def delete_appointment(self, appointment_id: str) -> None: ...

    @abstractmethod
    def is_slot_available(self, barber_id: str, date: str, time: str) -> bool: ...

    @abstractmethod
    def cleanup_appointments_before(self, cutoff_date: str) -> int:
        """Delete appointments dated strictly before cutoff_date, returns the count"""

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @abstractmethod
    def get_payment(self, order_id: str) -> Optional[PaymentRecord]: ...

    @abstractmethod
    def apply_payment(self, record: PaymentRecord, **account_fields) -> BarberAccount:
        """
        Record the order in the ledger and update the account in one atomic step.

        Raises AlreadyProcessed when the order id is already recorded, NotFound when the
        barber does not exist.
        """

    # ------------------------------------------------------------------
    # Bulk import (migration)
    # ------------------------------------------------------------------

    @abstractmethod
    def import_accounts(self, accounts: Iterable[BarberAccount]) -> int: ...

    @abstractmethod
    def import_services(self, services: Iterable[ServiceRecord]) -> int: ...

    @abstractmethod
    def import_appointments(self, appointments: Iterable[AppointmentRecord]) -> int: ...

    def close(self) -> None:
        """Release backend resources"""
